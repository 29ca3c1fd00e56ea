"""Utility functions for the auto-import operator."""

import datetime

from constants import IMPORT_SECRET_SUFFIX


def make_import_secret_name(cluster_name: str) -> str:
    """Generate the import secret name for a cluster.

    Example: 'cluster1' -> 'cluster1-import'
    """
    return f"{cluster_name}-{IMPORT_SECRET_SUFFIX}"


def truncate_message(message: str, limit: int = 200) -> str:
    """Shorten a message for events and kopf errors."""
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."


def now_iso() -> str:
    """Return current UTC time in ISO format."""
    return datetime.datetime.now(datetime.UTC).isoformat()

