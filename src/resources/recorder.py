"""Kubernetes event recorder for reconciliation outcomes."""

import logging
from typing import Any

import kopf

from constants import AUTO_IMPORT_SECRET_NAME

logger = logging.getLogger(__name__)


def auto_import_secret_ref(cluster_name: str) -> dict[str, Any]:
    """Object reference for the auto-import secret of a cluster."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": AUTO_IMPORT_SECRET_NAME, "namespace": cluster_name},
    }


class KopfRecorder:
    """Recorder posting events through kopf.

    Kopf queues events and posts them in the background, so recording never
    blocks a reconciliation pass. Normal events go through ``kopf.event``:
    ``kopf.info`` drops them while the posting level is above INFO.
    """

    def __init__(self, involved_object: dict[str, Any]) -> None:
        self.involved_object = involved_object

    def event(self, reason: str, message: str) -> None:
        logger.debug("Event %s: %s", reason, message)
        kopf.event(
            self.involved_object, type="Normal", reason=reason, message=message
        )

    def warning(self, reason: str, message: str) -> None:
        logger.debug("Warning %s: %s", reason, message)
        kopf.warn(self.involved_object, reason=reason, message=message)
