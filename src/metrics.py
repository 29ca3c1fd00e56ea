"""Prometheus metrics for the auto-import operator."""

from prometheus_client import Counter, Histogram, Gauge, Info

# Reconciliation metrics
RECONCILE_TOTAL = Counter(
    "auto_import_operator_reconcile_total",
    "Total number of reconciliations",
    ["trigger", "status"],
)

RECONCILE_DURATION = Histogram(
    "auto_import_operator_reconcile_duration_seconds",
    "Time spent in reconciliation",
    ["trigger"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

RECONCILE_IN_PROGRESS = Gauge(
    "auto_import_operator_reconcile_in_progress",
    "Number of reconciliations currently in progress",
)

# Import outcome metrics
IMPORT_OUTCOMES = Counter(
    "auto_import_operator_import_outcomes_total",
    "Outcome of reconciliation passes that attempted an import",
    ["outcome"],
)

CREDENTIAL_DELETIONS = Counter(
    "auto_import_operator_secret_deletions_total",
    "Auto-import secrets deleted by the operator",
    ["reason"],
)

# Operator info
OPERATOR_INFO = Info(
    "auto_import_operator",
    "Information about the auto-import operator",
)

TRIGGERS = ["cluster", "auto_import_secret", "import_secret"]
STATUSES = ["success", "error", "permanent_error", "cancelled"]
OUTCOMES = ["noop", "imported", "retrying", "exhausted", "invalid"]


def set_operator_info(version: str, watch_namespace: str) -> None:
    """Set operator info labels."""
    OPERATOR_INFO.info(
        {"version": version, "watch_namespace": watch_namespace or "*"}
    )


def init_metrics() -> None:
    """Initialize all metrics with zero values.

    Prometheus metrics with labels don't appear until used.
    This ensures all metrics are visible immediately at startup.
    """
    RECONCILE_IN_PROGRESS.set(0)
    for trigger in TRIGGERS:
        RECONCILE_DURATION.labels(trigger=trigger)
        for status in STATUSES:
            RECONCILE_TOTAL.labels(trigger=trigger, status=status)

    for outcome in OUTCOMES:
        IMPORT_OUTCOMES.labels(outcome=outcome)

    for reason in ["imported", "exhausted"]:
        CREDENTIAL_DELETIONS.labels(reason=reason)
