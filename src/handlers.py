"""Kopf handlers for auto-importing managed clusters.

A cluster is imported once three objects exist: its ManagedCluster, the
auto-import secret in the cluster namespace, and the generated
``<cluster>-import`` secret. A change to any of them triggers a
reconciliation pass for that cluster.
"""

import logging
import os
import sys
import time
from pathlib import Path
from typing import Any

# Add src directory to path for imports when run as script by Kopf
_src_dir = Path(__file__).parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import kopf
from prometheus_client import start_http_server

from constants import (
    AUTO_IMPORT_SECRET_NAME,
    CLUSTER_GROUP,
    CLUSTER_PLURAL,
    CLUSTER_VERSION,
)
from models import (
    AggregateError,
    ConfigurationError,
    OperatorError,
    ReconcileCancelled,
)
from reconciler import AutoImportReconciler, Outcome, ReconcileResult
from resources.recorder import KopfRecorder, auto_import_secret_ref
from state import state
from utils import make_import_secret_name, truncate_message
from metrics import (
    CREDENTIAL_DELETIONS,
    IMPORT_OUTCOMES,
    RECONCILE_DURATION,
    RECONCILE_IN_PROGRESS,
    RECONCILE_TOTAL,
    init_metrics,
    set_operator_info,
)

logger = logging.getLogger(__name__)

# Operator version
OPERATOR_VERSION = "0.1.0"


def _retry_delay() -> int:
    return int(os.environ.get("RETRY_DELAY_SECONDS", "60"))


def build_reconciler(cluster_name: str) -> AutoImportReconciler:
    """Wire a reconciler to the shared clients."""
    return AutoImportReconciler(
        store=state.get_store(),
        client_factory=state.get_client_factory(),
        executor=state.get_executor(),
        recorder=KopfRecorder(auto_import_secret_ref(cluster_name)),
    )


def _record_result(result: ReconcileResult) -> None:
    IMPORT_OUTCOMES.labels(outcome=result.outcome.value).inc()
    if not result.credential_deleted:
        return
    if result.outcome is Outcome.IMPORTED:
        CREDENTIAL_DELETIONS.labels(reason="imported").inc()
    elif result.outcome is Outcome.EXHAUSTED:
        CREDENTIAL_DELETIONS.labels(reason="exhausted").inc()


def reconcile_cluster(cluster_name: str, trigger: str) -> None:
    """Run one serialized reconciliation pass and map errors to kopf.

    Configuration errors need a manual fix of the auto-import secret, so
    they are permanent; the handler fires again when the secret changes.
    Every other failure is retried after RETRY_DELAY_SECONDS.
    """
    logger.info(f"Reconciling cluster {cluster_name} (trigger: {trigger})")
    start_time = time.monotonic()
    RECONCILE_IN_PROGRESS.inc()

    try:
        reconciler = build_reconciler(cluster_name)
        with state.cluster_locks.hold(cluster_name):
            result = reconciler.reconcile(cluster_name, stopped=state.stopping)

        _record_result(result)
        RECONCILE_TOTAL.labels(trigger=trigger, status="success").inc()
        logger.info(
            f"Reconciled cluster {cluster_name}: {result.outcome.value}"
        )

    except ReconcileCancelled:
        RECONCILE_TOTAL.labels(trigger=trigger, status="cancelled").inc()
        raise
    except AggregateError as e:
        # A failed import still spent or deleted the secret
        if e.result is not None:
            _record_result(e.result)
        config_error = e.find(ConfigurationError)
        if config_error is not None:
            RECONCILE_TOTAL.labels(trigger=trigger, status="permanent_error").inc()
            raise kopf.PermanentError(
                f"Fix the auto-import secret of {cluster_name}: {config_error}"
            )
        logger.error(f"Failed to reconcile cluster {cluster_name}: {e}")
        RECONCILE_TOTAL.labels(trigger=trigger, status="error").inc()
        raise kopf.TemporaryError(
            f"Reconciliation failed: {truncate_message(str(e))}",
            delay=_retry_delay(),
        )
    except OperatorError as e:
        logger.error(f"Failed to reconcile cluster {cluster_name}: {e}")
        RECONCILE_TOTAL.labels(trigger=trigger, status="error").inc()
        raise kopf.TemporaryError(
            f"Reconciliation failed: {truncate_message(str(e))}",
            delay=_retry_delay(),
        )
    finally:
        RECONCILE_DURATION.labels(trigger=trigger).observe(
            time.monotonic() - start_time
        )
        RECONCILE_IN_PROGRESS.dec()


def is_auto_import_secret(name: str, **_: Any) -> bool:
    return name == AUTO_IMPORT_SECRET_NAME


def is_import_secret(name: str, namespace: str, **_: Any) -> bool:
    return name == make_import_secret_name(namespace)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure operator settings on startup."""
    # Reduce logging noise
    settings.posting.level = logging.WARNING
    # Namespace scope is chosen by kopf run (see main), reported here only
    watch_namespace = os.environ.get("WATCH_NAMESPACE", "")

    # Start Prometheus metrics server
    metrics_port = int(os.environ.get("METRICS_PORT", "9090"))
    try:
        start_http_server(metrics_port)
        logger.info("Prometheus metrics server started on port %d", metrics_port)
    except OSError as e:
        logger.warning("Failed to start metrics server on port %d: %s", metrics_port, e)

    init_metrics()
    set_operator_info(OPERATOR_VERSION, watch_namespace)

    logger.info("Auto-import operator started (version %s)", OPERATOR_VERSION)


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    """Stop in-flight reconciliations on operator shutdown."""
    logger.info("Auto-import operator shutting down")
    state.close()


@kopf.on.create("v1", "secrets", when=is_auto_import_secret)
@kopf.on.update("v1", "secrets", when=is_auto_import_secret)
@kopf.on.resume("v1", "secrets", when=is_auto_import_secret)
def auto_import_secret_changed(namespace: str, **_: Any) -> None:
    """Handle a new or changed auto-import secret."""
    reconcile_cluster(namespace, trigger="auto_import_secret")


@kopf.on.create("v1", "secrets", when=is_import_secret)
@kopf.on.update("v1", "secrets", when=is_import_secret)
@kopf.on.resume("v1", "secrets", when=is_import_secret)
def import_secret_changed(namespace: str, **_: Any) -> None:
    """Handle a new or regenerated import secret."""
    reconcile_cluster(namespace, trigger="import_secret")


@kopf.on.create(CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL)
@kopf.on.resume(CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL)
def managed_cluster_changed(name: str, **_: Any) -> None:
    """Handle a new ManagedCluster, or one seen again after a restart."""
    reconcile_cluster(name, trigger="cluster")


def main() -> None:
    """Entry point for running the operator."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Equivalent to `kopf run src/handlers.py [--namespace=... | --all-namespaces]`
    watch_namespace = os.environ.get("WATCH_NAMESPACE", "")
    logger.info("Starting auto-import operator...")
    kopf.run(
        clusterwide=not watch_namespace,
        namespaces=[watch_namespace] if watch_namespace else [],
    )


if __name__ == "__main__":
    main()
