"""Auto-import reconciliation pass.

One pass looks at a cluster's ManagedCluster, its auto-import secret and its
generated import secret, tries to import the cluster with the credentials
from the auto-import secret, and records the outcome:

- success: the auto-import secret is deleted and ``ImportSucceeded`` is True;
- failure: one attempt is spent from the secret's retry budget (or the
  secret is deleted when the budget is gone) and ``ImportSucceeded`` is
  False with the error in its message.

Passes are level-triggered and may be repeated at any time. Write failures
do not stop the other writes; they are collected and raised together.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import conditions
import retry_budget
from constants import AUTO_IMPORT_SECRET_NAME
from interfaces import (
    ClientFactory,
    ImportExecutor,
    Recorder,
    Record,
    ResourceStore,
    StopFlag,
)
from models import (
    AggregateError,
    BootstrapCredential,
    ClusterIdentity,
    ClusterRecord,
    Condition,
    ConfigurationError,
    ConnectivityError,
    ImportFailure,
    NotFoundError,
    ReconcileCancelled,
    ResourceKind,
)
from utils import make_import_secret_name

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """What a pass did."""

    NOOP = "noop"
    IMPORTED = "imported"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"
    INVALID = "invalid"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: Outcome
    requeue: bool = False
    credential_deleted: bool = False


NOOP = ReconcileResult(Outcome.NOOP)


class AutoImportReconciler:
    """Imports managed clusters from their auto-import secrets."""

    def __init__(
        self,
        store: ResourceStore,
        client_factory: ClientFactory,
        executor: ImportExecutor,
        recorder: Recorder,
    ) -> None:
        self.store = store
        self.client_factory = client_factory
        self.executor = executor
        self.recorder = recorder

    def reconcile(
        self, identity: ClusterIdentity, stopped: StopFlag | None = None
    ) -> ReconcileResult:
        """Run one reconciliation pass for a cluster.

        Args:
            identity: The managed cluster name (also its namespace)
            stopped: Optional stop flag, checked before each remote call and
                before any write

        Returns:
            The pass result. ``requeue`` is never set: failures are raised
            and successful writes trigger their own redelivery.

        Raises:
            ConnectivityError: No import client could be built; nothing was
                written
            ReconcileCancelled: The stop flag was set; nothing further was
                written
            AggregateError: One or more failures collected during the pass
        """
        logger.info("Reconciling auto import secret for cluster %s", identity)

        cluster = self.store.get(ResourceKind.CLUSTER, "", identity)
        if cluster is None:
            logger.debug("Managed cluster %s not found, nothing to do", identity)
            return NOOP

        credential = self.store.get(
            ResourceKind.CREDENTIAL, identity, AUTO_IMPORT_SECRET_NAME
        )
        if credential is None:
            logger.debug("No auto import secret for cluster %s", identity)
            return NOOP

        manifest = self.store.get(
            ResourceKind.MANIFEST, identity, make_import_secret_name(identity)
        )
        if manifest is None:
            logger.debug("No import secret for cluster %s yet", identity)
            return NOOP

        self._check_stopped(stopped, identity)
        try:
            client = self.client_factory.from_credential(credential)
        except ConnectivityError:
            raise
        except Exception as e:
            raise ConnectivityError(
                f"Unable to build import client for {identity}: {e}"
            ) from e

        self._check_stopped(stopped, identity)
        try:
            self.executor.apply(client, manifest)
        except Exception as e:
            failure = e if isinstance(e, ImportFailure) else ImportFailure(str(e))
            logger.warning("Failed to import cluster %s: %s", identity, failure)
            self._check_stopped(stopped, identity)
            errors: list[Exception] = [failure]
            result = self._spend_retry(identity, credential, errors)
            condition = conditions.import_failed(identity, failure)
        else:
            logger.info("Imported cluster %s", identity)
            self._check_stopped(stopped, identity)
            errors = []
            result = ReconcileResult(
                Outcome.IMPORTED, credential_deleted=self._delete(credential, errors)
            )
            self._record(
                "AutoImportSecretDeleted",
                f"The managed cluster {identity} is imported, "
                "delete its auto import secret",
            )
            condition = conditions.import_succeeded()

        self._report(cluster, condition, errors)

        if errors:
            raise AggregateError(errors, result=result)
        return result

    def _spend_retry(
        self,
        identity: ClusterIdentity,
        credential: BootstrapCredential,
        errors: list[Exception],
    ) -> ReconcileResult:
        """Apply the retry budget after a failed import."""
        try:
            budget = retry_budget.RetryBudget.from_credential(credential)
        except ConfigurationError as e:
            logger.error("Invalid retry counter for cluster %s: %s", identity, e)
            self._warn(
                "AutoImportRetryInvalid",
                "The value of autoImportRetry is invalid in auto-import-secret secret",
            )
            errors.append(e)
            return ReconcileResult(Outcome.INVALID)

        # Reports the attempts left before this one is spent, the last one too.
        self._record(
            "RetryToImportCluster",
            f"Retry to import cluster {identity}, {budget.count}",
        )
        action = budget.spend(credential)
        if isinstance(action, retry_budget.DeleteExhausted):
            logger.info("Retry budget exhausted for cluster %s", identity)
            deleted = self._delete(credential, errors)
            self._record(
                "AutoImportSecretDeleted",
                "Exceed the retry times, delete the auto import secret "
                f"{credential.namespace}/{credential.name}",
            )
            return ReconcileResult(Outcome.EXHAUSTED, credential_deleted=deleted)

        self._update(action.credential, errors)
        return ReconcileResult(Outcome.RETRYING)

    def _report(
        self, cluster: ClusterRecord, condition: Condition, errors: list[Exception]
    ) -> None:
        """Write the import condition onto the managed cluster."""
        current = cluster.get_condition(condition.type)
        updated = conditions.set_condition(cluster, condition)
        if current is not None and current == updated.get_condition(condition.type):
            return
        self._update(updated, errors)

    def _update(self, obj: Record, errors: list[Exception]) -> None:
        try:
            self.store.update(obj)
        except NotFoundError:
            logger.debug("Object %r disappeared before update, ignoring", obj)
        except Exception as e:
            logger.error("Failed to update %r: %s", obj, e)
            errors.append(e)

    def _delete(self, obj: Record, errors: list[Exception]) -> bool:
        """Delete an object; True when it is gone afterwards."""
        try:
            self.store.delete(obj)
        except NotFoundError:
            logger.debug("Object %r already deleted", obj)
        except Exception as e:
            logger.error("Failed to delete %r: %s", obj, e)
            errors.append(e)
            return False
        return True

    def _record(self, reason: str, message: str) -> None:
        try:
            self.recorder.event(reason, message)
        except Exception as e:
            logger.warning("Failed to record event %s: %s", reason, e)

    def _warn(self, reason: str, message: str) -> None:
        try:
            self.recorder.warning(reason, message)
        except Exception as e:
            logger.warning("Failed to record warning %s: %s", reason, e)

    @staticmethod
    def _check_stopped(stopped: StopFlag | None, identity: ClusterIdentity) -> None:
        if stopped is not None and stopped.is_set():
            raise ReconcileCancelled(f"Reconciliation of {identity} was cancelled")
