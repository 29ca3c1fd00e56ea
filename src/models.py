"""Domain models for the auto-import operator.

This module defines typed data structures for the three resources a
reconciliation pass looks at, plus the error kinds the pass can produce.
Kubernetes objects are converted to these types at the store boundary.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

# A cluster is identified by its ManagedCluster name, which is also the
# namespace holding its secrets.
ClusterIdentity = str


# =============================================================================
# Enums for constrained values
# =============================================================================


class ConditionStatus(Enum):
    """Kubernetes condition status."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ResourceKind(Enum):
    """Kinds of objects the reconciler reads from the resource store."""

    CLUSTER = "ManagedCluster"
    CREDENTIAL = "AutoImportSecret"
    MANIFEST = "ImportSecret"


# =============================================================================
# Dataclasses for resource records
# =============================================================================


@dataclass(frozen=True)
class Condition:
    """Kubernetes-style condition.

    ``raw`` keeps the dict a condition was read from, so conditions owned by
    other controllers are written back with every field they had
    (``observedGeneration``, unknown status values, ...).
    """

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: str = ""
    raw: dict[str, Any] | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for Kubernetes status."""
        # A raw dict is only reused while it still describes this condition.
        if self.raw is not None and Condition.from_dict(self.raw) == self:
            return dict(self.raw)
        return {
            "type": self.type,
            "status": self.status.value,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": self.last_transition_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Condition":
        """Create from Kubernetes status dict."""
        try:
            status = ConditionStatus(data.get("status", "Unknown"))
        except ValueError:
            status = ConditionStatus.UNKNOWN
        return cls(
            type=data.get("type", ""),
            status=status,
            reason=data.get("reason", "") or "",
            message=data.get("message", "") or "",
            last_transition_time=data.get("lastTransitionTime", "") or "",
            raw=dict(data),
        )


@dataclass(frozen=True)
class ClusterRecord:
    """A managed cluster as seen by the reconciler.

    Only the condition list is ever changed by this operator. The raw body
    is kept so a write-back preserves every field we do not model.
    """

    name: ClusterIdentity
    conditions: tuple[Condition, ...] = ()
    resource_version: str | None = None
    body: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def get_condition(self, condition_type: str) -> Condition | None:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a Kubernetes object body with the current conditions."""
        body = dict(self.body)
        metadata = dict(body.get("metadata") or {})
        metadata["name"] = self.name
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        status = dict(body.get("status") or {})
        status["conditions"] = [c.to_dict() for c in self.conditions]
        body["metadata"] = metadata
        body["status"] = status
        return body

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClusterRecord":
        """Create from a ManagedCluster object body."""
        metadata = data.get("metadata") or {}
        status = data.get("status") or {}
        conditions = tuple(
            Condition.from_dict(c) for c in status.get("conditions") or []
        )
        return cls(
            name=metadata.get("name", ""),
            conditions=conditions,
            resource_version=metadata.get("resourceVersion"),
            body=data,
        )


@dataclass(frozen=True)
class BootstrapCredential:
    """The auto-import secret for one cluster.

    ``data`` holds the decoded secret values: connection data for the
    import client plus the retry counter.
    """

    namespace: str
    name: str
    data: dict[str, str] = field(default_factory=dict, repr=False)  # Never log credentials
    resource_version: str | None = None

    @property
    def cluster(self) -> ClusterIdentity:
        return self.namespace

    def with_value(self, key: str, value: str) -> "BootstrapCredential":
        """Return a copy with one data key changed."""
        data = dict(self.data)
        data[key] = value
        return replace(self, data=data)


@dataclass(frozen=True)
class ImportManifest:
    """The generated import secret describing what to apply remotely."""

    namespace: str
    name: str
    data: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Exceptions
# =============================================================================


class OperatorError(Exception):
    """Base exception for operator errors."""

    pass


class NotFoundError(OperatorError):
    """The object does not exist in the store."""

    pass


class ConflictError(OperatorError):
    """The object changed since it was read (stale resourceVersion)."""

    pass


class StoreError(OperatorError):
    """Error communicating with the Kubernetes API."""

    pass


class ConnectivityError(OperatorError):
    """An import client could not be built from the auto-import secret."""

    pass


class ImportFailure(OperatorError):
    """Applying the import manifest to the remote cluster failed."""

    pass


class ConfigurationError(OperatorError):
    """Invalid or missing configuration, such as a malformed retry counter."""

    pass


class ReconcileCancelled(OperatorError):
    """The pass was stopped before it could finish."""

    pass


class AggregateError(OperatorError):
    """Several independent failures collected during one pass."""

    def __init__(self, errors: list[Exception], result: Any = None) -> None:
        self.errors = list(errors)
        # What the pass did before failing, for metrics
        self.result = result
        super().__init__(self._format())

    def _format(self) -> str:
        if len(self.errors) == 1:
            return str(self.errors[0])
        return "[" + ", ".join(str(e) for e in self.errors) + "]"

    def find(self, kind: type[Exception]) -> Exception | None:
        """Return the first collected error of the given kind."""
        for error in self.errors:
            if isinstance(error, kind):
                return error
        return None
