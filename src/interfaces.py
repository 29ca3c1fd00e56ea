"""Collaborator interfaces used by the reconciler.

The reconciler only depends on these protocols. Kubernetes-backed
implementations live in ``resources/``; tests use in-memory fakes.
"""

from typing import Any, Protocol

from models import (
    BootstrapCredential,
    ClusterRecord,
    ImportManifest,
    ResourceKind,
)

# Whatever the client factory hands to the executor (a DynamicClient for
# the Kubernetes implementation).
ImportClient = Any

Record = ClusterRecord | BootstrapCredential | ImportManifest


class ResourceStore(Protocol):
    def get(self, kind: ResourceKind, namespace: str, name: str) -> Record | None:
        """Return the object, or None when it does not exist."""
        ...

    def update(self, obj: Record) -> None:
        """Write the object back.

        Raises NotFoundError if it is gone and ConflictError if it changed
        since it was read.
        """
        ...

    def delete(self, obj: Record) -> None:
        """Delete the object, with the same error kinds as update()."""
        ...


class ClientFactory(Protocol):
    def from_credential(self, credential: BootstrapCredential) -> ImportClient:
        """Build a client for the remote cluster; raises ConnectivityError."""
        ...


class ImportExecutor(Protocol):
    def apply(self, client: ImportClient, manifest: ImportManifest) -> None:
        """Apply the import manifest to the remote cluster."""
        ...


class Recorder(Protocol):
    def event(self, reason: str, message: str) -> None: ...

    def warning(self, reason: str, message: str) -> None: ...


class StopFlag(Protocol):
    def is_set(self) -> bool: ...
