"""In-memory collaborators for reconciler tests."""

from dataclasses import replace

import pytest

from constants import AUTO_IMPORT_RETRY_KEY, AUTO_IMPORT_SECRET_NAME, IMPORT_MANIFEST_KEY
from models import (
    BootstrapCredential,
    ClusterRecord,
    Condition,
    ConflictError,
    ImportFailure,
    ImportManifest,
    NotFoundError,
    ResourceKind,
)
from utils import make_import_secret_name

CLUSTER = "cluster1"


class FakeStore:
    """Resource store keeping objects in dicts, with optimistic locking.

    ``failures`` maps (operation, kind) to an exception raised once.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[ResourceKind, str, str], object] = {}
        self.failures: dict[tuple[str, ResourceKind], Exception] = {}
        self.calls: list[tuple[str, ResourceKind, str]] = []
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    @staticmethod
    def _key(obj: object) -> tuple[ResourceKind, str, str]:
        if isinstance(obj, ClusterRecord):
            return (ResourceKind.CLUSTER, "", obj.name)
        if isinstance(obj, BootstrapCredential):
            return (ResourceKind.CREDENTIAL, obj.namespace, obj.name)
        assert isinstance(obj, ImportManifest)
        return (ResourceKind.MANIFEST, obj.namespace, obj.name)

    def add(self, obj: object) -> object:
        key = self._key(obj)
        if isinstance(obj, (ClusterRecord, BootstrapCredential)):
            obj = _with_version(obj, self._next_version())
        self.objects[key] = obj
        return obj

    def get(self, kind, namespace, name):
        self.calls.append(("get", kind, name))
        return self.objects.get((kind, namespace, name))

    def _check_write(self, op: str, obj: object) -> tuple[ResourceKind, str, str]:
        key = self._key(obj)
        self.calls.append((op, key[0], key[2]))
        failure = self.failures.pop((op, key[0]), None)
        if failure is not None:
            raise failure
        current = self.objects.get(key)
        if current is None:
            raise NotFoundError(f"{key} not found")
        if current.resource_version != obj.resource_version:
            raise ConflictError(f"{key} was modified concurrently")
        return key

    def update(self, obj):
        key = self._check_write("update", obj)
        self.objects[key] = _with_version(obj, self._next_version())

    def delete(self, obj):
        key = self._check_write("delete", obj)
        del self.objects[key]

    # Convenience accessors for assertions

    def cluster(self, name: str = CLUSTER) -> ClusterRecord | None:
        return self.objects.get((ResourceKind.CLUSTER, "", name))

    def credential(self, namespace: str = CLUSTER) -> BootstrapCredential | None:
        return self.objects.get(
            (ResourceKind.CREDENTIAL, namespace, AUTO_IMPORT_SECRET_NAME)
        )

    def writes(self) -> list[tuple[str, ResourceKind, str]]:
        return [call for call in self.calls if call[0] != "get"]


def _with_version(obj, version):
    return replace(obj, resource_version=version)


class FakeClientFactory:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.credentials: list[BootstrapCredential] = []

    def from_credential(self, credential):
        self.credentials.append(credential)
        if self.error is not None:
            raise self.error
        return f"client-for-{credential.namespace}"


class FakeExecutor:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.applied: list[tuple[object, ImportManifest]] = []

    def apply(self, client, manifest):
        self.applied.append((client, manifest))
        if self.error is not None:
            raise self.error


class FakeRecorder:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.events: list[tuple[str, str, str]] = []

    def event(self, reason, message):
        self.events.append(("Normal", reason, message))
        if self.error is not None:
            raise self.error

    def warning(self, reason, message):
        self.events.append(("Warning", reason, message))
        if self.error is not None:
            raise self.error

    def reasons(self) -> list[str]:
        return [reason for _, reason, _ in self.events]


def make_cluster(name: str = CLUSTER, conditions: tuple[Condition, ...] = ()) -> ClusterRecord:
    return ClusterRecord(
        name=name,
        conditions=conditions,
        body={"apiVersion": "cluster.open-cluster-management.io/v1", "kind": "ManagedCluster"},
    )


def make_credential(retry: str | None = "3", namespace: str = CLUSTER) -> BootstrapCredential:
    data = {"kubeconfig": "apiVersion: v1\nkind: Config\n"}
    if retry is not None:
        data[AUTO_IMPORT_RETRY_KEY] = retry
    return BootstrapCredential(namespace=namespace, name=AUTO_IMPORT_SECRET_NAME, data=data)


def make_manifest(namespace: str = CLUSTER) -> ImportManifest:
    return ImportManifest(
        namespace=namespace,
        name=make_import_secret_name(namespace),
        data={IMPORT_MANIFEST_KEY: "apiVersion: v1\nkind: Namespace\nmetadata:\n  name: agent\n"},
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def populated_store(store: FakeStore) -> FakeStore:
    store.add(make_cluster())
    store.add(make_credential())
    store.add(make_manifest())
    return store


@pytest.fixture
def recorder() -> FakeRecorder:
    return FakeRecorder()


@pytest.fixture
def failing_executor() -> FakeExecutor:
    return FakeExecutor(error=ImportFailure("connection refused"))
