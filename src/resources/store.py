"""Resource store backed by the hub cluster's Kubernetes API.

Reads and writes the three objects a reconciliation pass works on:

- ManagedCluster (cluster-scoped custom resource)
- the auto-import secret in the cluster namespace
- the generated import secret in the cluster namespace

Kubernetes API errors are translated into the operator's error kinds:
404 becomes NotFoundError, 409 becomes ConflictError, anything else
StoreError. Updates send the resourceVersion that was read and deletes use
it as a precondition, so a stale write is reported rather than lost.
"""

import base64
import binascii
import logging
from typing import Any

from kubernetes.client import (
    ApiException,
    CoreV1Api,
    CustomObjectsApi,
    V1DeleteOptions,
    V1Preconditions,
)

from constants import CLUSTER_GROUP, CLUSTER_PLURAL, CLUSTER_VERSION
from interfaces import Record
from models import (
    BootstrapCredential,
    ClusterRecord,
    ConflictError,
    ImportManifest,
    NotFoundError,
    ResourceKind,
    StoreError,
)

logger = logging.getLogger(__name__)


def decode_secret_data(data: dict[str, str] | None) -> dict[str, str]:
    """Decode base64 secret data into text values.

    Values that are not valid base64 text are dropped with a warning; the
    reconciler then treats them as missing.
    """
    decoded: dict[str, str] = {}
    for key, value in (data or {}).items():
        try:
            decoded[key] = base64.b64decode(value).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError, TypeError):
            logger.warning("Ignoring undecodable secret key %s", key)
    return decoded


def encode_secret_data(data: dict[str, str]) -> dict[str, str]:
    """Encode text values as base64 secret data."""
    return {
        key: base64.b64encode(value.encode("utf-8")).decode("ascii")
        for key, value in data.items()
    }


def _translate(e: ApiException, what: str) -> Exception:
    if e.status == 404:
        return NotFoundError(f"{what} not found")
    if e.status == 409:
        return ConflictError(f"{what} was modified concurrently: {e.reason}")
    return StoreError(f"Kubernetes API error for {what}: {e.status} {e.reason}")


class KubernetesResourceStore:
    """ResourceStore implementation over CoreV1Api and CustomObjectsApi."""

    def __init__(self, core_api: CoreV1Api, custom_api: CustomObjectsApi) -> None:
        self.core_api = core_api
        self.custom_api = custom_api

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Record | None:
        """Get an object, returning None if it does not exist."""
        try:
            if kind is ResourceKind.CLUSTER:
                return self._get_cluster(name)
            return self._get_secret(kind, namespace, name)
        except NotFoundError:
            return None

    def _get_cluster(self, name: str) -> ClusterRecord:
        try:
            body = self.custom_api.get_cluster_custom_object(
                CLUSTER_GROUP, CLUSTER_VERSION, CLUSTER_PLURAL, name
            )
        except ApiException as e:
            raise _translate(e, f"ManagedCluster {name}") from e
        return ClusterRecord.from_dict(body)

    def _get_secret(
        self, kind: ResourceKind, namespace: str, name: str
    ) -> BootstrapCredential | ImportManifest:
        try:
            secret = self.core_api.read_namespaced_secret(name, namespace)
        except ApiException as e:
            raise _translate(e, f"Secret {namespace}/{name}") from e

        data = decode_secret_data(secret.data)
        if kind is ResourceKind.MANIFEST:
            return ImportManifest(namespace=namespace, name=name, data=data)

        return BootstrapCredential(
            namespace=namespace,
            name=name,
            data=data,
            resource_version=secret.metadata.resource_version,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def update(self, obj: Record) -> None:
        """Write an object back, failing on a stale resourceVersion."""
        if isinstance(obj, ClusterRecord):
            self._update_cluster_status(obj)
        elif isinstance(obj, BootstrapCredential):
            self._update_secret(obj)
        else:
            raise StoreError(f"Refusing to write read-only object {obj!r}")

    def _update_cluster_status(self, record: ClusterRecord) -> None:
        logger.info("Updating conditions of ManagedCluster %s", record.name)
        try:
            self.custom_api.replace_cluster_custom_object_status(
                CLUSTER_GROUP,
                CLUSTER_VERSION,
                CLUSTER_PLURAL,
                record.name,
                record.to_dict(),
            )
        except ApiException as e:
            raise _translate(e, f"ManagedCluster {record.name}") from e

    def _update_secret(self, credential: BootstrapCredential) -> None:
        # Merge patch so keys we could not decode are left as they are.
        body: dict[str, Any] = {
            "metadata": {"resourceVersion": credential.resource_version},
            "data": encode_secret_data(credential.data),
        }
        logger.info(
            "Updating secret %s/%s", credential.namespace, credential.name
        )
        try:
            self.core_api.patch_namespaced_secret(
                credential.name, credential.namespace, body
            )
        except ApiException as e:
            raise _translate(
                e, f"Secret {credential.namespace}/{credential.name}"
            ) from e

    def delete(self, obj: Record) -> None:
        """Delete a secret, guarded by the resourceVersion that was read."""
        if not isinstance(obj, BootstrapCredential):
            raise StoreError(f"Refusing to delete {obj!r}")

        options = V1DeleteOptions(
            preconditions=V1Preconditions(resource_version=obj.resource_version)
        )
        logger.info("Deleting secret %s/%s", obj.namespace, obj.name)
        try:
            self.core_api.delete_namespaced_secret(
                obj.name, obj.namespace, body=options
            )
        except ApiException as e:
            raise _translate(e, f"Secret {obj.namespace}/{obj.name}") from e
