"""Remote cluster access for importing a managed cluster.

The auto-import secret carries the credentials for the remote cluster,
either as a full kubeconfig or as a bearer token plus API server URL. The
import secret carries the manifests to apply there: ``crds.yaml`` first,
then ``import.yaml``.
"""

import logging
import os
from collections.abc import Iterator
from typing import Any

import yaml
from kubernetes import config as k8s_config
from kubernetes.client import ApiClient, Configuration
from kubernetes.dynamic import DynamicClient

from constants import (
    DEFAULT_FIELD_MANAGER,
    IMPORT_CRDS_KEY,
    IMPORT_MANIFEST_KEY,
    KUBECONFIG_KEY,
    SERVER_KEY,
    TOKEN_KEY,
)
from models import (
    BootstrapCredential,
    ConnectivityError,
    ImportFailure,
    ImportManifest,
)

logger = logging.getLogger(__name__)


def build_api_client(credential: BootstrapCredential) -> ApiClient:
    """Build an isolated ApiClient from the auto-import secret.

    A kubeconfig takes precedence over token/server. Each call returns its
    own client and never touches the process-wide Kubernetes configuration.

    Raises:
        ConnectivityError: If the secret has no usable connection data
    """
    kubeconfig = credential.data.get(KUBECONFIG_KEY, "")
    token = credential.data.get(TOKEN_KEY, "")
    server = credential.data.get(SERVER_KEY, "")

    if kubeconfig:
        try:
            config_dict = yaml.safe_load(kubeconfig)
        except yaml.YAMLError as e:
            raise ConnectivityError(f"Invalid kubeconfig in auto-import secret: {e}") from e
        if not isinstance(config_dict, dict):
            raise ConnectivityError("Invalid kubeconfig in auto-import secret")
        try:
            return k8s_config.new_client_from_config_dict(config_dict)
        except k8s_config.ConfigException as e:
            raise ConnectivityError(f"Invalid kubeconfig in auto-import secret: {e}") from e

    if token and server:
        configuration = Configuration()
        configuration.host = server
        configuration.api_key = {"authorization": token}
        configuration.api_key_prefix = {"authorization": "Bearer"}
        # The secret carries no CA bundle for the remote API server.
        configuration.verify_ssl = False
        return ApiClient(configuration)

    raise ConnectivityError(
        "The kubeconfig or token/server pair is missing in the auto-import secret"
    )


class KubeconfigClientFactory:
    """ClientFactory that returns a DynamicClient for the remote cluster."""

    def from_credential(self, credential: BootstrapCredential) -> DynamicClient:
        api_client = build_api_client(credential)
        try:
            # DynamicClient runs API discovery on construction.
            return DynamicClient(api_client)
        except Exception as e:
            api_client.close()
            raise ConnectivityError(
                f"Unable to reach cluster {credential.cluster}: {e}"
            ) from e


def manifest_documents(manifest: ImportManifest) -> Iterator[dict[str, Any]]:
    """Yield the objects to apply, CRDs first.

    Raises:
        ImportFailure: If the import secret holds invalid YAML
    """
    for key in (IMPORT_CRDS_KEY, IMPORT_MANIFEST_KEY):
        content = manifest.data.get(key, "")
        if not content:
            continue
        try:
            documents = list(yaml.safe_load_all(content))
        except yaml.YAMLError as e:
            raise ImportFailure(f"Invalid {key} in {manifest.name}: {e}") from e
        for document in documents:
            if document:
                yield document


class ManifestImportExecutor:
    """ImportExecutor that server-side applies the import manifests."""

    def __init__(self, field_manager: str | None = None) -> None:
        self.field_manager = field_manager or os.environ.get(
            "IMPORT_FIELD_MANAGER", DEFAULT_FIELD_MANAGER
        )

    def apply(self, client: DynamicClient, manifest: ImportManifest) -> None:
        """Apply every object of the import secret to the remote cluster.

        Raises:
            ImportFailure: On the first object that cannot be applied
        """
        applied = 0
        for document in manifest_documents(manifest):
            self._apply_object(client, document)
            applied += 1

        if applied == 0:
            raise ImportFailure(f"No objects to apply in {manifest.name}")
        logger.info("Applied %d objects from %s", applied, manifest.name)

    def _apply_object(self, client: DynamicClient, document: dict[str, Any]) -> None:
        api_version = document.get("apiVersion", "")
        kind = document.get("kind", "")
        metadata = document.get("metadata") or {}
        name = metadata.get("name", "")
        what = f"{kind} {name}"

        try:
            resource = client.resources.get(api_version=api_version, kind=kind)
            namespace = None
            if resource.namespaced:
                namespace = metadata.get("namespace", "default")
            logger.debug("Applying %s (namespace=%s)", what, namespace)
            client.server_side_apply(
                resource,
                body=document,
                name=name,
                namespace=namespace,
                field_manager=self.field_manager,
                force_conflicts=True,
            )
        except Exception as e:
            raise ImportFailure(f"Failed to apply {what}: {e}") from e
