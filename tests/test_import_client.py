"""Tests for remote cluster access and manifest application."""

from unittest.mock import MagicMock

import pytest

from models import (
    BootstrapCredential,
    ConnectivityError,
    ImportFailure,
    ImportManifest,
)
from resources.import_client import (
    ManifestImportExecutor,
    build_api_client,
    manifest_documents,
)

KUBECONFIG = """
apiVersion: v1
kind: Config
clusters:
- name: remote
  cluster:
    server: https://remote.example.com:6443
    insecure-skip-tls-verify: true
users:
- name: admin
  user:
    token: abc123
contexts:
- name: remote
  context:
    cluster: remote
    user: admin
current-context: remote
"""

CRDS = """
apiVersion: apiextensions.k8s.io/v1
kind: CustomResourceDefinition
metadata:
  name: klusterlets.operator.open-cluster-management.io
"""

IMPORT = """
apiVersion: v1
kind: Namespace
metadata:
  name: open-cluster-management-agent
---
apiVersion: v1
kind: ServiceAccount
metadata:
  name: klusterlet
  namespace: open-cluster-management-agent
"""


def credential(**data: str) -> BootstrapCredential:
    return BootstrapCredential(namespace="cluster1", name="auto-import-secret", data=data)


def manifest(**data: str) -> ImportManifest:
    return ImportManifest(namespace="cluster1", name="cluster1-import", data=data)


class TestBuildApiClient:
    def test_from_kubeconfig(self):
        client = build_api_client(credential(kubeconfig=KUBECONFIG))

        assert client.configuration.host == "https://remote.example.com:6443"

    def test_from_token_and_server(self):
        client = build_api_client(
            credential(token="abc123", server="https://remote.example.com:6443")
        )

        assert client.configuration.host == "https://remote.example.com:6443"
        assert client.configuration.api_key == {"authorization": "abc123"}
        assert client.configuration.api_key_prefix == {"authorization": "Bearer"}

    def test_kubeconfig_takes_precedence(self):
        client = build_api_client(
            credential(kubeconfig=KUBECONFIG, token="other", server="https://other:6443")
        )

        assert client.configuration.host == "https://remote.example.com:6443"

    def test_missing_connection_data(self):
        with pytest.raises(ConnectivityError):
            build_api_client(credential(autoImportRetry="5"))

    def test_token_without_server(self):
        with pytest.raises(ConnectivityError):
            build_api_client(credential(token="abc123"))

    @pytest.mark.parametrize("kubeconfig", ["clusters: [unclosed", "just a string"])
    def test_invalid_kubeconfig(self, kubeconfig):
        with pytest.raises(ConnectivityError):
            build_api_client(credential(kubeconfig=kubeconfig))


class TestManifestDocuments:
    def test_crds_come_first(self):
        documents = list(manifest_documents(manifest(**{"import.yaml": IMPORT, "crds.yaml": CRDS})))

        assert [d["kind"] for d in documents] == [
            "CustomResourceDefinition",
            "Namespace",
            "ServiceAccount",
        ]

    def test_skips_empty_documents(self):
        documents = list(manifest_documents(manifest(**{"import.yaml": "---\n" + IMPORT + "---\n"})))

        assert len(documents) == 2

    def test_missing_keys(self):
        assert list(manifest_documents(manifest())) == []

    def test_invalid_yaml(self):
        with pytest.raises(ImportFailure):
            list(manifest_documents(manifest(**{"import.yaml": "kind: [unclosed"})))


class TestManifestImportExecutor:
    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.resources.get.return_value.namespaced = True
        return client

    def test_applies_every_object(self, client):
        executor = ManifestImportExecutor(field_manager="test-manager")

        executor.apply(client, manifest(**{"crds.yaml": CRDS, "import.yaml": IMPORT}))

        assert client.server_side_apply.call_count == 3
        last = client.server_side_apply.call_args
        assert last.kwargs["name"] == "klusterlet"
        assert last.kwargs["namespace"] == "open-cluster-management-agent"
        assert last.kwargs["field_manager"] == "test-manager"
        assert last.kwargs["force_conflicts"] is True

    def test_cluster_scoped_object_has_no_namespace(self, client):
        client.resources.get.return_value.namespaced = False
        executor = ManifestImportExecutor(field_manager="test-manager")

        executor.apply(client, manifest(**{"crds.yaml": CRDS}))

        assert client.server_side_apply.call_args.kwargs["namespace"] is None

    def test_default_namespace(self, client):
        executor = ManifestImportExecutor(field_manager="test-manager")
        document = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: settings\n"

        executor.apply(client, manifest(**{"import.yaml": document}))

        assert client.server_side_apply.call_args.kwargs["namespace"] == "default"

    def test_field_manager_from_env(self, monkeypatch):
        monkeypatch.setenv("IMPORT_FIELD_MANAGER", "from-env")

        assert ManifestImportExecutor().field_manager == "from-env"

    def test_nothing_to_apply(self, client):
        executor = ManifestImportExecutor(field_manager="test-manager")

        with pytest.raises(ImportFailure):
            executor.apply(client, manifest())

    def test_apply_error_becomes_import_failure(self, client):
        client.server_side_apply.side_effect = RuntimeError("connection refused")
        executor = ManifestImportExecutor(field_manager="test-manager")

        with pytest.raises(ImportFailure, match="connection refused"):
            executor.apply(client, manifest(**{"import.yaml": IMPORT}))

        # Stops at the first failing object
        assert client.server_side_apply.call_count == 1
