"""Shared operator state - thread-safe singleton for Kubernetes clients."""

import threading
from dataclasses import dataclass, field

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from locks import KeyedLock
from resources.import_client import KubeconfigClientFactory, ManifestImportExecutor
from resources.store import KubernetesResourceStore


@dataclass
class OperatorState:
    """Thread-safe operator state container.

    This class provides thread-safe access to shared operator resources:
    - Kubernetes API clients and the resource store built on them
    - Import client factory and executor
    - Per-cluster reconciliation locks
    - The stop flag set on operator shutdown

    All handlers should use the global `state` instance rather than
    creating their own clients.
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _store: KubernetesResourceStore | None = field(default=None, repr=False)
    _client_factory: KubeconfigClientFactory | None = field(default=None, repr=False)
    _executor: ManifestImportExecutor | None = field(default=None, repr=False)
    _k8s_core_api: k8s_client.CoreV1Api | None = field(default=None, repr=False)
    _k8s_custom_api: k8s_client.CustomObjectsApi | None = field(default=None, repr=False)
    _k8s_configured: bool = field(default=False, repr=False)
    cluster_locks: KeyedLock = field(default_factory=KeyedLock)
    stopping: threading.Event = field(default_factory=threading.Event, repr=False)

    def _ensure_k8s_config(self) -> None:
        """Ensure Kubernetes configuration is loaded (must hold lock)."""
        if not self._k8s_configured:
            try:
                k8s_config.load_incluster_config()
            except k8s_config.ConfigException:
                k8s_config.load_kube_config()
            self._k8s_configured = True

    def get_k8s_core_api(self) -> k8s_client.CoreV1Api:
        """Get or create the Kubernetes CoreV1Api client (thread-safe)."""
        with self._lock:
            self._ensure_k8s_config()
            if self._k8s_core_api is None:
                self._k8s_core_api = k8s_client.CoreV1Api()
            return self._k8s_core_api

    def get_k8s_custom_api(self) -> k8s_client.CustomObjectsApi:
        """Get or create the Kubernetes CustomObjectsApi client (thread-safe)."""
        with self._lock:
            self._ensure_k8s_config()
            if self._k8s_custom_api is None:
                self._k8s_custom_api = k8s_client.CustomObjectsApi()
            return self._k8s_custom_api

    def get_store(self) -> KubernetesResourceStore:
        """Get or create the hub resource store (thread-safe)."""
        core_api = self.get_k8s_core_api()
        custom_api = self.get_k8s_custom_api()
        with self._lock:
            if self._store is None:
                self._store = KubernetesResourceStore(core_api, custom_api)
            return self._store

    def get_client_factory(self) -> KubeconfigClientFactory:
        with self._lock:
            if self._client_factory is None:
                self._client_factory = KubeconfigClientFactory()
            return self._client_factory

    def get_executor(self) -> ManifestImportExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ManifestImportExecutor()
            return self._executor

    def close(self) -> None:
        """Signal in-flight reconciliations to stop."""
        self.stopping.set()


# Global operator state singleton
state = OperatorState()
