"""Constants used across the operator."""

# ManagedCluster custom resource on the hub
CLUSTER_GROUP = "cluster.open-cluster-management.io"
CLUSTER_VERSION = "v1"
CLUSTER_PLURAL = "managedclusters"

# Auto-import secret, created by a user in the cluster namespace
AUTO_IMPORT_SECRET_NAME = "auto-import-secret"
AUTO_IMPORT_RETRY_KEY = "autoImportRetry"

# Connection data keys inside the auto-import secret
KUBECONFIG_KEY = "kubeconfig"
TOKEN_KEY = "token"
SERVER_KEY = "server"

# Import secret, generated per cluster as "<cluster>-import"
IMPORT_SECRET_SUFFIX = "import"
IMPORT_CRDS_KEY = "crds.yaml"
IMPORT_MANIFEST_KEY = "import.yaml"

# Condition reported on the ManagedCluster
IMPORT_CONDITION_TYPE = "ImportSucceeded"
IMPORT_REASON_SUCCEEDED = "Imported"
IMPORT_REASON_FAILED = "NotImported"

# Field manager used for server-side apply on the remote cluster
DEFAULT_FIELD_MANAGER = "auto-import-operator"
