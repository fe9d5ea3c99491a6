"""Fixed policy constants shared across the migration pipeline."""

# Environment variable naming the kubeconfig path read by plugins
SHARED_KUBECONFIG_ENV = "PLUGINS_KUBECONFIG"

# Logical client identities, sent in the user agent
SOURCE_CLIENT_NAME = "source-cluster"
DESTINATION_CLIENT_NAME = "dest-cluster"

# Volumes are not carried by this migration path
EXPORT_EXCLUDED_RESOURCES = (
    "persistentvolumeclaims",
    "persistentvolumes",
)

# Cluster-identity and ephemeral objects
NON_RESTORABLE_RESOURCES = (
    "nodes",
    "events",
    "events.events.k8s.io",
)

DEFAULT_RESTORE_PRIORITIES = (
    "customresourcedefinitions",
    "namespaces",
    "storageclasses",
    "volumesnapshotclass.snapshot.storage.k8s.io",
    "volumesnapshotcontents.snapshot.storage.k8s.io",
    "volumesnapshots.snapshot.storage.k8s.io",
    "persistentvolumes",
    "persistentvolumeclaims",
    "secrets",
    "configmaps",
    "serviceaccounts",
    "limitranges",
    "pods",
    "replicasets.apps",
    "clusters.cluster.x-k8s.io",
    "clusterresourcesets.addons.cluster.x-k8s.io",
)

# Export archive layout
ARCHIVE_FORMAT_VERSION = "1"
ARCHIVE_VERSION_PATH = "metadata/version"
ARCHIVE_DESCRIPTOR_PATH = "metadata/export.json"
ARCHIVE_RESOURCES_DIR = "resources"
ARCHIVE_NAMESPACED_DIR = "namespaces"
ARCHIVE_CLUSTER_DIR = "cluster"
MEDIUM_PREFIX = "export-"
MEDIUM_SUFFIX = ".tar.gz"

# Labels stamped on replayed objects
EXPORT_NAME_LABEL = "kube-migrator.io/export-name"
REPLAY_NAME_LABEL = "kube-migrator.io/replay-name"

# Metadata fields populated by the API server
SERVER_METADATA_FIELDS = (
    "uid",
    "resourceVersion",
    "selfLink",
    "creationTimestamp",
    "generation",
    "managedFields",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
)

NAMESPACE_POLL_INTERVAL_SECONDS = 5

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409

# Entry point group scanned for installed plugins
PLUGIN_ENTRY_POINT_GROUP = "kube_migrator.plugins"
