"""Well-known names shared by the installers."""

# Namespaces
DEFAULT_NAMESPACE = "orbit"
OLM_SUGGESTED_NAMESPACE = "openshift-orbit"
ALL_NAMESPACES_OPERATOR_NAMESPACE = "openshift-operators"

# Application custom resource
ORBIT_CLUSTER_GROUP = "org.orbit"
ORBIT_CLUSTER_VERSION = "v2"
ORBIT_CLUSTER_KIND = "OrbitCluster"
ORBIT_CLUSTER_PLURAL = "orbitclusters"
ORBIT_CLUSTER_NAME = "orbit"
ORBIT_CLUSTER_ACTIVE_PHASE = "Active"

# Deployments
ORBIT_SERVER_DEPLOYMENT = "orbit-server"
OPERATOR_DEPLOYMENT = "orbit-operator"
OPERATOR_SERVICE_ACCOUNT = "orbit-operator"

# Operator images
DEFAULT_OPERATOR_IMAGE_NAME = "quay.io/orbit/orbit-operator"

# OLM resources created by orbitctl
OPERATOR_GROUP_NAME = "orbit-operator-group"
SUBSCRIPTION_NAME = "orbit-subscription"
CSV_PREFIX = "orbit-operator"
STABLE_PACKAGE_NAME = "orbit"
NEXT_PACKAGE_NAME_PREFIX = "orbit-preview"
NEXT_CATALOG_SOURCE_NAME = "orbit-next-catalog"
NEXT_CATALOG_SOURCE_IMAGE = "quay.io/orbit/orbit-operator-catalog:next"
CUSTOM_CATALOG_SOURCE_NAME = "orbit-custom-catalog"
CATALOG_SOURCE_POLL_INTERVAL = "15m"

# Platform default stable catalog sources
KUBERNETES_CATALOG_SOURCE = "operatorhubio-catalog"
KUBERNETES_CATALOG_SOURCE_NAMESPACE = "olm"
OPENSHIFT_CATALOG_SOURCE = "community-operators"
OPENSHIFT_CATALOG_SOURCE_NAMESPACE = "openshift-marketplace"

# Starting cluster service version templates for stable channels
STABLE_STARTING_CSV_TEMPLATE = "orbit-operator.v{version}"
STABLE_ALL_NAMESPACES_STARTING_CSV_TEMPLATE = "orbit-operator.v{version}-all-namespaces"

# Cluster monitoring on OpenShift
PROMETHEUS_ROLE_NAME = "orbit-prometheus"
PROMETHEUS_NAMESPACE = "openshift-monitoring"
PROMETHEUS_SERVICE_ACCOUNT = "prometheus-k8s"
CLUSTER_MONITORING_LABEL = "openshift.io/cluster-monitoring"

# Timeouts in seconds
DEFAULT_OLM_INSTALL_TIMEOUT = 600
DEFAULT_OLM_UPDATE_TIMEOUT = 60
DEFAULT_POD_READY_TIMEOUT = 300
CATALOG_SOURCE_READY_TIMEOUT = 120
DEFAULT_POLL_INTERVAL = 1.0
