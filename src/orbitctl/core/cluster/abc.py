"""Abstract base class for cluster operations."""

from abc import ABC, abstractmethod
from typing import Any

Resource = dict[str, Any]


class ClusterApi(ABC):
    """Abstract interface for the Kubernetes objects orbitctl manages.

    Resources are exchanged as plain dictionaries in their manifest shape.
    Reads return None (or an empty list) when the object is absent. Deleting an
    absent object is a no-op. Every other failure raises ClusterApiError.

    All implementations (real and fake) must implement this interface.
    """

    # Cluster information

    @abstractmethod
    def is_reachable(self) -> bool:
        """Check that the API server answers health checks."""
        ...

    @abstractmethod
    def is_olm_preinstalled(self) -> bool:
        """Check that the OLM Subscription CRD is registered."""
        ...

    @abstractmethod
    def is_openshift(self) -> bool:
        """Check whether the cluster serves the OpenShift config API group."""
        ...

    @abstractmethod
    def get_kubernetes_version(self) -> str | None:
        """Get the API server version, e.g. "v1.27.3", or None if unknown."""
        ...

    @abstractmethod
    def get_openshift_version(self) -> str | None:
        """Get the OpenShift release version, e.g. "4.12.5", or None if not OpenShift."""
        ...

    # Namespaces

    @abstractmethod
    def get_namespace(self, name: str) -> Resource | None: ...

    @abstractmethod
    def create_namespace(self, name: str, labels: dict[str, str]) -> None: ...

    @abstractmethod
    def delete_namespace(self, name: str) -> None: ...

    # OLM: subscriptions, install plans, catalog sources, operator groups

    @abstractmethod
    def list_subscriptions(self, namespace: str) -> list[Resource]: ...

    @abstractmethod
    def get_subscription(self, namespace: str, name: str) -> Resource | None: ...

    @abstractmethod
    def create_subscription(self, manifest: Resource) -> None:
        """Create a subscription in the namespace named by its metadata."""
        ...

    @abstractmethod
    def delete_subscription(self, namespace: str, name: str) -> None: ...

    @abstractmethod
    def get_install_plan(self, namespace: str, name: str) -> Resource | None: ...

    @abstractmethod
    def approve_install_plan(self, namespace: str, name: str) -> None:
        """Set spec.approved on an install plan so OLM executes it."""
        ...

    @abstractmethod
    def get_catalog_source(self, namespace: str, name: str) -> Resource | None: ...

    @abstractmethod
    def create_catalog_source(self, manifest: Resource) -> None: ...

    @abstractmethod
    def delete_catalog_source(self, namespace: str, name: str) -> None: ...

    @abstractmethod
    def list_operator_groups(self, namespace: str) -> list[Resource]: ...

    @abstractmethod
    def create_operator_group(self, namespace: str, name: str) -> None:
        """Create an operator group targeting its own namespace."""
        ...

    @abstractmethod
    def delete_operator_group(self, namespace: str, name: str) -> None: ...

    # OLM: cluster service versions (installed operator versions)

    @abstractmethod
    def get_cluster_service_version(self, namespace: str, name: str) -> Resource | None: ...

    @abstractmethod
    def list_cluster_service_versions(self, namespace: str) -> list[Resource]: ...

    @abstractmethod
    def patch_cluster_service_version(
        self, namespace: str, name: str, json_patch: list[dict[str, Any]]
    ) -> None:
        """Apply an RFC 6902 JSON patch to a cluster service version."""
        ...

    @abstractmethod
    def delete_cluster_service_version(self, namespace: str, name: str) -> None: ...

    # RBAC

    @abstractmethod
    def get_role(self, namespace: str, name: str) -> Resource | None: ...

    @abstractmethod
    def create_role(self, manifest: Resource) -> None: ...

    @abstractmethod
    def delete_role(self, namespace: str, name: str) -> None: ...

    @abstractmethod
    def get_role_binding(self, namespace: str, name: str) -> Resource | None: ...

    @abstractmethod
    def create_role_binding(self, manifest: Resource) -> None: ...

    @abstractmethod
    def delete_role_binding(self, namespace: str, name: str) -> None: ...

    @abstractmethod
    def get_service_account(self, namespace: str, name: str) -> Resource | None: ...

    @abstractmethod
    def create_service_account(self, namespace: str, name: str) -> None: ...

    @abstractmethod
    def delete_service_account(self, namespace: str, name: str) -> None: ...

    # Deployments

    @abstractmethod
    def get_deployment(self, namespace: str, name: str) -> Resource | None: ...

    @abstractmethod
    def create_deployment(self, manifest: Resource) -> None: ...

    @abstractmethod
    def set_deployment_image(self, namespace: str, name: str, image: str) -> None:
        """Replace the image of the deployment's first container."""
        ...

    @abstractmethod
    def scale_deployment(self, namespace: str, name: str, replicas: int) -> None: ...

    @abstractmethod
    def delete_deployment(self, namespace: str, name: str) -> None: ...

    # OrbitCluster custom resources

    @abstractmethod
    def list_orbit_clusters(self, namespace: str | None) -> list[Resource]:
        """List OrbitCluster resources in a namespace, or in all namespaces for None."""
        ...

    @abstractmethod
    def create_orbit_cluster(self, namespace: str, body: Resource) -> None: ...

    @abstractmethod
    def patch_orbit_cluster(self, namespace: str, name: str, patch: Resource) -> None:
        """Apply a JSON merge patch to an OrbitCluster."""
        ...

    @abstractmethod
    def delete_orbit_cluster(self, namespace: str, name: str) -> None: ...
