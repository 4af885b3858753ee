"""Real cluster implementation using the kubernetes Python client."""

import logging
from collections.abc import Callable
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from orbitctl.core.cluster.abc import ClusterApi, Resource
from orbitctl.core.cluster.types import OLM_GROUP, OLM_VERSION, OPERATOR_GROUP_VERSION
from orbitctl.core.constants import (
    ORBIT_CLUSTER_GROUP,
    ORBIT_CLUSTER_PLURAL,
    ORBIT_CLUSTER_VERSION,
)
from orbitctl.core.errors import ClusterApiError

logger = logging.getLogger(__name__)

SUBSCRIPTION_CRD = "subscriptions.operators.coreos.com"
OPENSHIFT_CONFIG_GROUP = "config.openshift.io"


class RealClusterApi(ClusterApi):
    """Production implementation talking to the API server.

    Credentials are loaded on first use: in-cluster service account first, then
    the kubeconfig file (honouring $KUBECONFIG).
    """

    def __init__(self, kube_context: str | None = None) -> None:
        self._kube_context = kube_context
        self._api_client: client.ApiClient | None = None

    # Client plumbing

    def _client(self) -> client.ApiClient:
        if self._api_client is None:
            try:
                config.load_incluster_config()
            except config.ConfigException:
                try:
                    config.load_kube_config(context=self._kube_context)
                except (config.ConfigException, OSError) as e:
                    raise ClusterApiError("load cluster credentials", str(e)) from e
            self._api_client = client.ApiClient()
        return self._api_client

    def _core(self) -> client.CoreV1Api:
        return client.CoreV1Api(self._client())

    def _apps(self) -> client.AppsV1Api:
        return client.AppsV1Api(self._client())

    def _rbac(self) -> client.RbacAuthorizationV1Api:
        return client.RbacAuthorizationV1Api(self._client())

    def _custom(self) -> client.CustomObjectsApi:
        return client.CustomObjectsApi(self._client())

    def _to_dict(self, obj: Any) -> Resource:
        if isinstance(obj, dict):
            return obj
        return self._client().sanitize_for_serialization(obj)

    def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        logger.debug("Cluster call: %s", operation)
        try:
            return fn()
        except ApiException as e:
            raise ClusterApiError(operation, f"{e.status} {e.reason}: {e.body}") from e
        except HTTPError as e:
            raise ClusterApiError(operation, str(e)) from e

    def _read(self, operation: str, fn: Callable[[], Any]) -> Resource | None:
        try:
            return self._to_dict(self._call(operation, fn))
        except ClusterApiError as e:
            if isinstance(e.__cause__, ApiException) and e.__cause__.status == 404:
                return None
            raise

    def _delete(self, operation: str, fn: Callable[[], Any]) -> None:
        try:
            self._call(operation, fn)
        except ClusterApiError as e:
            if isinstance(e.__cause__, ApiException) and e.__cause__.status == 404:
                logger.debug("Nothing to %s", operation)
                return
            raise

    # Custom object helpers

    def _get_custom(
        self, group: str, version: str, plural: str, namespace: str, name: str
    ) -> Resource | None:
        return self._read(
            f"get {plural} '{name}' in namespace '{namespace}'",
            lambda: self._custom().get_namespaced_custom_object(
                group, version, namespace, plural, name
            ),
        )

    def _list_custom(
        self, group: str, version: str, plural: str, namespace: str | None
    ) -> list[Resource]:
        if namespace is None:
            result = self._call(
                f"list {plural} in all namespaces",
                lambda: self._custom().list_cluster_custom_object(group, version, plural),
            )
        else:
            result = self._call(
                f"list {plural} in namespace '{namespace}'",
                lambda: self._custom().list_namespaced_custom_object(
                    group, version, namespace, plural
                ),
            )
        return list(result.get("items", []))

    def _create_custom(
        self, group: str, version: str, plural: str, namespace: str, body: Resource
    ) -> None:
        name = body.get("metadata", {}).get("name")
        self._call(
            f"create {plural} '{name}' in namespace '{namespace}'",
            lambda: self._custom().create_namespaced_custom_object(
                group, version, namespace, plural, body
            ),
        )

    def _patch_custom(
        self, group: str, version: str, plural: str, namespace: str, name: str, body: Any
    ) -> None:
        self._call(
            f"patch {plural} '{name}' in namespace '{namespace}'",
            lambda: self._custom().patch_namespaced_custom_object(
                group, version, namespace, plural, name, body
            ),
        )

    def _delete_custom(
        self, group: str, version: str, plural: str, namespace: str, name: str
    ) -> None:
        self._delete(
            f"delete {plural} '{name}' in namespace '{namespace}'",
            lambda: self._custom().delete_namespaced_custom_object(
                group, version, namespace, plural, name
            ),
        )

    # Cluster information

    def is_reachable(self) -> bool:
        try:
            self._call(
                "query API server version", lambda: client.VersionApi(self._client()).get_code()
            )
        except ClusterApiError as e:
            logger.debug("Cluster is not reachable: %s", e)
            return False
        return True

    def is_olm_preinstalled(self) -> bool:
        crd = self._read(
            f"read CRD '{SUBSCRIPTION_CRD}'",
            lambda: client.ApiextensionsV1Api(self._client()).read_custom_resource_definition(
                SUBSCRIPTION_CRD
            ),
        )
        return crd is not None

    def is_openshift(self) -> bool:
        groups = self._call(
            "list API groups", lambda: client.ApisApi(self._client()).get_api_versions()
        )
        return any(group.name == OPENSHIFT_CONFIG_GROUP for group in groups.groups or [])

    def get_kubernetes_version(self) -> str | None:
        info = self._call(
            "query API server version", lambda: client.VersionApi(self._client()).get_code()
        )
        return info.git_version

    def get_openshift_version(self) -> str | None:
        cluster_version = self._read(
            "read OpenShift cluster version",
            lambda: self._custom().get_cluster_custom_object(
                OPENSHIFT_CONFIG_GROUP, "v1", "clusterversions", "version"
            ),
        )
        if cluster_version is None:
            return None
        return cluster_version.get("status", {}).get("desired", {}).get("version")

    # Namespaces

    def get_namespace(self, name: str) -> Resource | None:
        return self._read(
            f"read namespace '{name}'", lambda: self._core().read_namespace(name)
        )

    def create_namespace(self, name: str, labels: dict[str, str]) -> None:
        body = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {"name": name, "labels": labels},
        }
        self._call(f"create namespace '{name}'", lambda: self._core().create_namespace(body))

    def delete_namespace(self, name: str) -> None:
        self._delete(f"delete namespace '{name}'", lambda: self._core().delete_namespace(name))

    # OLM

    def list_subscriptions(self, namespace: str) -> list[Resource]:
        return self._list_custom(OLM_GROUP, OLM_VERSION, "subscriptions", namespace)

    def get_subscription(self, namespace: str, name: str) -> Resource | None:
        return self._get_custom(OLM_GROUP, OLM_VERSION, "subscriptions", namespace, name)

    def create_subscription(self, manifest: Resource) -> None:
        namespace = manifest["metadata"]["namespace"]
        self._create_custom(OLM_GROUP, OLM_VERSION, "subscriptions", namespace, manifest)

    def delete_subscription(self, namespace: str, name: str) -> None:
        self._delete_custom(OLM_GROUP, OLM_VERSION, "subscriptions", namespace, name)

    def get_install_plan(self, namespace: str, name: str) -> Resource | None:
        return self._get_custom(OLM_GROUP, OLM_VERSION, "installplans", namespace, name)

    def approve_install_plan(self, namespace: str, name: str) -> None:
        self._patch_custom(
            OLM_GROUP, OLM_VERSION, "installplans", namespace, name, {"spec": {"approved": True}}
        )

    def get_catalog_source(self, namespace: str, name: str) -> Resource | None:
        return self._get_custom(OLM_GROUP, OLM_VERSION, "catalogsources", namespace, name)

    def create_catalog_source(self, manifest: Resource) -> None:
        namespace = manifest["metadata"]["namespace"]
        self._create_custom(OLM_GROUP, OLM_VERSION, "catalogsources", namespace, manifest)

    def delete_catalog_source(self, namespace: str, name: str) -> None:
        self._delete_custom(OLM_GROUP, OLM_VERSION, "catalogsources", namespace, name)

    def list_operator_groups(self, namespace: str) -> list[Resource]:
        return self._list_custom(OLM_GROUP, OPERATOR_GROUP_VERSION, "operatorgroups", namespace)

    def create_operator_group(self, namespace: str, name: str) -> None:
        body = {
            "apiVersion": f"{OLM_GROUP}/{OPERATOR_GROUP_VERSION}",
            "kind": "OperatorGroup",
            "metadata": {"name": name, "namespace": namespace},
            "spec": {"targetNamespaces": [namespace]},
        }
        self._create_custom(OLM_GROUP, OPERATOR_GROUP_VERSION, "operatorgroups", namespace, body)

    def delete_operator_group(self, namespace: str, name: str) -> None:
        self._delete_custom(OLM_GROUP, OPERATOR_GROUP_VERSION, "operatorgroups", namespace, name)

    def get_cluster_service_version(self, namespace: str, name: str) -> Resource | None:
        return self._get_custom(OLM_GROUP, OLM_VERSION, "clusterserviceversions", namespace, name)

    def list_cluster_service_versions(self, namespace: str) -> list[Resource]:
        return self._list_custom(OLM_GROUP, OLM_VERSION, "clusterserviceversions", namespace)

    def patch_cluster_service_version(
        self, namespace: str, name: str, json_patch: list[dict[str, Any]]
    ) -> None:
        self._patch_custom(
            OLM_GROUP, OLM_VERSION, "clusterserviceversions", namespace, name, json_patch
        )

    def delete_cluster_service_version(self, namespace: str, name: str) -> None:
        self._delete_custom(OLM_GROUP, OLM_VERSION, "clusterserviceversions", namespace, name)

    # RBAC

    def get_role(self, namespace: str, name: str) -> Resource | None:
        return self._read(
            f"read role '{name}' in namespace '{namespace}'",
            lambda: self._rbac().read_namespaced_role(name, namespace),
        )

    def create_role(self, manifest: Resource) -> None:
        namespace = manifest["metadata"]["namespace"]
        self._call(
            f"create role '{manifest['metadata']['name']}' in namespace '{namespace}'",
            lambda: self._rbac().create_namespaced_role(namespace, manifest),
        )

    def delete_role(self, namespace: str, name: str) -> None:
        self._delete(
            f"delete role '{name}' in namespace '{namespace}'",
            lambda: self._rbac().delete_namespaced_role(name, namespace),
        )

    def get_role_binding(self, namespace: str, name: str) -> Resource | None:
        return self._read(
            f"read role binding '{name}' in namespace '{namespace}'",
            lambda: self._rbac().read_namespaced_role_binding(name, namespace),
        )

    def create_role_binding(self, manifest: Resource) -> None:
        namespace = manifest["metadata"]["namespace"]
        self._call(
            f"create role binding '{manifest['metadata']['name']}' in namespace '{namespace}'",
            lambda: self._rbac().create_namespaced_role_binding(namespace, manifest),
        )

    def delete_role_binding(self, namespace: str, name: str) -> None:
        self._delete(
            f"delete role binding '{name}' in namespace '{namespace}'",
            lambda: self._rbac().delete_namespaced_role_binding(name, namespace),
        )

    def get_service_account(self, namespace: str, name: str) -> Resource | None:
        return self._read(
            f"read service account '{name}' in namespace '{namespace}'",
            lambda: self._core().read_namespaced_service_account(name, namespace),
        )

    def create_service_account(self, namespace: str, name: str) -> None:
        body = {"apiVersion": "v1", "kind": "ServiceAccount", "metadata": {"name": name}}
        self._call(
            f"create service account '{name}' in namespace '{namespace}'",
            lambda: self._core().create_namespaced_service_account(namespace, body),
        )

    def delete_service_account(self, namespace: str, name: str) -> None:
        self._delete(
            f"delete service account '{name}' in namespace '{namespace}'",
            lambda: self._core().delete_namespaced_service_account(name, namespace),
        )

    # Deployments

    def get_deployment(self, namespace: str, name: str) -> Resource | None:
        return self._read(
            f"read deployment '{name}' in namespace '{namespace}'",
            lambda: self._apps().read_namespaced_deployment(name, namespace),
        )

    def create_deployment(self, manifest: Resource) -> None:
        namespace = manifest["metadata"]["namespace"]
        self._call(
            f"create deployment '{manifest['metadata']['name']}' in namespace '{namespace}'",
            lambda: self._apps().create_namespaced_deployment(namespace, manifest),
        )

    def set_deployment_image(self, namespace: str, name: str, image: str) -> None:
        deployment = self.get_deployment(namespace, name)
        if deployment is None:
            raise ClusterApiError(
                f"set image of deployment '{name}'", f"not found in namespace '{namespace}'"
            )
        container = deployment["spec"]["template"]["spec"]["containers"][0]["name"]
        containers = [{"name": container, "image": image}]
        patch = {"spec": {"template": {"spec": {"containers": containers}}}}
        self._call(
            f"set image of deployment '{name}' in namespace '{namespace}'",
            lambda: self._apps().patch_namespaced_deployment(name, namespace, patch),
        )

    def scale_deployment(self, namespace: str, name: str, replicas: int) -> None:
        self._call(
            f"scale deployment '{name}' in namespace '{namespace}' to {replicas}",
            lambda: self._apps().patch_namespaced_deployment_scale(
                name, namespace, {"spec": {"replicas": replicas}}
            ),
        )

    def delete_deployment(self, namespace: str, name: str) -> None:
        self._delete(
            f"delete deployment '{name}' in namespace '{namespace}'",
            lambda: self._apps().delete_namespaced_deployment(name, namespace),
        )

    # OrbitCluster

    def list_orbit_clusters(self, namespace: str | None) -> list[Resource]:
        return self._list_custom(
            ORBIT_CLUSTER_GROUP, ORBIT_CLUSTER_VERSION, ORBIT_CLUSTER_PLURAL, namespace
        )

    def create_orbit_cluster(self, namespace: str, body: Resource) -> None:
        self._create_custom(
            ORBIT_CLUSTER_GROUP, ORBIT_CLUSTER_VERSION, ORBIT_CLUSTER_PLURAL, namespace, body
        )

    def patch_orbit_cluster(self, namespace: str, name: str, patch: Resource) -> None:
        self._patch_custom(
            ORBIT_CLUSTER_GROUP, ORBIT_CLUSTER_VERSION, ORBIT_CLUSTER_PLURAL, namespace, name, patch
        )

    def delete_orbit_cluster(self, namespace: str, name: str) -> None:
        self._delete_custom(
            ORBIT_CLUSTER_GROUP, ORBIT_CLUSTER_VERSION, ORBIT_CLUSTER_PLURAL, namespace, name
        )
