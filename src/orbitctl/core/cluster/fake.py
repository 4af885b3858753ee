"""Fake cluster operations for testing.

FakeClusterApi is an in-memory implementation that accepts pre-configured
resources in its constructor and plays the part of OLM for subscriptions it
creates: it produces an install plan, waits for approval when the
subscription asks for manual approval, then installs a cluster service
version.
"""

import copy
import json
from typing import Any

from orbitctl.core.cluster.abc import ClusterApi, Resource
from orbitctl.core.cluster.types import (
    CATALOG_SOURCE_READY_STATE,
    INSTALL_PLAN_COMPLETE_PHASE,
    INSTALL_PLAN_FAILED_PHASE,
    INSTALL_PLAN_PENDING_CONDITION,
    OLM_API_VERSION,
    ApprovalStrategy,
)
from orbitctl.core.constants import (
    CSV_PREFIX,
    ORBIT_CLUSTER_ACTIVE_PHASE,
    ORBIT_CLUSTER_GROUP,
    ORBIT_CLUSTER_KIND,
    ORBIT_CLUSTER_NAME,
    ORBIT_CLUSTER_VERSION,
)

DEFAULT_INSTALLED_CSV = f"{CSV_PREFIX}.v1.0.0"

DEFAULT_ALM_EXAMPLES = [
    {
        "apiVersion": f"{ORBIT_CLUSTER_GROUP}/{ORBIT_CLUSTER_VERSION}",
        "kind": ORBIT_CLUSTER_KIND,
        "metadata": {"name": ORBIT_CLUSTER_NAME},
        "spec": {"server": {"replicas": 1}},
    }
]

Key = tuple[str, str, str]


class FakeClusterApi(ClusterApi):
    """In-memory fake implementation of cluster operations.

    This class has NO public setup methods. All state is provided via constructor
    using keyword arguments with sensible defaults (empty cluster with OLM).
    """

    def __init__(
        self,
        *,
        reachable: bool = True,
        olm_preinstalled: bool = True,
        openshift: bool = False,
        kubernetes_version: str | None = "v1.27.3",
        openshift_version: str | None = None,
        namespaces: list[str] | None = None,
        resources: list[Resource] | None = None,
        channel_heads: dict[str, str] | None = None,
        install_plan_polls: int = 0,
        catalog_source_polls: int = 0,
        install_plan_failure: tuple[str, str] | None = None,
        csv_failure: tuple[str, str] | None = None,
        orbit_cluster_phase: str = ORBIT_CLUSTER_ACTIVE_PHASE,
        alm_examples: list[Resource] | None = None,
    ) -> None:
        """Create FakeClusterApi with pre-configured state.

        Args:
            reachable: Result of is_reachable()
            olm_preinstalled: Result of is_olm_preinstalled()
            openshift: Result of is_openshift()
            kubernetes_version: Result of get_kubernetes_version()
            openshift_version: Result of get_openshift_version()
            namespaces: Names of namespaces that already exist
            resources: Existing objects in manifest shape. The kind and the
                metadata namespace/name decide where each one is stored.
            channel_heads: Mapping of channel -> cluster service version name
                a fresh subscription on that channel installs
            install_plan_polls: Reads of a created subscription before its
                install plan reference appears
            catalog_source_polls: Reads of a created catalog source before it
                reports READY
            install_plan_failure: (message, reason) to make install plans report
                phase Failed when they run
            csv_failure: (message, reason) to make installed cluster service
                versions report phase Failed
            orbit_cluster_phase: Status phase given to created OrbitClusters
            alm_examples: Example resources annotated on installed cluster
                service versions
        """
        self._reachable = reachable
        self._olm_preinstalled = olm_preinstalled
        self._openshift = openshift
        self._kubernetes_version = kubernetes_version
        self._openshift_version = openshift_version
        self._channel_heads = channel_heads or {}
        self._install_plan_polls = install_plan_polls
        self._catalog_source_polls = catalog_source_polls
        self._install_plan_failure = install_plan_failure
        self._csv_failure = csv_failure
        self._orbit_cluster_phase = orbit_cluster_phase
        self._alm_examples = alm_examples if alm_examples is not None else DEFAULT_ALM_EXAMPLES

        self._objects: dict[Key, Resource] = {}
        for name in namespaces or []:
            self._objects[("Namespace", "", name)] = _namespace(name, {})
        for resource in resources or []:
            self._objects[_key_of(resource)] = copy.deepcopy(resource)

        self._pending_install_plans: dict[Key, int] = {}
        self._pending_catalog_sources: dict[Key, int] = {}
        self._install_plan_counter = 0
        self._mutations: list[tuple[str, str, str, str]] = []
        self._created_subscriptions: list[Resource] = []

    @property
    def mutations(self) -> list[tuple[str, str, str, str]]:
        """Read-only access to every mutating call for test assertions.

        Returns list of (verb, kind, namespace, name) tuples.
        """
        return self._mutations

    @property
    def created_subscriptions(self) -> list[Resource]:
        """Subscription manifests passed to create_subscription()."""
        return self._created_subscriptions

    def get_resource(self, kind: str, namespace: str, name: str) -> Resource | None:
        """Inspect stored state without advancing the simulation."""
        resource = self._objects.get((kind, namespace, name))
        return copy.deepcopy(resource) if resource is not None else None

    # Internal storage helpers

    def _get(self, kind: str, namespace: str, name: str) -> Resource | None:
        resource = self._objects.get((kind, namespace, name))
        return copy.deepcopy(resource) if resource is not None else None

    def _list(self, kind: str, namespace: str | None) -> list[Resource]:
        return [
            copy.deepcopy(resource)
            for (stored_kind, stored_namespace, _), resource in sorted(self._objects.items())
            if stored_kind == kind and (namespace is None or stored_namespace == namespace)
        ]

    def _store(self, kind: str, manifest: Resource) -> Key:
        resource = copy.deepcopy(manifest)
        resource.setdefault("kind", kind)
        key = _key_of(resource)
        if key in self._objects:
            raise ValueError(f"{kind} '{key[2]}' already exists in namespace '{key[1]}'")
        self._objects[key] = resource
        self._mutations.append(("create", kind, key[1], key[2]))
        return key

    def _remove(self, kind: str, namespace: str, name: str) -> None:
        self._mutations.append(("delete", kind, namespace, name))
        self._objects.pop((kind, namespace, name), None)

    def _record(self, verb: str, kind: str, namespace: str, name: str) -> None:
        self._mutations.append((verb, kind, namespace, name))

    # Cluster information

    def is_reachable(self) -> bool:
        return self._reachable

    def is_olm_preinstalled(self) -> bool:
        return self._olm_preinstalled

    def is_openshift(self) -> bool:
        return self._openshift

    def get_kubernetes_version(self) -> str | None:
        return self._kubernetes_version

    def get_openshift_version(self) -> str | None:
        return self._openshift_version

    # Namespaces

    def get_namespace(self, name: str) -> Resource | None:
        return self._get("Namespace", "", name)

    def create_namespace(self, name: str, labels: dict[str, str]) -> None:
        self._store("Namespace", _namespace(name, labels))

    def delete_namespace(self, name: str) -> None:
        self._remove("Namespace", "", name)
        for key in [key for key in self._objects if key[1] == name]:
            del self._objects[key]

    # OLM subscriptions and install plans

    def list_subscriptions(self, namespace: str) -> list[Resource]:
        for key in list(self._pending_install_plans):
            if key[1] == namespace:
                self._advance_subscription(key)
        return self._list("Subscription", namespace)

    def get_subscription(self, namespace: str, name: str) -> Resource | None:
        key = ("Subscription", namespace, name)
        if key in self._pending_install_plans:
            self._advance_subscription(key)
        return self._get("Subscription", namespace, name)

    def create_subscription(self, manifest: Resource) -> None:
        self._created_subscriptions.append(copy.deepcopy(manifest))
        key = self._store("Subscription", manifest)
        self._objects[key].setdefault("status", {})
        self._pending_install_plans[key] = self._install_plan_polls

    def delete_subscription(self, namespace: str, name: str) -> None:
        self._pending_install_plans.pop(("Subscription", namespace, name), None)
        self._remove("Subscription", namespace, name)

    def get_install_plan(self, namespace: str, name: str) -> Resource | None:
        return self._get("InstallPlan", namespace, name)

    def approve_install_plan(self, namespace: str, name: str) -> None:
        plan = self._objects.get(("InstallPlan", namespace, name))
        if plan is None:
            raise ValueError(f"InstallPlan '{name}' not found in namespace '{namespace}'")
        self._record("approve", "InstallPlan", namespace, name)
        plan["spec"]["approved"] = True
        self._run_install_plan(namespace, plan)

    def _advance_subscription(self, key: Key) -> None:
        remaining = self._pending_install_plans[key]
        if remaining > 0:
            self._pending_install_plans[key] = remaining - 1
            return
        del self._pending_install_plans[key]

        subscription = self._objects[key]
        spec = subscription["spec"]
        namespace = key[1]
        csv_name = spec.get("startingCSV") or self._channel_heads.get(
            spec.get("channel", ""), DEFAULT_INSTALLED_CSV
        )
        automatic = spec.get("installPlanApproval") == ApprovalStrategy.AUTOMATIC.value

        self._install_plan_counter += 1
        plan_name = f"install-{self._install_plan_counter:05d}"
        plan: Resource = {
            "apiVersion": OLM_API_VERSION,
            "kind": "InstallPlan",
            "metadata": {"name": plan_name, "namespace": namespace},
            "spec": {"approved": automatic, "clusterServiceVersionNames": [csv_name]},
            "status": {"phase": "RequiresApproval"},
        }
        self._objects[("InstallPlan", namespace, plan_name)] = plan
        subscription["status"] = {
            "state": "UpgradePending",
            "currentCSV": csv_name,
            "installplan": {"name": plan_name},
            "conditions": [{"type": INSTALL_PLAN_PENDING_CONDITION, "status": "True"}],
        }
        if automatic:
            self._run_install_plan(namespace, plan)

    def _run_install_plan(self, namespace: str, plan: Resource) -> None:
        if self._install_plan_failure is not None:
            message, reason = self._install_plan_failure
            plan["status"] = {
                "phase": INSTALL_PLAN_FAILED_PHASE,
                "conditions": [
                    {"type": "Installed", "status": "False", "message": message, "reason": reason}
                ],
            }
            return

        plan["status"] = {"phase": INSTALL_PLAN_COMPLETE_PHASE}
        csv_name = plan["spec"]["clusterServiceVersionNames"][0]

        status: Resource = {"phase": "Succeeded"}
        if self._csv_failure is not None:
            message, reason = self._csv_failure
            status = {"phase": "Failed", "message": message, "reason": reason}
        self._objects[("ClusterServiceVersion", namespace, csv_name)] = {
            "apiVersion": OLM_API_VERSION,
            "kind": "ClusterServiceVersion",
            "metadata": {
                "name": csv_name,
                "namespace": namespace,
                "annotations": {"alm-examples": json.dumps(self._alm_examples)},
            },
            "spec": {
                "install": {
                    "spec": {
                        "deployments": [
                            {"spec": {"template": {"spec": {"containers": [{"image": ""}]}}}}
                        ]
                    }
                }
            },
            "status": status,
        }

        plan_name = plan["metadata"]["name"]
        for (kind, stored_namespace, _), subscription in self._objects.items():
            if kind != "Subscription" or stored_namespace != namespace:
                continue
            sub_status = subscription.get("status") or {}
            if (sub_status.get("installplan") or {}).get("name") != plan_name:
                continue
            subscription["status"] = {
                "state": "AtLatestKnown",
                "currentCSV": csv_name,
                "installedCSV": csv_name,
                "installplan": {"name": plan_name},
                "conditions": [],
            }

    # Catalog sources and operator groups

    def get_catalog_source(self, namespace: str, name: str) -> Resource | None:
        key = ("CatalogSource", namespace, name)
        remaining = self._pending_catalog_sources.get(key)
        if remaining is not None:
            if remaining > 0:
                self._pending_catalog_sources[key] = remaining - 1
            else:
                del self._pending_catalog_sources[key]
                self._objects[key]["status"] = {
                    "connectionState": {"lastObservedState": CATALOG_SOURCE_READY_STATE}
                }
        return self._get("CatalogSource", namespace, name)

    def create_catalog_source(self, manifest: Resource) -> None:
        key = self._store("CatalogSource", manifest)
        self._objects[key]["status"] = {}
        self._pending_catalog_sources[key] = self._catalog_source_polls

    def delete_catalog_source(self, namespace: str, name: str) -> None:
        self._pending_catalog_sources.pop(("CatalogSource", namespace, name), None)
        self._remove("CatalogSource", namespace, name)

    def list_operator_groups(self, namespace: str) -> list[Resource]:
        return self._list("OperatorGroup", namespace)

    def create_operator_group(self, namespace: str, name: str) -> None:
        self._store(
            "OperatorGroup",
            {
                "apiVersion": "operators.coreos.com/v1",
                "kind": "OperatorGroup",
                "metadata": {"name": name, "namespace": namespace},
                "spec": {"targetNamespaces": [namespace]},
            },
        )

    def delete_operator_group(self, namespace: str, name: str) -> None:
        self._remove("OperatorGroup", namespace, name)

    # Cluster service versions

    def get_cluster_service_version(self, namespace: str, name: str) -> Resource | None:
        return self._get("ClusterServiceVersion", namespace, name)

    def list_cluster_service_versions(self, namespace: str) -> list[Resource]:
        return self._list("ClusterServiceVersion", namespace)

    def patch_cluster_service_version(
        self, namespace: str, name: str, json_patch: list[dict[str, Any]]
    ) -> None:
        csv = self._objects.get(("ClusterServiceVersion", namespace, name))
        if csv is None:
            raise ValueError(f"ClusterServiceVersion '{name}' not found in '{namespace}'")
        self._record("patch", "ClusterServiceVersion", namespace, name)
        for operation in json_patch:
            _apply_replace(csv, operation["path"], operation["value"])

    def delete_cluster_service_version(self, namespace: str, name: str) -> None:
        self._remove("ClusterServiceVersion", namespace, name)

    # RBAC

    def get_role(self, namespace: str, name: str) -> Resource | None:
        return self._get("Role", namespace, name)

    def create_role(self, manifest: Resource) -> None:
        self._store("Role", manifest)

    def delete_role(self, namespace: str, name: str) -> None:
        self._remove("Role", namespace, name)

    def get_role_binding(self, namespace: str, name: str) -> Resource | None:
        return self._get("RoleBinding", namespace, name)

    def create_role_binding(self, manifest: Resource) -> None:
        self._store("RoleBinding", manifest)

    def delete_role_binding(self, namespace: str, name: str) -> None:
        self._remove("RoleBinding", namespace, name)

    def get_service_account(self, namespace: str, name: str) -> Resource | None:
        return self._get("ServiceAccount", namespace, name)

    def create_service_account(self, namespace: str, name: str) -> None:
        self._store(
            "ServiceAccount",
            {"kind": "ServiceAccount", "metadata": {"name": name, "namespace": namespace}},
        )

    def delete_service_account(self, namespace: str, name: str) -> None:
        self._remove("ServiceAccount", namespace, name)

    # Deployments

    def get_deployment(self, namespace: str, name: str) -> Resource | None:
        return self._get("Deployment", namespace, name)

    def create_deployment(self, manifest: Resource) -> None:
        key = self._store("Deployment", manifest)
        deployment = self._objects[key]
        replicas = deployment.get("spec", {}).get("replicas", 1)
        deployment["status"] = {"replicas": replicas, "availableReplicas": replicas}

    def set_deployment_image(self, namespace: str, name: str, image: str) -> None:
        deployment = self._objects.get(("Deployment", namespace, name))
        if deployment is None:
            raise ValueError(f"Deployment '{name}' not found in namespace '{namespace}'")
        self._record("set-image", "Deployment", namespace, name)
        deployment["spec"]["template"]["spec"]["containers"][0]["image"] = image

    def scale_deployment(self, namespace: str, name: str, replicas: int) -> None:
        deployment = self._objects.get(("Deployment", namespace, name))
        if deployment is None:
            raise ValueError(f"Deployment '{name}' not found in namespace '{namespace}'")
        self._record("scale", "Deployment", namespace, name)
        deployment.setdefault("spec", {})["replicas"] = replicas
        deployment["status"] = {"replicas": replicas, "availableReplicas": replicas}

    def delete_deployment(self, namespace: str, name: str) -> None:
        self._remove("Deployment", namespace, name)

    # OrbitCluster custom resources

    def list_orbit_clusters(self, namespace: str | None) -> list[Resource]:
        return self._list(ORBIT_CLUSTER_KIND, namespace)

    def create_orbit_cluster(self, namespace: str, body: Resource) -> None:
        resource = copy.deepcopy(body)
        resource.setdefault("metadata", {})["namespace"] = namespace
        key = self._store(ORBIT_CLUSTER_KIND, resource)
        self._objects[key]["status"] = {"phase": self._orbit_cluster_phase}

    def patch_orbit_cluster(self, namespace: str, name: str, patch: Resource) -> None:
        resource = self._objects.get((ORBIT_CLUSTER_KIND, namespace, name))
        if resource is None:
            raise ValueError(f"OrbitCluster '{name}' not found in namespace '{namespace}'")
        self._record("patch", ORBIT_CLUSTER_KIND, namespace, name)
        _merge_patch(resource, patch)

    def delete_orbit_cluster(self, namespace: str, name: str) -> None:
        self._remove(ORBIT_CLUSTER_KIND, namespace, name)


def _namespace(name: str, labels: dict[str, str]) -> Resource:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name, "labels": labels}}


def _key_of(resource: Resource) -> Key:
    metadata = resource["metadata"]
    if resource["kind"] == "Namespace":
        return ("Namespace", "", metadata["name"])
    return (resource["kind"], metadata.get("namespace", ""), metadata["name"])


def _merge_patch(target: Resource, patch: Resource) -> None:
    for key, value in patch.items():
        if value is None:
            target.pop(key, None)
        elif isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_patch(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _apply_replace(target: Any, path: str, value: Any) -> None:
    parts = path.strip("/").split("/")
    for part in parts[:-1]:
        target = target[int(part)] if isinstance(target, list) else target[part]
    last = parts[-1]
    if isinstance(target, list):
        target[int(last)] = value
    else:
        target[last] = value
