"""Stages shared by both installers.

Namespace creation, OrbitCluster preparation, creation, patching and
readiness, confirmation of updates, and cluster monitoring RBAC.
"""

import copy
import json
from typing import Any

from orbitctl.core.cluster.types import resource_name
from orbitctl.core.constants import (
    CLUSTER_MONITORING_LABEL,
    ORBIT_CLUSTER_ACTIVE_PHASE,
    ORBIT_CLUSTER_GROUP,
    ORBIT_CLUSTER_KIND,
    ORBIT_CLUSTER_NAME,
    ORBIT_CLUSTER_VERSION,
    PROMETHEUS_NAMESPACE,
    PROMETHEUS_ROLE_NAME,
    PROMETHEUS_SERVICE_ACCOUNT,
)
from orbitctl.core.context import OrbitContext
from orbitctl.core.errors import InstallationFailedError, NotDeployedError, UserCancelledError
from orbitctl.core.pipeline import InstallationContext, Stage, StageOutcome
from orbitctl.core.polling import poll_until

ALM_EXAMPLES_ANNOTATION = "alm-examples"


def default_orbit_cluster() -> dict[str, Any]:
    """Built-in OrbitCluster used when neither a file nor the operator provides one."""
    return {
        "apiVersion": f"{ORBIT_CLUSTER_GROUP}/{ORBIT_CLUSTER_VERSION}",
        "kind": ORBIT_CLUSTER_KIND,
        "metadata": {"name": ORBIT_CLUSTER_NAME},
        "spec": {"server": {}},
    }


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Return base with patch merged in; nested mappings merge, everything else replaces."""
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def orbit_cluster_from_csv(csv: dict[str, Any]) -> dict[str, Any] | None:
    """Pick the OrbitCluster example the operator publishes in its alm-examples annotation."""
    metadata = csv["metadata"]
    raw = (metadata.get("annotations") or {}).get(ALM_EXAMPLES_ANNOTATION)
    if not raw:
        return None
    try:
        examples = json.loads(raw)
    except ValueError as e:
        raise InstallationFailedError(
            metadata["name"],
            metadata.get("namespace", ""),
            f"cannot parse the {ALM_EXAMPLES_ANNOTATION} annotation: {e}",
            "InvalidAnnotation",
        ) from e
    for example in examples:
        if example.get("kind") == ORBIT_CLUSTER_KIND:
            return example
    return None


def namespace_stages(octx: OrbitContext, namespace: str) -> list[Stage]:
    def create_namespace(ctx: InstallationContext) -> StageOutcome:
        if octx.cluster.get_namespace(namespace) is not None:
            return StageOutcome.exists()
        labels = {CLUSTER_MONITORING_LABEL: "true"} if ctx.config.cluster_monitoring else {}
        octx.cluster.create_namespace(namespace, labels)
        return StageOutcome.ok()

    return [Stage(title=f"Create namespace {namespace}", run=create_namespace, reads=("config",))]


def cluster_monitoring_stages(octx: OrbitContext, namespace: str) -> list[Stage]:
    """Let the OpenShift monitoring stack scrape Orbit in its namespace."""

    def create_role(ctx: InstallationContext) -> StageOutcome:
        if octx.cluster.get_role(namespace, PROMETHEUS_ROLE_NAME) is not None:
            return StageOutcome.exists()
        octx.cluster.create_role(
            {
                "apiVersion": "rbac.authorization.k8s.io/v1",
                "kind": "Role",
                "metadata": {"name": PROMETHEUS_ROLE_NAME, "namespace": namespace},
                "rules": [
                    {
                        "apiGroups": [""],
                        "resources": ["services", "endpoints", "pods"],
                        "verbs": ["get", "list", "watch"],
                    }
                ],
            }
        )
        return StageOutcome.ok()

    def create_role_binding(ctx: InstallationContext) -> StageOutcome:
        if octx.cluster.get_role_binding(namespace, PROMETHEUS_ROLE_NAME) is not None:
            return StageOutcome.exists()
        octx.cluster.create_role_binding(
            {
                "apiVersion": "rbac.authorization.k8s.io/v1",
                "kind": "RoleBinding",
                "metadata": {"name": PROMETHEUS_ROLE_NAME, "namespace": namespace},
                "roleRef": {
                    "apiGroup": "rbac.authorization.k8s.io",
                    "kind": "Role",
                    "name": PROMETHEUS_ROLE_NAME,
                },
                "subjects": [
                    {
                        "kind": "ServiceAccount",
                        "name": PROMETHEUS_SERVICE_ACCOUNT,
                        "namespace": PROMETHEUS_NAMESPACE,
                    }
                ],
            }
        )
        return StageOutcome.ok()

    def enabled(ctx: InstallationContext) -> bool:
        return ctx.config.cluster_monitoring

    return [
        Stage(
            title=f"Create Role {PROMETHEUS_ROLE_NAME} in namespace {namespace}",
            run=create_role,
            when=enabled,
            reads=("config",),
        ),
        Stage(
            title=f"Create RoleBinding {PROMETHEUS_ROLE_NAME} in namespace {namespace}",
            run=create_role_binding,
            when=enabled,
            reads=("config",),
        ),
    ]


def delete_cluster_monitoring_stages(octx: OrbitContext, namespace: str) -> list[Stage]:
    def delete_role(ctx: InstallationContext) -> None:
        octx.cluster.delete_role(namespace, PROMETHEUS_ROLE_NAME)

    def delete_role_binding(ctx: InstallationContext) -> None:
        octx.cluster.delete_role_binding(namespace, PROMETHEUS_ROLE_NAME)

    return [
        Stage(title=f"Delete role {PROMETHEUS_ROLE_NAME}", run=delete_role),
        Stage(title=f"Delete role binding {PROMETHEUS_ROLE_NAME}", run=delete_role_binding),
    ]


def orbit_cluster_stages(
    octx: OrbitContext, namespace: str, *, from_installed_version: bool
) -> list[Stage]:
    """Prepare and create the OrbitCluster unless one already exists.

    The resource comes from --cr-yaml, else from the alm-examples of the
    installed cluster service version (OLM installs only), else the built-in
    default; --cr-patch-yaml is merged on top.
    """

    def prepare(ctx: InstallationContext) -> StageOutcome:
        if octx.cluster.list_orbit_clusters(namespace):
            return StageOutcome.exists()

        body = ctx.config.orbit_cluster
        if body is None and from_installed_version and ctx.installed_version is not None:
            assert ctx.operator_namespace is not None
            csv = octx.cluster.get_cluster_service_version(
                ctx.operator_namespace, ctx.installed_version
            )
            if csv is not None:
                body = orbit_cluster_from_csv(csv)
        if body is None:
            body = default_orbit_cluster()
        if ctx.config.orbit_cluster_patch is not None:
            body = deep_merge(body, ctx.config.orbit_cluster_patch)

        body = copy.deepcopy(body)
        body.setdefault("metadata", {})["namespace"] = namespace
        body["metadata"].setdefault("name", ORBIT_CLUSTER_NAME)
        ctx.orbit_cluster = body
        return StageOutcome.ok()

    prepare_reads: tuple[str, ...] = ("config",)
    if from_installed_version:
        prepare_reads = ("config", "installed_version", "operator_namespace")

    def create(ctx: InstallationContext) -> StageOutcome:
        assert ctx.orbit_cluster is not None
        octx.cluster.create_orbit_cluster(namespace, ctx.orbit_cluster)
        return StageOutcome.ok(resource_name(ctx.orbit_cluster))

    return [
        Stage(
            title="Prepare Orbit cluster CR",
            run=prepare,
            reads=prepare_reads,
            writes=("orbit_cluster",),
        ),
        Stage(
            title=f"Create Orbit cluster CR in namespace {namespace}",
            run=create,
            when=lambda ctx: ctx.orbit_cluster is not None,
            reads=("orbit_cluster",),
        ),
    ]


def wait_orbit_cluster_active_stage(octx: OrbitContext, namespace: str) -> Stage:
    def wait(ctx: InstallationContext) -> StageOutcome:
        def probe() -> str | None:
            for orbit_cluster in octx.cluster.list_orbit_clusters(namespace):
                phase = (orbit_cluster.get("status") or {}).get("phase")
                if phase == ORBIT_CLUSTER_ACTIVE_PHASE:
                    return resource_name(orbit_cluster)
            return None

        poll_until(
            octx.time,
            probe,
            condition=f"the Orbit cluster in namespace '{namespace}' to become active",
            timeout=ctx.config.pod_ready_timeout,
            interval=ctx.config.poll_interval,
        )
        return StageOutcome.ok()

    return Stage(title="Wait for Orbit server to become active", run=wait, reads=("config",))


def find_orbit_cluster_stage(octx: OrbitContext, namespace: str) -> Stage:
    """Locate the OrbitCluster an update or patch applies to."""

    def find(ctx: InstallationContext) -> StageOutcome:
        orbit_clusters = octx.cluster.list_orbit_clusters(namespace)
        if not orbit_clusters:
            raise NotDeployedError(f"Orbit cluster CR was not found in the namespace '{namespace}'")
        ctx.orbit_cluster_namespace = namespace
        return StageOutcome.ok(resource_name(orbit_clusters[0]))

    return Stage(
        title="Check if Orbit cluster CR exists",
        run=find,
        writes=("orbit_cluster_namespace",),
    )


def patch_orbit_cluster_stage(octx: OrbitContext) -> Stage:
    def patch(ctx: InstallationContext) -> StageOutcome:
        assert ctx.config.orbit_cluster_patch is not None
        assert ctx.orbit_cluster_namespace is not None
        orbit_clusters = octx.cluster.list_orbit_clusters(ctx.orbit_cluster_namespace)
        if not orbit_clusters:
            raise NotDeployedError(
                f"Orbit cluster CR was not found in the namespace "
                f"'{ctx.orbit_cluster_namespace}'"
            )
        name = resource_name(orbit_clusters[0])
        octx.cluster.patch_orbit_cluster(
            ctx.orbit_cluster_namespace, name, ctx.config.orbit_cluster_patch
        )
        return StageOutcome.ok()

    return Stage(
        title="Patch Orbit cluster CR",
        run=patch,
        when=lambda ctx: ctx.config.orbit_cluster_patch is not None,
        reads=("config", "orbit_cluster_namespace"),
    )


def confirm_update_stage(octx: OrbitContext) -> Stage:
    """Show the update decision and ask before anything is changed.

    Skipped with --batch or --yes.
    """

    def confirm(ctx: InstallationContext) -> StageOutcome:
        assert ctx.update_decision is not None
        octx.feedback.info(ctx.update_decision.message)
        if not octx.feedback.confirm("If you want to continue - press Y"):
            raise UserCancelledError("Update cancelled by user.")
        return StageOutcome.ok()

    def enabled(ctx: InstallationContext) -> bool:
        return (
            ctx.update_decision is not None
            and ctx.update_decision.requires_confirmation
            and ctx.config.needs_confirmation
        )

    return Stage(
        title="Confirm update",
        run=confirm,
        when=enabled,
        reads=("config", "update_decision"),
    )


def delete_orbit_cluster_stage(octx: OrbitContext, namespace: str) -> Stage:
    """Delete every OrbitCluster in the namespace; runs before the operator is removed."""

    def delete(ctx: InstallationContext) -> StageOutcome:
        orbit_clusters = octx.cluster.list_orbit_clusters(namespace)
        for orbit_cluster in orbit_clusters:
            octx.cluster.delete_orbit_cluster(namespace, resource_name(orbit_cluster))
        return StageOutcome.ok(None if orbit_clusters else "Not Found")

    return Stage(title=f"Delete Orbit cluster CR in namespace {namespace}", run=delete)


def delete_namespace_stage(octx: OrbitContext, namespace: str) -> Stage:
    def delete(ctx: InstallationContext) -> None:
        octx.cluster.delete_namespace(namespace)

    return Stage(
        title=f"Delete namespace {namespace}",
        run=delete,
        when=lambda ctx: ctx.config.delete_namespace,
        reads=("config",),
    )
