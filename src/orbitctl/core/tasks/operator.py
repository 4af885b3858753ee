"""Install, update and remove orbit-operator from plain manifests."""

import logging
from typing import Any

from orbitctl.core.constants import OPERATOR_DEPLOYMENT, OPERATOR_SERVICE_ACCOUNT
from orbitctl.core.context import OrbitContext
from orbitctl.core.errors import NotDeployedError, ResolutionError
from orbitctl.core.installer_config import InstallerConfig
from orbitctl.core.pipeline import InstallationContext, Stage, StageOutcome
from orbitctl.core.platforms import Installer
from orbitctl.core.polling import poll_until
from orbitctl.core.tasks.common import (
    cluster_monitoring_stages,
    confirm_update_stage,
    find_orbit_cluster_stage,
    orbit_cluster_stages,
    patch_orbit_cluster_stage,
)
from orbitctl.core.tasks.preflight import available_replicas
from orbitctl.core.update_decision import (
    OperatorImageRef,
    UpdateKind,
    decide_update,
    default_operator_image,
)
from orbitctl.core.versions import NEXT_TAG, remove_v_prefix

logger = logging.getLogger(__name__)

OPERATOR_ROLE_NAME = OPERATOR_DEPLOYMENT

_RBAC_API_VERSION = "rbac.authorization.k8s.io/v1"


def operator_role(namespace: str) -> dict[str, Any]:
    return {
        "apiVersion": _RBAC_API_VERSION,
        "kind": "Role",
        "metadata": {"name": OPERATOR_ROLE_NAME, "namespace": namespace},
        "rules": [
            {
                "apiGroups": [""],
                "resources": [
                    "configmaps",
                    "events",
                    "persistentvolumeclaims",
                    "pods",
                    "secrets",
                    "serviceaccounts",
                    "services",
                ],
                "verbs": ["*"],
            },
            {"apiGroups": ["apps"], "resources": ["deployments"], "verbs": ["*"]},
            {"apiGroups": ["networking.k8s.io"], "resources": ["ingresses"], "verbs": ["*"]},
            {
                "apiGroups": ["org.orbit"],
                "resources": ["orbitclusters", "orbitclusters/status"],
                "verbs": ["*"],
            },
        ],
    }


def operator_role_binding(namespace: str) -> dict[str, Any]:
    return {
        "apiVersion": _RBAC_API_VERSION,
        "kind": "RoleBinding",
        "metadata": {"name": OPERATOR_ROLE_NAME, "namespace": namespace},
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "Role",
            "name": OPERATOR_ROLE_NAME,
        },
        "subjects": [
            {"kind": "ServiceAccount", "name": OPERATOR_SERVICE_ACCOUNT, "namespace": namespace}
        ],
    }


def operator_deployment(namespace: str, image: OperatorImageRef) -> dict[str, Any]:
    labels = {"app": "orbit", "app.kubernetes.io/component": OPERATOR_DEPLOYMENT}
    pull_policy = "Always" if image.tag == NEXT_TAG else "IfNotPresent"
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": OPERATOR_DEPLOYMENT, "namespace": namespace, "labels": labels},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": labels},
            "strategy": {"type": "RollingUpdate"},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "serviceAccountName": OPERATOR_SERVICE_ACCOUNT,
                    "containers": [
                        {
                            "name": OPERATOR_DEPLOYMENT,
                            "image": str(image),
                            "imagePullPolicy": pull_policy,
                            "env": [
                                {
                                    "name": "WATCH_NAMESPACE",
                                    "valueFrom": {
                                        "fieldRef": {"fieldPath": "metadata.namespace"}
                                    },
                                },
                                {"name": "OPERATOR_NAME", "value": OPERATOR_DEPLOYMENT},
                            ],
                        }
                    ],
                },
            },
        },
    }


def resolve_operator_image(octx: OrbitContext, config: InstallerConfig) -> OperatorImageRef:
    """Image to run: --operator-image, the release matching --version, or orbitctl's own.

    Raises:
        ResolutionError: If --version matches no published release
    """
    if config.operator_image is not None:
        return OperatorImageRef.parse(config.operator_image)
    if config.version is not None:
        artifact = octx.releases.resolve_tag(Installer.OPERATOR.value, config.version)
        if artifact is None:
            raise ResolutionError(f"Version '{config.version}' of Orbit was not found")
        return default_operator_image(octx.tool_version, remove_v_prefix(artifact.tag))
    return default_operator_image(octx.tool_version)


def wait_operator_available_stage(octx: OrbitContext, namespace: str) -> Stage:
    def probe() -> int | None:
        replicas = available_replicas(octx.cluster.get_deployment(namespace, OPERATOR_DEPLOYMENT))
        return replicas or None

    def wait(ctx: InstallationContext) -> StageOutcome:
        poll_until(
            octx.time,
            probe,
            condition=f"deployment '{OPERATOR_DEPLOYMENT}' in namespace '{namespace}' to be ready",
            timeout=ctx.config.pod_ready_timeout,
            interval=ctx.config.poll_interval,
        )
        return StageOutcome.ok()

    return Stage(title="Wait for operator to become available", run=wait, reads=("config",))


def deploy_stages(octx: OrbitContext, config: InstallerConfig) -> list[Stage]:
    namespace = config.namespace

    def create_service_account(ctx: InstallationContext) -> StageOutcome:
        if octx.cluster.get_service_account(namespace, OPERATOR_SERVICE_ACCOUNT) is not None:
            return StageOutcome.exists()
        octx.cluster.create_service_account(namespace, OPERATOR_SERVICE_ACCOUNT)
        return StageOutcome.ok()

    def create_role(ctx: InstallationContext) -> StageOutcome:
        if octx.cluster.get_role(namespace, OPERATOR_ROLE_NAME) is not None:
            return StageOutcome.exists()
        octx.cluster.create_role(operator_role(namespace))
        return StageOutcome.ok()

    def create_role_binding(ctx: InstallationContext) -> StageOutcome:
        if octx.cluster.get_role_binding(namespace, OPERATOR_ROLE_NAME) is not None:
            return StageOutcome.exists()
        octx.cluster.create_role_binding(operator_role_binding(namespace))
        return StageOutcome.ok()

    def resolve_image(ctx: InstallationContext) -> StageOutcome:
        ctx.new_image = resolve_operator_image(octx, ctx.config)
        return StageOutcome.ok(str(ctx.new_image))

    def create_deployment(ctx: InstallationContext) -> StageOutcome:
        assert ctx.new_image is not None
        if octx.cluster.get_deployment(namespace, OPERATOR_DEPLOYMENT) is not None:
            return StageOutcome.exists()
        octx.cluster.create_deployment(operator_deployment(namespace, ctx.new_image))
        return StageOutcome.ok()

    return [
        *cluster_monitoring_stages(octx, namespace),
        Stage(
            title=f"Create ServiceAccount {OPERATOR_SERVICE_ACCOUNT} in namespace {namespace}",
            run=create_service_account,
        ),
        Stage(
            title=f"Create Role {OPERATOR_ROLE_NAME} in namespace {namespace}",
            run=create_role,
        ),
        Stage(
            title=f"Create RoleBinding {OPERATOR_ROLE_NAME} in namespace {namespace}",
            run=create_role_binding,
        ),
        Stage(
            title="Resolve operator image",
            run=resolve_image,
            reads=("config",),
            writes=("new_image",),
        ),
        Stage(
            title=f"Create deployment {OPERATOR_DEPLOYMENT} in namespace {namespace}",
            run=create_deployment,
            reads=("new_image",),
        ),
        wait_operator_available_stage(octx, namespace),
        *orbit_cluster_stages(octx, namespace, from_installed_version=False),
    ]


def pre_update_stages(octx: OrbitContext, config: InstallerConfig) -> list[Stage]:
    """Compare the deployed operator image with the one an update would install."""
    namespace = config.namespace

    def read_deployed_image(ctx: InstallationContext) -> StageOutcome:
        deployment = octx.cluster.get_deployment(namespace, OPERATOR_DEPLOYMENT)
        if deployment is None:
            raise NotDeployedError(
                f"Deployment '{OPERATOR_DEPLOYMENT}' was not found in namespace '{namespace}'"
            )
        containers = deployment["spec"]["template"]["spec"]["containers"]
        ctx.deployed_image = OperatorImageRef.parse(containers[0]["image"])
        return StageOutcome.ok(str(ctx.deployed_image))

    def resolve_image(ctx: InstallationContext) -> StageOutcome:
        ctx.new_image = resolve_operator_image(octx, ctx.config)
        return StageOutcome.ok(str(ctx.new_image))

    def check_update_ability(ctx: InstallationContext) -> StageOutcome:
        assert ctx.deployed_image is not None and ctx.new_image is not None
        ctx.update_decision = decide_update(
            ctx.deployed_image,
            ctx.new_image,
            patch_requested=ctx.config.orbit_cluster_patch is not None,
            tool_version=octx.tool_version,
        )
        if not ctx.update_decision.proceed:
            return StageOutcome.halt(ctx.update_decision.message)
        return StageOutcome.ok()

    return [
        Stage(
            title="Read deployed operator image",
            run=read_deployed_image,
            writes=("deployed_image",),
        ),
        Stage(
            title="Resolve operator image",
            run=resolve_image,
            reads=("config",),
            writes=("new_image",),
        ),
        Stage(
            title="Check update ability",
            run=check_update_ability,
            reads=("config", "deployed_image", "new_image"),
            writes=("update_decision",),
        ),
        find_orbit_cluster_stage(octx, namespace),
    ]


def update_stages(octx: OrbitContext, config: InstallerConfig) -> list[Stage]:
    namespace = config.namespace

    def set_image(ctx: InstallationContext) -> StageOutcome:
        assert ctx.new_image is not None and ctx.deployed_image is not None
        octx.cluster.set_deployment_image(namespace, OPERATOR_DEPLOYMENT, str(ctx.new_image))
        ctx.highlighted_messages.append(
            f"Operator image is updated from {ctx.deployed_image} to {ctx.new_image}"
        )
        return StageOutcome.ok()

    def image_changes(ctx: InstallationContext) -> bool:
        return ctx.update_decision is not None and ctx.update_decision.kind is not (
            UpdateKind.PATCH_ONLY
        )

    return [
        confirm_update_stage(octx),
        Stage(
            title=f"Update deployment {OPERATOR_DEPLOYMENT} image",
            run=set_image,
            when=image_changes,
            reads=("deployed_image", "new_image", "update_decision"),
            writes=("highlighted_messages",),
        ),
        wait_operator_available_stage(octx, namespace),
        patch_orbit_cluster_stage(octx),
    ]


def delete_stages(octx: OrbitContext, config: InstallerConfig) -> list[Stage]:
    namespace = config.namespace

    def delete_deployment(ctx: InstallationContext) -> None:
        octx.cluster.delete_deployment(namespace, OPERATOR_DEPLOYMENT)

    def delete_role_binding(ctx: InstallationContext) -> None:
        octx.cluster.delete_role_binding(namespace, OPERATOR_ROLE_NAME)

    def delete_role(ctx: InstallationContext) -> None:
        octx.cluster.delete_role(namespace, OPERATOR_ROLE_NAME)

    def delete_service_account(ctx: InstallationContext) -> None:
        octx.cluster.delete_service_account(namespace, OPERATOR_SERVICE_ACCOUNT)

    return [
        Stage(title=f"Delete deployment {OPERATOR_DEPLOYMENT}", run=delete_deployment),
        Stage(title=f"Delete role binding {OPERATOR_ROLE_NAME}", run=delete_role_binding),
        Stage(title=f"Delete role {OPERATOR_ROLE_NAME}", run=delete_role),
        Stage(
            title=f"Delete service account {OPERATOR_SERVICE_ACCOUNT}",
            run=delete_service_account,
        ),
    ]
