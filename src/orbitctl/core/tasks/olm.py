"""Install, update and remove orbit-operator through OLM subscriptions."""

import logging

from orbitctl.core.channels import (
    is_deploying_stable,
    operator_namespace_for,
    select_channel,
)
from orbitctl.core.cluster.types import (
    CATALOG_SOURCE_READY_STATE,
    OLM_API_VERSION,
    ApprovalStrategy,
    CatalogSourceRef,
    SubscriptionSpec,
    resource_name,
)
from orbitctl.core.constants import (
    ALL_NAMESPACES_OPERATOR_NAMESPACE,
    CATALOG_SOURCE_POLL_INTERVAL,
    CATALOG_SOURCE_READY_TIMEOUT,
    CSV_PREFIX,
    CUSTOM_CATALOG_SOURCE_NAME,
    NEXT_CATALOG_SOURCE_IMAGE,
    NEXT_CATALOG_SOURCE_NAME,
    OPERATOR_GROUP_NAME,
    SUBSCRIPTION_NAME,
)
from orbitctl.core.context import OrbitContext
from orbitctl.core.errors import (
    ConfigurationError,
    InstallationFailedError,
    NotDeployedError,
)
from orbitctl.core.installer_config import InstallerConfig
from orbitctl.core.pipeline import InstallationContext, Stage, StageOutcome
from orbitctl.core.polling import poll_until
from orbitctl.core.subscription import (
    SubscriptionReconciler,
    UpdateStatus,
    find_orbit_subscription,
)
from orbitctl.core.tasks.common import (
    cluster_monitoring_stages,
    confirm_update_stage,
    orbit_cluster_stages,
    patch_orbit_cluster_stage,
)
from orbitctl.core.update_decision import UpdateDecision, UpdateKind

logger = logging.getLogger(__name__)

OPERATOR_IMAGE_PATCH_PATH = "/spec/install/spec/deployments/0/spec/template/spec/containers/0/image"


def next_catalog_source(namespace: str) -> dict:
    return {
        "apiVersion": OLM_API_VERSION,
        "kind": "CatalogSource",
        "metadata": {"name": NEXT_CATALOG_SOURCE_NAME, "namespace": namespace},
        "spec": {
            "image": NEXT_CATALOG_SOURCE_IMAGE,
            "sourceType": "grpc",
            "updateStrategy": {"registryPoll": {"interval": CATALOG_SOURCE_POLL_INTERVAL}},
        },
    }


def wait_catalog_source_ready(
    octx: OrbitContext, source: CatalogSourceRef, interval: float
) -> None:
    def probe() -> bool | None:
        catalog_source = octx.cluster.get_catalog_source(source.namespace, source.name)
        if catalog_source is None:
            return None
        connection = (catalog_source.get("status") or {}).get("connectionState") or {}
        return True if connection.get("lastObservedState") == CATALOG_SOURCE_READY_STATE else None

    poll_until(
        octx.time,
        probe,
        condition=f"catalog source '{source.name}' in namespace '{source.namespace}' to be ready",
        timeout=CATALOG_SOURCE_READY_TIMEOUT,
        interval=interval,
    )


def _halt_unless_patching(ctx: InstallationContext, message: str) -> StageOutcome:
    """Stop the update with a message, unless an Orbit cluster patch still has to be applied."""
    if ctx.config.orbit_cluster_patch is None:
        return StageOutcome.halt(message)
    ctx.highlighted_messages.append(message)
    return StageOutcome.ok()


def _has_install_plan(ctx: InstallationContext) -> bool:
    return ctx.install_plan_name is not None


class OlmTasks:
    """Stage builders for the 'olm' installer.

    One instance serves one command. The subscription reconciler it creates is
    shared by the stages of that command, so its state machine spans the whole
    install or update.
    """

    def __init__(self, octx: OrbitContext, config: InstallerConfig) -> None:
        self._octx = octx
        self._config = config
        self._reconciler: SubscriptionReconciler | None = None

    def _new_reconciler(self, namespace: str) -> SubscriptionReconciler:
        self._reconciler = SubscriptionReconciler(
            self._octx.cluster,
            self._octx.time,
            namespace=namespace,
            poll_interval=self._config.poll_interval,
        )
        return self._reconciler

    @property
    def reconciler(self) -> SubscriptionReconciler:
        assert self._reconciler is not None
        return self._reconciler

    def _olm_preinstalled_stage(self) -> Stage:
        def check(ctx: InstallationContext) -> StageOutcome:
            if not self._octx.cluster.is_olm_preinstalled():
                raise ConfigurationError(
                    "OLM is required for installation of Orbit with installer flag 'olm'. "
                    "Your platform does not provide it, install it manually first, e.g. with "
                    "https://raw.githubusercontent.com/operator-framework/"
                    "operator-lifecycle-manager/master/deploy/upstream/quickstart/install.sh"
                )
            ctx.olm_preinstalled = True
            return StageOutcome.ok()

        return Stage(
            title="Check if OLM is pre-installed on the platform",
            run=check,
            writes=("olm_preinstalled",),
        )

    # Deploy

    def deploy_stages(self) -> list[Stage]:
        octx = self._octx
        config = self._config
        operator_namespace = operator_namespace_for(config)
        reconciler = self._new_reconciler(operator_namespace)

        def configure(ctx: InstallationContext) -> StageOutcome:
            ctx.operator_namespace = operator_namespace
            ctx.channel_selection = select_channel(
                ctx.config,
                operator_namespace=operator_namespace,
                deploying_stable=is_deploying_stable(ctx.config.version, octx.tool_version),
            )
            return StageOutcome.ok()

        def create_operator_group(ctx: InstallationContext) -> StageOutcome:
            assert ctx.operator_namespace is not None
            if octx.cluster.list_operator_groups(ctx.operator_namespace):
                return StageOutcome.exists()
            octx.cluster.create_operator_group(ctx.operator_namespace, OPERATOR_GROUP_NAME)
            return StageOutcome.ok()

        def create_next_catalog_source(ctx: InstallationContext) -> StageOutcome:
            assert ctx.channel_selection is not None
            source = ctx.channel_selection.catalog_source
            if octx.cluster.get_catalog_source(source.namespace, source.name) is not None:
                return StageOutcome.exists()
            octx.cluster.create_catalog_source(next_catalog_source(source.namespace))
            wait_catalog_source_ready(octx, source, ctx.config.poll_interval)
            return StageOutcome.ok()

        def create_custom_catalog_source(ctx: InstallationContext) -> StageOutcome:
            assert ctx.channel_selection is not None
            manifest = ctx.channel_selection.custom_catalog_source
            assert manifest is not None
            source = ctx.channel_selection.catalog_source
            if octx.cluster.get_catalog_source(source.namespace, source.name) is not None:
                return StageOutcome.exists()
            octx.cluster.create_catalog_source(manifest)
            wait_catalog_source_ready(octx, source, ctx.config.poll_interval)
            return StageOutcome.ok(source.name)

        def create_subscription(ctx: InstallationContext) -> StageOutcome:
            selection = ctx.channel_selection
            assert selection is not None and ctx.operator_namespace is not None
            spec = SubscriptionSpec(
                name=SUBSCRIPTION_NAME,
                package_name=selection.package_name,
                namespace=ctx.operator_namespace,
                source=selection.catalog_source,
                channel=selection.channel.value,
                approval_strategy=selection.approval_strategy,
                starting_version=selection.starting_version,
            )
            created = reconciler.ensure_subscription(spec)
            ctx.subscription_name = reconciler.subscription_name
            ctx.approval_strategy = reconciler.approval_strategy
            return StageOutcome.ok() if created else StageOutcome.exists()

        def wait_subscription(ctx: InstallationContext) -> StageOutcome:
            ctx.install_plan_name = reconciler.wait_for_install_plan(
                ctx.config.olm_install_timeout
            )
            return StageOutcome.ok()

        def approve(ctx: InstallationContext) -> StageOutcome:
            reconciler.approve_install_plan()
            return StageOutcome.ok()

        def wait_install_plan(ctx: InstallationContext) -> StageOutcome:
            reconciler.wait_for_install_plan_completion(ctx.config.olm_install_timeout)
            return StageOutcome.ok()

        def check_installed_version(ctx: InstallationContext) -> StageOutcome:
            reconciler.wait_for_installed_version(ctx.config.olm_install_timeout)
            verified = reconciler.verify_installed_version()
            ctx.installed_version = verified.name
            return StageOutcome.ok(verified.name)

        def set_operator_image(ctx: InstallationContext) -> StageOutcome:
            assert ctx.operator_namespace is not None and ctx.config.operator_image is not None
            csvs = [
                csv
                for csv in octx.cluster.list_cluster_service_versions(ctx.operator_namespace)
                if resource_name(csv).startswith(CSV_PREFIX)
            ]
            if not csvs:
                raise InstallationFailedError(
                    CSV_PREFIX,
                    ctx.operator_namespace,
                    "no cluster service version of the operator found",
                    "NotFound",
                )
            octx.cluster.patch_cluster_service_version(
                ctx.operator_namespace,
                resource_name(csvs[0]),
                [
                    {
                        "op": "replace",
                        "path": OPERATOR_IMAGE_PATCH_PATH,
                        "value": ctx.config.operator_image,
                    }
                ],
            )
            return StageOutcome.ok()

        return [
            self._olm_preinstalled_stage(),
            Stage(
                title="Configure context information",
                run=configure,
                reads=("config",),
                writes=("operator_namespace", "channel_selection"),
            ),
            *cluster_monitoring_stages(octx, config.namespace),
            Stage(
                title="Create operator group",
                run=create_operator_group,
                when=lambda ctx: ctx.operator_namespace != ALL_NAMESPACES_OPERATOR_NAMESPACE,
                reads=("operator_namespace",),
            ),
            Stage(
                title="Create CatalogSource for 'next' channel",
                run=create_next_catalog_source,
                when=lambda ctx: (
                    ctx.channel_selection is not None
                    and ctx.channel_selection.needs_next_catalog_source
                ),
                reads=("config", "channel_selection"),
            ),
            Stage(
                title="Create custom catalog source from file",
                run=create_custom_catalog_source,
                when=lambda ctx: (
                    ctx.channel_selection is not None
                    and ctx.channel_selection.custom_catalog_source is not None
                ),
                reads=("config", "channel_selection"),
            ),
            Stage(
                title="Create operator subscription",
                run=create_subscription,
                reads=("channel_selection", "operator_namespace"),
                writes=("subscription_name", "approval_strategy"),
            ),
            Stage(
                title="Wait while subscription is ready",
                run=wait_subscription,
                reads=("config", "subscription_name"),
                writes=("install_plan_name",),
            ),
            Stage(
                title="Approve installation",
                run=approve,
                when=lambda ctx: ctx.approval_strategy is ApprovalStrategy.MANUAL,
                reads=("approval_strategy", "install_plan_name"),
            ),
            Stage(
                title="Wait operator install plan",
                run=wait_install_plan,
                reads=("config", "install_plan_name"),
            ),
            Stage(
                title="Check cluster service version resource",
                run=check_installed_version,
                reads=("config", "subscription_name"),
                writes=("installed_version",),
            ),
            Stage(
                title="Set custom operator image",
                run=set_operator_image,
                when=lambda ctx: ctx.config.operator_image is not None,
                reads=("config", "operator_namespace", "installed_version"),
            ),
            *orbit_cluster_stages(octx, config.namespace, from_installed_version=True),
        ]

    # Update

    def pre_update_stages(self) -> list[Stage]:
        """Find the subscription and the OrbitCluster an update applies to."""
        octx = self._octx

        def check_subscription(ctx: InstallationContext) -> StageOutcome:
            subscription = find_orbit_subscription(
                octx.cluster, [ctx.config.namespace, ALL_NAMESPACES_OPERATOR_NAMESPACE]
            )
            if subscription is None:
                raise NotDeployedError(
                    f"Unable to find operator subscription in namespace '{ctx.config.namespace}'"
                )
            reconciler = self._new_reconciler(subscription["metadata"]["namespace"])
            reconciler.track_existing(subscription)
            ctx.operator_namespace = subscription["metadata"]["namespace"]
            ctx.subscription_name = reconciler.subscription_name
            ctx.approval_strategy = reconciler.approval_strategy

            if reconciler.approval_strategy is ApprovalStrategy.AUTOMATIC:
                return _halt_unless_patching(
                    ctx,
                    "OLM itself manages operator updates with installation mode 'Automatic'. "
                    "Use 'orbitctl update' only with 'Manual' installation plan approval.",
                )
            return StageOutcome.ok()

        def check_orbit_cluster(ctx: InstallationContext) -> StageOutcome:
            assert ctx.operator_namespace is not None
            if ctx.operator_namespace == ALL_NAMESPACES_OPERATOR_NAMESPACE:
                orbit_clusters = octx.cluster.list_orbit_clusters(None)
                if len(orbit_clusters) > 1:
                    raise ConfigurationError(
                        "Orbit does not support more than one installation in all namespaces mode."
                    )
            else:
                orbit_clusters = octx.cluster.list_orbit_clusters(ctx.operator_namespace)
            if not orbit_clusters:
                raise NotDeployedError(
                    f"Orbit cluster CR was not found in the namespace '{ctx.config.namespace}'"
                )
            ctx.orbit_cluster_namespace = orbit_clusters[0]["metadata"]["namespace"]
            return StageOutcome.ok()

        return [
            self._olm_preinstalled_stage(),
            Stage(
                title="Check operator subscription",
                run=check_subscription,
                reads=("config",),
                writes=(
                    "operator_namespace",
                    "subscription_name",
                    "approval_strategy",
                    "highlighted_messages",
                ),
            ),
            Stage(
                title="Check if Orbit cluster CR exists",
                run=check_orbit_cluster,
                reads=("config", "operator_namespace"),
                writes=("orbit_cluster_namespace",),
            ),
        ]

    def update_stages(self) -> list[Stage]:
        octx = self._octx

        def get_install_plan(ctx: InstallationContext) -> StageOutcome:
            inspection = self.reconciler.inspect_update()
            ctx.current_version = inspection.installed_version
            ctx.target_version = inspection.target_version
            if inspection.status is UpdateStatus.UP_TO_DATE:
                return _halt_unless_patching(
                    ctx,
                    f"Everything is up to date. Installed the latest known version "
                    f"'{inspection.target_version}'.",
                )
            ctx.install_plan_name = inspection.install_plan_name
            ctx.update_decision = UpdateDecision(
                kind=UpdateKind.UPGRADE,
                message=(
                    f"You are going to update Orbit {inspection.installed_version} to "
                    f"{inspection.target_version}."
                ),
                requires_confirmation=True,
            )
            return StageOutcome.ok()

        def approve(ctx: InstallationContext) -> StageOutcome:
            self.reconciler.approve_install_plan()
            return StageOutcome.ok()

        def wait_installed(ctx: InstallationContext) -> StageOutcome:
            self.reconciler.wait_for_install_plan_completion(ctx.config.olm_update_timeout)
            ctx.highlighted_messages.append(
                f"Operator is updated from {ctx.current_version} to {ctx.target_version} version"
            )
            return StageOutcome.ok()

        return [
            Stage(
                title="Get operator installation plan",
                run=get_install_plan,
                when=lambda ctx: ctx.approval_strategy is not ApprovalStrategy.AUTOMATIC,
                reads=("config", "subscription_name", "approval_strategy"),
                writes=(
                    "current_version",
                    "target_version",
                    "install_plan_name",
                    "update_decision",
                    "highlighted_messages",
                ),
            ),
            confirm_update_stage(octx),
            Stage(
                title="Approve installation",
                run=approve,
                when=_has_install_plan,
                reads=("install_plan_name",),
            ),
            Stage(
                title="Wait while newer operator installed",
                run=wait_installed,
                when=_has_install_plan,
                reads=("config", "install_plan_name", "current_version", "target_version"),
                writes=("highlighted_messages",),
            ),
            patch_orbit_cluster_stage(octx),
        ]

    # Delete

    def delete_stages(self) -> list[Stage]:
        octx = self._octx
        namespace = self._config.namespace

        def check_olm(ctx: InstallationContext) -> StageOutcome:
            ctx.olm_preinstalled = octx.cluster.is_olm_preinstalled()
            return StageOutcome.ok(str(ctx.olm_preinstalled).lower())

        def check_operator(ctx: InstallationContext) -> StageOutcome:
            subscription = None
            if ctx.olm_preinstalled:
                subscription = find_orbit_subscription(octx.cluster, [namespace])
            if subscription is not None:
                ctx.subscription_name = resource_name(subscription)
                ctx.operator_namespace = subscription["metadata"]["namespace"]
            else:
                ctx.operator_namespace = namespace
            if ctx.olm_preinstalled:
                groups = octx.cluster.list_operator_groups(ctx.operator_namespace)
                ctx.operator_group = groups[0] if groups else None
            if subscription is None:
                return StageOutcome.ok("Not Found")
            return StageOutcome.ok(f"Found {ctx.subscription_name}")

        def delete_subscription(ctx: InstallationContext) -> StageOutcome:
            assert ctx.operator_namespace is not None and ctx.subscription_name is not None
            octx.cluster.delete_subscription(ctx.operator_namespace, ctx.subscription_name)
            return StageOutcome.ok()

        def delete_csvs(ctx: InstallationContext) -> StageOutcome:
            assert ctx.operator_namespace is not None
            for csv in octx.cluster.list_cluster_service_versions(ctx.operator_namespace):
                if resource_name(csv).startswith(CSV_PREFIX):
                    octx.cluster.delete_cluster_service_version(
                        ctx.operator_namespace, resource_name(csv)
                    )
            return StageOutcome.ok()

        def delete_operator_group(ctx: InstallationContext) -> StageOutcome:
            assert ctx.operator_group is not None
            metadata = ctx.operator_group["metadata"]
            octx.cluster.delete_operator_group(metadata["namespace"], metadata["name"])
            return StageOutcome.ok()

        def delete_custom_catalog_source(ctx: InstallationContext) -> StageOutcome:
            assert ctx.operator_namespace is not None
            octx.cluster.delete_catalog_source(ctx.operator_namespace, CUSTOM_CATALOG_SOURCE_NAME)
            return StageOutcome.ok()

        def delete_next_catalog_source(ctx: InstallationContext) -> StageOutcome:
            assert ctx.operator_namespace is not None
            octx.cluster.delete_catalog_source(ctx.operator_namespace, NEXT_CATALOG_SOURCE_NAME)
            return StageOutcome.ok()

        def olm_available(ctx: InstallationContext) -> bool:
            return bool(ctx.olm_preinstalled)

        return [
            Stage(
                title="Check if OLM is pre-installed on the platform",
                run=check_olm,
                writes=("olm_preinstalled",),
            ),
            Stage(
                title="Check if operator is installed",
                run=check_operator,
                reads=("olm_preinstalled",),
                writes=("subscription_name", "operator_namespace", "operator_group"),
            ),
            Stage(
                title="Delete operator subscription",
                run=delete_subscription,
                when=lambda ctx: bool(ctx.olm_preinstalled and ctx.subscription_name),
                reads=("olm_preinstalled", "subscription_name", "operator_namespace"),
            ),
            Stage(
                title="Delete Orbit cluster service versions",
                run=delete_csvs,
                when=olm_available,
                reads=("olm_preinstalled", "operator_namespace"),
            ),
            Stage(
                title="Delete operator group",
                run=delete_operator_group,
                when=lambda ctx: (
                    bool(ctx.olm_preinstalled)
                    and ctx.operator_namespace != ALL_NAMESPACES_OPERATOR_NAMESPACE
                    and ctx.operator_group is not None
                ),
                reads=("olm_preinstalled", "operator_namespace", "operator_group"),
            ),
            Stage(
                title=f"Delete custom catalog source {CUSTOM_CATALOG_SOURCE_NAME}",
                run=delete_custom_catalog_source,
                when=olm_available,
                reads=("olm_preinstalled", "operator_namespace"),
            ),
            Stage(
                title=f"Delete next catalog source {NEXT_CATALOG_SOURCE_NAME}",
                run=delete_next_catalog_source,
                when=olm_available,
                reads=("olm_preinstalled", "operator_namespace"),
            ),
        ]
