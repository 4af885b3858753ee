"""Checks run before any command touches the cluster."""

from orbitctl.core.cluster.abc import Resource
from orbitctl.core.constants import OPERATOR_DEPLOYMENT, ORBIT_SERVER_DEPLOYMENT
from orbitctl.core.context import OrbitContext
from orbitctl.core.errors import ClusterApiError, ConfigurationError
from orbitctl.core.pipeline import InstallationContext, Stage, StageOutcome
from orbitctl.core.platforms import Platform
from orbitctl.core.versions import (
    MINIMAL_KUBERNETES_VERSION,
    MINIMAL_OPENSHIFT_VERSION,
    check_minimal_version,
)


def available_replicas(deployment: Resource | None) -> int:
    if deployment is None:
        return 0
    return int((deployment.get("status") or {}).get("availableReplicas") or 0)


def preflight_stages(octx: OrbitContext, *, check_platform_version: bool) -> list[Stage]:
    """Cluster reachability, platform version and existing installation checks.

    Args:
        octx: Dependencies
        check_platform_version: Include the minimal platform version check
            (deploy only); --skip-version-check still disables it at run time
    """

    def verify_api(ctx: InstallationContext) -> StageOutcome:
        if not octx.cluster.is_reachable():
            raise ClusterApiError(
                "reach the Kubernetes API server",
                "the health check did not succeed. Check that the cluster is running and "
                "your kubeconfig points at it, or use --skip-cluster-availability-check",
            )
        return StageOutcome.ok()

    def check_version(ctx: InstallationContext) -> StageOutcome:
        if ctx.config.platform is Platform.OPENSHIFT:
            name = "OpenShift"
            minimal = MINIMAL_OPENSHIFT_VERSION
            actual = octx.cluster.get_openshift_version()
        else:
            name = "Kubernetes"
            minimal = MINIMAL_KUBERNETES_VERSION
            actual = octx.cluster.get_kubernetes_version()

        if actual is None:
            raise ConfigurationError(
                f"Unable to determine the {name} version. Use --skip-version-check to bypass "
                "this check"
            )
        try:
            supported = check_minimal_version(actual, minimal)
        except ValueError as e:
            raise ConfigurationError(
                f"Unrecognized {name} version '{actual}': {e}. Use --skip-version-check to "
                "bypass this check"
            ) from e
        if not supported:
            raise ConfigurationError(
                f"The minimal supported {name} version is {minimal}, the cluster runs "
                f"{actual}. Use --skip-version-check to bypass this check"
            )
        ctx.platform_version = actual
        return StageOutcome.ok(actual)

    def look_for_installation(ctx: InstallationContext) -> StageOutcome:
        namespace = ctx.config.namespace
        deployed = bool(octx.cluster.list_orbit_clusters(namespace)) or (
            octx.cluster.get_deployment(namespace, OPERATOR_DEPLOYMENT) is not None
        )
        server = octx.cluster.get_deployment(namespace, ORBIT_SERVER_DEPLOYMENT)
        ctx.already_deployed = deployed
        ctx.already_running = deployed and available_replicas(server) > 0
        if not deployed:
            return StageOutcome.ok("Not Found")
        return StageOutcome.ok("Running" if ctx.already_running else "Stopped")

    stages = [
        Stage(
            title="Verify Kubernetes API",
            run=verify_api,
            when=lambda ctx: not ctx.config.skip_cluster_availability_check,
            reads=("config",),
        ),
    ]
    if check_platform_version:
        stages.append(
            Stage(
                title="Check platform version",
                run=check_version,
                when=lambda ctx: not ctx.config.skip_version_check,
                reads=("config",),
                writes=("platform_version",),
            )
        )
    stages.append(
        Stage(
            title="Look for an already existing Orbit instance",
            run=look_for_installation,
            reads=("config",),
            writes=("already_deployed", "already_running"),
        )
    )
    return stages


def already_deployed_stage() -> Stage:
    """Halt a deployment when Orbit is already there; this is not an error."""

    def check(ctx: InstallationContext) -> StageOutcome | None:
        if not ctx.already_deployed:
            return None
        message = "Orbit has been already deployed."
        if not ctx.already_running:
            message += " Use 'orbitctl start' to start a stopped Orbit instance."
        return StageOutcome.halt(message)

    return Stage(
        title="Check whether Orbit is already deployed",
        run=check,
        reads=("already_deployed", "already_running"),
    )
