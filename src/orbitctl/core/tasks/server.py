"""Start and stop a deployed Orbit instance by scaling its deployments."""

from orbitctl.core.constants import OPERATOR_DEPLOYMENT, ORBIT_SERVER_DEPLOYMENT
from orbitctl.core.context import OrbitContext
from orbitctl.core.errors import NotDeployedError
from orbitctl.core.pipeline import InstallationContext, Stage, StageOutcome
from orbitctl.core.polling import poll_until
from orbitctl.core.tasks.preflight import available_replicas


def wait_replicas_stage(
    octx: OrbitContext, namespace: str, name: str, *, available: bool
) -> Stage:
    """Wait until a deployment has available replicas, or none at all."""

    def probe() -> bool | None:
        replicas = available_replicas(octx.cluster.get_deployment(namespace, name))
        return True if (replicas > 0) == available else None

    def wait(ctx: InstallationContext) -> StageOutcome:
        state = "available" if available else "scaled down"
        poll_until(
            octx.time,
            probe,
            condition=f"deployment '{name}' in namespace '{namespace}' to be {state}",
            timeout=ctx.config.pod_ready_timeout,
            interval=ctx.config.poll_interval,
        )
        return StageOutcome.ok()

    title = f"Wait for {name} to start" if available else f"Wait for {name} to stop"
    return Stage(title=title, run=wait, reads=("config",))


def _scale_stage(octx: OrbitContext, namespace: str, name: str, replicas: int) -> Stage:
    def scale(ctx: InstallationContext) -> StageOutcome:
        deployment = octx.cluster.get_deployment(namespace, name)
        if deployment is None:
            raise NotDeployedError(
                f"Deployment '{name}' was not found in namespace '{namespace}'"
            )
        if (deployment.get("spec") or {}).get("replicas") == replicas:
            return StageOutcome.ok(f"already {replicas}")
        octx.cluster.scale_deployment(namespace, name, replicas)
        return StageOutcome.ok()

    verb = "Scale up" if replicas > 0 else "Scale down"
    return Stage(title=f"{verb} deployment {name}", run=scale)


def start_stages(octx: OrbitContext, *, namespace: str, operator_namespace: str) -> list[Stage]:
    """Scale the operator and the server back to one replica.

    The operator reconciles the server once it runs again; the server is
    scaled up directly too so a stopped instance starts even when the
    operator is managed elsewhere.
    """
    return [
        _scale_stage(octx, operator_namespace, OPERATOR_DEPLOYMENT, 1),
        wait_replicas_stage(octx, operator_namespace, OPERATOR_DEPLOYMENT, available=True),
        _scale_stage(octx, namespace, ORBIT_SERVER_DEPLOYMENT, 1),
        wait_replicas_stage(octx, namespace, ORBIT_SERVER_DEPLOYMENT, available=True),
    ]


def stop_stages(octx: OrbitContext, *, namespace: str, operator_namespace: str) -> list[Stage]:
    """Scale the operator down, then the server."""
    return [
        _scale_stage(octx, operator_namespace, OPERATOR_DEPLOYMENT, 0),
        wait_replicas_stage(octx, operator_namespace, OPERATOR_DEPLOYMENT, available=False),
        _scale_stage(octx, namespace, ORBIT_SERVER_DEPLOYMENT, 0),
        wait_replicas_stage(octx, namespace, ORBIT_SERVER_DEPLOYMENT, available=False),
    ]


def server_state_stage(*, starting: bool) -> Stage:
    """Require a deployed instance; halt when it already is in the wanted state."""

    def check(ctx: InstallationContext) -> StageOutcome | None:
        namespace = ctx.config.namespace
        if not ctx.already_deployed:
            raise NotDeployedError(
                f"Orbit is not deployed in namespace '{namespace}'. "
                "Use 'orbitctl deploy' to deploy a new Orbit instance."
            )
        if starting and ctx.already_running:
            return StageOutcome.halt(f"Orbit is already running in namespace '{namespace}'.")
        if not starting and not ctx.already_running:
            return StageOutcome.halt(f"Orbit is already stopped in namespace '{namespace}'.")
        return None

    return Stage(
        title="Check Orbit server state",
        run=check,
        reads=("config", "already_deployed", "already_running"),
    )
