"""Stop command implementation."""

import click

from orbitctl.cli.commands.common import (
    batch_option,
    namespace_option,
    operator_namespace_of,
    platform_option,
    pod_ready_timeout_option,
    report_result,
    resolve_installer_config,
    run_stages,
    skip_cluster_availability_check_option,
)
from orbitctl.cli.ensure import platform_error_boundary
from orbitctl.core.context import OrbitContext
from orbitctl.core.installer_config import InstallerFlags
from orbitctl.core.tasks.preflight import preflight_stages
from orbitctl.core.tasks.server import server_state_stage, stop_stages


@click.command("stop")
@namespace_option
@platform_option
@batch_option
@pod_ready_timeout_option
@skip_cluster_availability_check_option
@platform_error_boundary
@click.pass_obj
def stop_cmd(octx: OrbitContext, **options: object) -> None:
    """Stop Orbit server without removing it."""
    flags = InstallerFlags(**options)  # type: ignore[arg-type]
    config = resolve_installer_config(octx, flags, existing=True)

    stages = [
        *preflight_stages(octx, check_platform_version=False),
        server_state_stage(starting=False),
        *stop_stages(
            octx,
            namespace=config.namespace,
            operator_namespace=operator_namespace_of(octx, config),
        ),
    ]
    ctx, result = run_stages(octx, config, stages)
    report_result(octx, ctx, result, "stop")
