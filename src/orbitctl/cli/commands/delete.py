"""Delete command implementation."""

import click

from orbitctl.cli.commands.common import (
    batch_option,
    namespace_option,
    platform_option,
    report_result,
    resolve_installer_config,
    run_stages,
    skip_cluster_availability_check_option,
    yes_option,
)
from orbitctl.cli.ensure import platform_error_boundary
from orbitctl.core.context import OrbitContext
from orbitctl.core.errors import UserCancelledError
from orbitctl.core.installer_config import InstallerConfig, InstallerFlags
from orbitctl.core.pipeline import Stage
from orbitctl.core.tasks import operator
from orbitctl.core.tasks.common import (
    delete_cluster_monitoring_stages,
    delete_namespace_stage,
    delete_orbit_cluster_stage,
)
from orbitctl.core.tasks.olm import OlmTasks
from orbitctl.core.tasks.preflight import preflight_stages


def delete_stages(octx: OrbitContext, config: InstallerConfig) -> list[Stage]:
    """Remove everything either installer may have created.

    OLM resources are only looked for when OLM is available on the cluster.
    """
    namespace = config.namespace
    return [
        *preflight_stages(octx, check_platform_version=False),
        delete_orbit_cluster_stage(octx, namespace),
        *OlmTasks(octx, config).delete_stages(),
        *operator.delete_stages(octx, config),
        *delete_cluster_monitoring_stages(octx, namespace),
        delete_namespace_stage(octx, namespace),
    ]


@click.command("delete")
@namespace_option
@platform_option
@click.option(
    "--delete-namespace",
    is_flag=True,
    help="Also delete the namespace Orbit was deployed to",
)
@yes_option
@batch_option
@skip_cluster_availability_check_option
@platform_error_boundary
@click.pass_obj
def delete_cmd(octx: OrbitContext, **options: object) -> None:
    """Delete Orbit server and its operator."""
    flags = InstallerFlags(**options)  # type: ignore[arg-type]
    config = resolve_installer_config(octx, flags, existing=True)

    if config.needs_confirmation and not octx.feedback.confirm(
        f"You're going to remove Orbit server in namespace '{config.namespace}'. "
        "If you want to continue - press Y"
    ):
        raise UserCancelledError("Delete cancelled by user.")

    ctx, result = run_stages(octx, config, delete_stages(octx, config))
    report_result(octx, ctx, result, "delete")
