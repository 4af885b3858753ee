"""Deploy command implementation."""

from pathlib import Path

import click

from orbitctl.cli.commands.common import (
    batch_option,
    cr_patch_yaml_option,
    installer_option,
    namespace_option,
    olm_install_timeout_option,
    operator_image_option,
    platform_option,
    pod_ready_timeout_option,
    report_result,
    resolve_installer_config,
    run_stages,
    skip_cluster_availability_check_option,
    skip_version_check_option,
    version_option,
    warn_if_outdated,
    yes_option,
)
from orbitctl.cli.ensure import platform_error_boundary
from orbitctl.core.context import OrbitContext
from orbitctl.core.installer_config import InstallerConfig, InstallerFlags
from orbitctl.core.pipeline import Stage
from orbitctl.core.platforms import Installer
from orbitctl.core.tasks import operator
from orbitctl.core.tasks.common import namespace_stages, wait_orbit_cluster_active_stage
from orbitctl.core.tasks.olm import OlmTasks
from orbitctl.core.tasks.preflight import already_deployed_stage, preflight_stages


def deploy_stages(octx: OrbitContext, config: InstallerConfig) -> list[Stage]:
    """Every stage of a deployment, in order."""
    if config.installer is Installer.OLM:
        installer_stages = OlmTasks(octx, config).deploy_stages()
    else:
        installer_stages = operator.deploy_stages(octx, config)
    return [
        *preflight_stages(octx, check_platform_version=True),
        already_deployed_stage(),
        *namespace_stages(octx, config.namespace),
        *installer_stages,
        wait_orbit_cluster_active_stage(octx, config.namespace),
    ]


@click.command("deploy")
@namespace_option
@installer_option
@platform_option
@version_option
@click.option("--olm-channel", help="OLM channel to subscribe to, e.g. stable or next")
@click.option("--package-manifest-name", help="Package name to subscribe to with OLM")
@click.option("--catalog-source-name", help="Existing catalog source to install from with OLM")
@click.option(
    "--catalog-source-yaml",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to a catalog source manifest to create and install from with OLM",
)
@click.option("--catalog-source-namespace", help="Namespace of the custom catalog source")
@click.option("--starting-csv", help="Cluster service version the OLM subscription starts from")
@click.option(
    "--auto-update/--no-auto-update",
    default=None,
    help="Let OLM approve operator updates automatically",
)
@operator_image_option
@click.option(
    "--cr-yaml",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to a YAML file with the Orbit cluster custom resource to create",
)
@cr_patch_yaml_option
@click.option(
    "--cluster-monitoring",
    is_flag=True,
    help="Let the OpenShift cluster monitoring stack scrape Orbit metrics",
)
@click.option(
    "--olm-suggested-namespace/--no-olm-suggested-namespace",
    default=False,
    help="Install into the namespace OLM suggests for Orbit",
)
@yes_option
@batch_option
@olm_install_timeout_option
@pod_ready_timeout_option
@skip_version_check_option
@skip_cluster_availability_check_option
@platform_error_boundary
@click.pass_obj
def deploy_cmd(octx: OrbitContext, **options: object) -> None:
    """Deploy Orbit server and its operator."""
    flags = InstallerFlags(**options)  # type: ignore[arg-type]
    config = resolve_installer_config(octx, flags, existing=False)
    warn_if_outdated(octx, config)

    ctx, result = run_stages(octx, config, deploy_stages(octx, config))
    if not result.halted:
        ctx.highlighted_messages.append(
            f"Orbit is deployed in namespace '{config.namespace}' "
            f"with the '{config.installer.value}' installer."
        )
    report_result(octx, ctx, result, "deploy")
