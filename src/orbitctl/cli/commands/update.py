"""Update command implementation."""

import click

from orbitctl.cli.commands.common import (
    batch_option,
    cr_patch_yaml_option,
    installer_option,
    namespace_option,
    olm_update_timeout_option,
    operator_image_option,
    platform_option,
    pod_ready_timeout_option,
    report_result,
    resolve_installer_config,
    run_stages,
    skip_cluster_availability_check_option,
    version_option,
    warn_if_outdated,
    yes_option,
)
from orbitctl.cli.ensure import platform_error_boundary
from orbitctl.core.context import OrbitContext
from orbitctl.core.errors import ConfigurationError
from orbitctl.core.installer_config import InstallerConfig, InstallerFlags
from orbitctl.core.pipeline import Stage
from orbitctl.core.platforms import Installer
from orbitctl.core.tasks import operator
from orbitctl.core.tasks.olm import OlmTasks
from orbitctl.core.tasks.preflight import preflight_stages


def update_stages(octx: OrbitContext, config: InstallerConfig) -> list[Stage]:
    """Every stage of an update, in order.

    Raises:
        ConfigurationError: If the OLM installer is asked for a specific
            version or image; OLM only moves to the head of the channel
    """
    if config.installer is Installer.OLM:
        if config.version is not None or config.operator_image is not None:
            raise ConfigurationError(
                "--version and --operator-image cannot be used with the 'olm' installer. "
                "OLM updates Orbit to the latest version of the subscribed channel."
            )
        tasks = OlmTasks(octx, config)
        installer_stages = [*tasks.pre_update_stages(), *tasks.update_stages()]
    else:
        installer_stages = [
            *operator.pre_update_stages(octx, config),
            *operator.update_stages(octx, config),
        ]
    return [*preflight_stages(octx, check_platform_version=False), *installer_stages]


@click.command("update")
@namespace_option
@installer_option
@platform_option
@version_option
@operator_image_option
@cr_patch_yaml_option
@yes_option
@batch_option
@olm_update_timeout_option
@pod_ready_timeout_option
@skip_cluster_availability_check_option
@platform_error_boundary
@click.pass_obj
def update_cmd(octx: OrbitContext, **options: object) -> None:
    """Update the Orbit operator and patch the Orbit cluster."""
    flags = InstallerFlags(**options)  # type: ignore[arg-type]
    config = resolve_installer_config(octx, flags, existing=True)
    warn_if_outdated(octx, config)

    ctx, result = run_stages(octx, config, update_stages(octx, config))
    report_result(octx, ctx, result, "update")
