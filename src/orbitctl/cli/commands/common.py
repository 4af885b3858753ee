"""Options and helpers shared by the server commands."""

from pathlib import Path

import click

from orbitctl.core.constants import (
    ALL_NAMESPACES_OPERATOR_NAMESPACE,
    DEFAULT_OLM_INSTALL_TIMEOUT,
    DEFAULT_OLM_UPDATE_TIMEOUT,
    DEFAULT_POD_READY_TIMEOUT,
)
from orbitctl.core.context import OrbitContext
from orbitctl.core.installer_config import (
    InstallerConfig,
    InstallerFlags,
    build_installer_config,
    default_deploy_installer,
    default_existing_installer,
    find_working_namespace,
    parse_installer,
    resolve_platform,
)
from orbitctl.core.pipeline import InstallationContext, Pipeline, PipelineResult, Stage
from orbitctl.core.platforms import Installer, Platform
from orbitctl.core.subscription import find_orbit_subscription
from orbitctl.core.update_check import is_tool_update_available

namespace_option = click.option(
    "-n", "--namespace", help="Kubernetes namespace where Orbit server is supposed to be"
)
platform_option = click.option(
    "-p",
    "--platform",
    type=click.Choice([platform.value for platform in Platform]),
    help="Type of Kubernetes platform. Detected from the cluster when not given.",
)
installer_option = click.option(
    "-a",
    "--installer",
    type=click.Choice([installer.value for installer in Installer]),
    help="Installer type. Detected from the cluster when not given.",
)
yes_option = click.option(
    "-y", "--yes", "assume_yes", is_flag=True, help="Automatic yes to prompts"
)
batch_option = click.option(
    "-b",
    "--batch",
    is_flag=True,
    help="Batch mode. Running a command without end user interaction.",
)
pod_ready_timeout_option = click.option(
    "--pod-ready-timeout",
    type=float,
    default=DEFAULT_POD_READY_TIMEOUT,
    show_default=True,
    help="Seconds to wait for Orbit pods to become ready",
)
olm_update_timeout_option = click.option(
    "--olm-update-timeout",
    type=float,
    default=DEFAULT_OLM_UPDATE_TIMEOUT,
    show_default=True,
    help="Seconds to wait for an OLM install plan to complete an update",
)
olm_install_timeout_option = click.option(
    "--olm-install-timeout",
    type=float,
    default=DEFAULT_OLM_INSTALL_TIMEOUT,
    show_default=True,
    help="Seconds to wait for OLM to install the operator",
)
skip_cluster_availability_check_option = click.option(
    "--skip-cluster-availability-check",
    is_flag=True,
    help="Skip the cluster availability check",
)
skip_version_check_option = click.option(
    "--skip-version-check",
    is_flag=True,
    help="Skip the minimal Kubernetes or OpenShift version check",
)
version_option = click.option(
    "--version",
    help="Version to deploy (e.g. 7.22.1 or next). Defaults to the one matching orbitctl.",
)
operator_image_option = click.option(
    "--operator-image", help="Container image of the operator. Not for production use."
)
cr_patch_yaml_option = click.option(
    "--cr-patch-yaml",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to a YAML file merged into the Orbit cluster custom resource",
)


def resolve_installer_config(
    octx: OrbitContext, flags: InstallerFlags, *, existing: bool
) -> InstallerConfig:
    """Fill in what the user left out and validate the result.

    Flags win over ~/.orbitctl/config.toml, which wins over detection from
    the cluster and built-in defaults.

    Args:
        octx: Dependencies
        flags: Raw user options
        existing: The command works on an existing deployment, so the
            namespace and installer are looked up where Orbit already runs
    """
    platform = resolve_platform(flags.platform, octx.global_config.platform, octx.cluster)
    default_namespace = octx.global_config.namespace
    if existing:
        default_namespace = find_working_namespace(
            octx.cluster, flags.namespace, default_namespace
        )

    installer = parse_installer(flags.installer)
    if installer is None:
        if existing:
            installer = default_existing_installer(octx.cluster, default_namespace)
        else:
            installer = default_deploy_installer(octx.cluster, flags, platform)

    return build_installer_config(
        flags,
        installer=installer,
        platform=platform,
        default_namespace=default_namespace,
        poll_interval=octx.global_config.poll_interval,
    )


def operator_namespace_of(octx: OrbitContext, config: InstallerConfig) -> str:
    """Namespace running the operator deployment of an existing installation."""
    if config.installer is not Installer.OLM:
        return config.namespace
    subscription = find_orbit_subscription(
        octx.cluster, [config.namespace, ALL_NAMESPACES_OPERATOR_NAMESPACE]
    )
    if subscription is None:
        return config.namespace
    return subscription["metadata"]["namespace"]


def run_stages(
    octx: OrbitContext, config: InstallerConfig, stages: list[Stage]
) -> tuple[InstallationContext, PipelineResult]:
    ctx = InstallationContext(config=config)
    result = Pipeline(stages).run(ctx, octx.feedback)
    return ctx, result


def report_result(
    octx: OrbitContext, ctx: InstallationContext, result: PipelineResult, command: str
) -> None:
    """Print what a finished pipeline wants the user to see."""
    if result.halted:
        assert result.halt_message is not None
        octx.feedback.info(result.halt_message)
        return
    for message in ctx.highlighted_messages:
        octx.feedback.info(message)
    octx.feedback.success(f"Command {command} has completed successfully.")


def warn_if_outdated(octx: OrbitContext, config: InstallerConfig) -> None:
    """Point at a newer orbitctl; never in batch mode or when disabled in the config file."""
    if config.batch or not octx.global_config.check_for_updates:
        return
    if is_tool_update_available(
        octx.global_config.cache_dir,
        octx.tool_version,
        time=octx.time,
        resolver=octx.releases,
    ):
        octx.feedback.warning(
            "A newer version of orbitctl is available. Update orbitctl before deploying or "
            "updating Orbit to get the latest fixes."
        )
