"""Status command implementation."""

import click
from rich.console import Console
from rich.table import Table

from orbitctl.cli.commands.common import (
    namespace_option,
    operator_namespace_of,
    platform_option,
    resolve_installer_config,
)
from orbitctl.cli.ensure import platform_error_boundary
from orbitctl.core.cluster.types import SubscriptionStatus, resource_name
from orbitctl.core.constants import (
    ALL_NAMESPACES_OPERATOR_NAMESPACE,
    OPERATOR_DEPLOYMENT,
    ORBIT_SERVER_DEPLOYMENT,
)
from orbitctl.core.context import OrbitContext
from orbitctl.core.installer_config import InstallerFlags
from orbitctl.core.platforms import Installer
from orbitctl.core.subscription import find_orbit_subscription
from orbitctl.core.tasks.preflight import available_replicas


def _deployment_state(octx: OrbitContext, namespace: str, name: str) -> tuple[str, str]:
    """Image and "available/desired" replicas of a deployment."""
    deployment = octx.cluster.get_deployment(namespace, name)
    if deployment is None:
        return "-", "Not Found"
    containers = deployment["spec"]["template"]["spec"]["containers"]
    desired = (deployment.get("spec") or {}).get("replicas", 0)
    return containers[0]["image"], f"{available_replicas(deployment)}/{desired}"


@click.command("status")
@namespace_option
@platform_option
@platform_error_boundary
@click.pass_obj
def status_cmd(octx: OrbitContext, **options: object) -> None:
    """Show the state of the Orbit installation."""
    flags = InstallerFlags(**options)  # type: ignore[arg-type]
    config = resolve_installer_config(octx, flags, existing=True)
    namespace = config.namespace
    operator_namespace = operator_namespace_of(octx, config)

    table = Table(show_header=True, header_style="bold")
    table.add_column("property", style="cyan", no_wrap=True)
    table.add_column("value", no_wrap=True)

    table.add_row("namespace", namespace)
    table.add_row("platform", config.platform.value)
    table.add_row("installer", config.installer.value)

    if config.installer is Installer.OLM:
        subscription = find_orbit_subscription(
            octx.cluster, [namespace, ALL_NAMESPACES_OPERATOR_NAMESPACE]
        )
        if subscription is not None:
            status = SubscriptionStatus.from_resource(subscription)
            table.add_row("subscription", resource_name(subscription))
            table.add_row("channel", subscription["spec"].get("channel", "-"))
            table.add_row("installed version", status.installed_version or "-")
            table.add_row("subscription state", status.state.value)

    operator_image, operator_replicas = _deployment_state(
        octx, operator_namespace, OPERATOR_DEPLOYMENT
    )
    table.add_row("operator image", operator_image)
    table.add_row("operator replicas", operator_replicas)

    _, server_replicas = _deployment_state(octx, namespace, ORBIT_SERVER_DEPLOYMENT)
    table.add_row("server replicas", server_replicas)

    orbit_clusters = octx.cluster.list_orbit_clusters(namespace)
    if orbit_clusters:
        phase = (orbit_clusters[0].get("status") or {}).get("phase") or "Unknown"
        table.add_row("orbit cluster", f"{resource_name(orbit_clusters[0])} ({phase})")
    else:
        table.add_row("orbit cluster", "Not Found")

    # Output table to stderr (consistent with user_output convention)
    console = Console(stderr=True, width=200)
    console.print(table)
