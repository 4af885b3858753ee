import logging
import os

import click

from orbitctl.cli.commands.delete import delete_cmd
from orbitctl.cli.commands.deploy import deploy_cmd
from orbitctl.cli.commands.start import start_cmd
from orbitctl.cli.commands.status import status_cmd
from orbitctl.cli.commands.stop import stop_cmd
from orbitctl.cli.commands.update import update_cmd
from orbitctl.cli.ensure import report_platform_error
from orbitctl.core.context import create_context
from orbitctl.core.errors import PlatformError
from orbitctl.version import __version__

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])  # terse help flags

DEBUG_ENV_VAR = "ORBITCTL_DEBUG"


def _configure_logging() -> None:
    if os.environ.get(DEBUG_ENV_VAR):
        logging.basicConfig(
            level=logging.DEBUG, format="[DEBUG %(name)s:%(lineno)d] %(message)s"
        )


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(version=__version__, prog_name="orbitctl")
@click.option("--kube-context", help="Name of the kubeconfig context to use")
@click.pass_context
def cli(ctx: click.Context, kube_context: str | None) -> None:
    """Deploy and manage Orbit on Kubernetes and OpenShift."""
    _configure_logging()
    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is None:
        try:
            ctx.obj = create_context(kube_context=kube_context)
        except PlatformError as e:
            report_platform_error(e)


cli.add_command(deploy_cmd)
cli.add_command(start_cmd)
cli.add_command(stop_cmd)
cli.add_command(update_cmd)
cli.add_command(status_cmd)
cli.add_command(delete_cmd)


def main() -> None:
    """CLI entry point used by the `orbitctl` console script."""
    cli()
