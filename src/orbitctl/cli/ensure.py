"""CLI error handling with styled output.

platform_error_boundary turns a PlatformError raised by a command into a
message and an exit status. All errors use a red "Error:" prefix for visual
consistency.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from orbitctl.cli.output import user_output
from orbitctl.core.errors import PlatformError, UserCancelledError


def report_platform_error(error: PlatformError) -> None:
    """Print a PlatformError for the user and exit with its status.

    UserCancelledError is a clean abort: its message is printed as-is and the
    exit status is 0. Every other PlatformError exits with status 1.

    Raises:
        SystemExit: Always
    """
    if isinstance(error, UserCancelledError):
        user_output(str(error))
        raise SystemExit(0) from error
    user_output(click.style("Error: ", fg="red") + str(error))
    raise SystemExit(1) from error


def platform_error_boundary(func: Callable) -> Callable:
    """Decorator turning PlatformError raised by a command into a styled exit.

    Any other exception is a bug and propagates unchanged.

    Example:
        @click.command()
        @platform_error_boundary
        @click.pass_obj
        def my_command(octx: OrbitContext) -> None:
            ...
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except PlatformError as e:
            report_platform_error(e)

    return wrapper
