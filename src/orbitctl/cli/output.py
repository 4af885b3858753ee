"""Output helpers for CLI commands.

user_output is for humans and goes to stderr, keeping stdout free for results
a caller may capture.
"""

from typing import Any

import click


def user_output(message: Any = "", nl: bool = True) -> None:
    """Show a message to the user on stderr."""
    click.echo(message, err=True, nl=nl)
