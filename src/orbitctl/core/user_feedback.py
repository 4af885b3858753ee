"""User-facing progress and prompts."""

from abc import ABC, abstractmethod

import click

from orbitctl.cli.output import user_output


class UserFeedback(ABC):
    """Progress lines, warnings and confirmation prompts.

    Pipelines report through this interface instead of printing, so tests can
    record what the user would have seen and script answers to prompts.
    """

    @abstractmethod
    def info(self, message: str) -> None:
        """Show a progress or informational line."""

    @abstractmethod
    def success(self, message: str) -> None:
        """Show a success line."""

    @abstractmethod
    def warning(self, message: str) -> None:
        """Show a warning line."""

    @abstractmethod
    def confirm(self, message: str) -> bool:
        """Ask a yes/no question; False means the user declined."""


class InteractiveFeedback(UserFeedback):
    """Feedback written to stderr with click styling."""

    def info(self, message: str) -> None:
        user_output(message)

    def success(self, message: str) -> None:
        user_output(click.style(message, fg="green"))

    def warning(self, message: str) -> None:
        user_output(click.style("Warning: ", fg="yellow") + message)

    def confirm(self, message: str) -> bool:
        return click.confirm(message, default=False, err=True)
