from click.testing import CliRunner

from orbitctl.cli.cli import cli
from orbitctl.version import __version__


def test_version_option() -> None:
    result = CliRunner().invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert f"orbitctl, version {__version__}" in result.output


def test_help_lists_commands() -> None:
    result = CliRunner().invoke(cli, ["-h"])

    assert result.exit_code == 0
    for command in ("deploy", "update", "start", "stop", "status", "delete"):
        assert command in result.output
