"""Installed orbitctl version."""

from importlib.metadata import PackageNotFoundError, version

from orbitctl.core.versions import DEVELOPMENT_VERSION

try:
    __version__ = version("orbitctl")
except PackageNotFoundError:
    __version__ = DEVELOPMENT_VERSION
