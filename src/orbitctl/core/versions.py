"""Release identifiers and their ordering.

Two kinds of release exist:

- Stable releases: ``major.minor.patch`` (an optional leading ``v`` is accepted)
- Next builds: ``<base>-next.<token>`` such as ``0.0.20210715-next.597729a``,
  or the bare ``next`` sentinel that always means "the newest build"

Any next build sorts above any stable release. Two next builds with different
bases compare by base. Two builds on the same base can only be ordered by the
commit timestamps of their build tokens, which requires a ReleaseResolver.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from orbitctl.core.errors import ResolutionError

if TYPE_CHECKING:
    from orbitctl.core.releases.abc import ReleaseResolver

logger = logging.getLogger(__name__)

NEXT_TAG = "next"

# Version reported by source checkouts that were never installed
DEVELOPMENT_VERSION = "0.0.2"

MINIMAL_OPENSHIFT_VERSION = "4.8"
MINIMAL_KUBERNETES_VERSION = "1.19"

_STABLE_PATTERN = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")
_NEXT_BUILD_PATTERN = re.compile(r"^v?(\d+\.\d+\.\d+)-next\.([0-9A-Za-z]+)$")


class Ordering(Enum):
    """Result of comparing two releases."""

    GREATER = 1
    EQUAL = 0
    LESS = -1


@dataclass(frozen=True)
class StableRelease:
    """A numbered release such as 7.22.1."""

    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)


@dataclass(frozen=True)
class NextRelease:
    """A pre-release build.

    base and build_token are both None for the bare ``next`` sentinel, and both
    set for a qualified build.
    """

    base: StableRelease | None
    build_token: str | None

    def __post_init__(self) -> None:
        if (self.base is None) != (self.build_token is None):
            raise ValueError("A next build needs both a base and a build token, or neither")

    @property
    def is_sentinel(self) -> bool:
        return self.base is None

    def __str__(self) -> str:
        if self.base is None:
            return NEXT_TAG
        return f"{self.base}-next.{self.build_token}"


Release = StableRelease | NextRelease


def parse_release(value: str) -> Release:
    """Parse a release string into its identifier.

    Args:
        value: Version string, e.g. "7.22.1", "v7.22.1", "next"
            or "0.0.20210715-next.597729a"

    Returns:
        StableRelease or NextRelease

    Raises:
        ValueError: If the string is neither a stable version nor a next build
    """
    text = value.strip()
    if text == NEXT_TAG:
        return NextRelease(base=None, build_token=None)

    stable_match = _STABLE_PATTERN.match(text)
    if stable_match is not None:
        major, minor, patch = (int(part) for part in stable_match.groups())
        return StableRelease(major=major, minor=minor, patch=patch)

    next_match = _NEXT_BUILD_PATTERN.match(text)
    if next_match is not None:
        base = parse_release(next_match.group(1))
        assert isinstance(base, StableRelease)
        return NextRelease(base=base, build_token=next_match.group(2))

    raise ValueError(f"Not a release version: '{value}'")


def compare_releases(
    a: Release, b: Release, resolver: "ReleaseResolver | None" = None
) -> Ordering:
    """Compare two releases.

    Args:
        a: Left-hand release
        b: Right-hand release
        resolver: Used only to order two next builds made on the same base

    Returns:
        Ordering of a relative to b

    Raises:
        ResolutionError: If two next builds share a base and their commit
            timestamps cannot be looked up
    """
    if a == b:
        return Ordering.EQUAL

    if isinstance(a, StableRelease) and isinstance(b, StableRelease):
        return _compare_tuples(a.as_tuple(), b.as_tuple())

    if isinstance(a, NextRelease) and isinstance(b, StableRelease):
        return Ordering.GREATER
    if isinstance(a, StableRelease) and isinstance(b, NextRelease):
        return Ordering.LESS

    assert isinstance(a, NextRelease) and isinstance(b, NextRelease)
    return _compare_next_builds(a, b, resolver)


def _compare_next_builds(
    a: NextRelease, b: NextRelease, resolver: "ReleaseResolver | None"
) -> Ordering:
    if a.base is not None and b.base is not None and a.base != b.base:
        # Bases are date-like and fixed width
        return _compare_tuples(a.base.as_tuple(), b.base.as_tuple())

    if a.build_token is None or b.build_token is None:
        raise ResolutionError(
            f"Cannot order '{a}' and '{b}': the '{NEXT_TAG}' sentinel has no build to look up"
        )

    if resolver is None:
        raise ResolutionError(
            f"Cannot order '{a}' and '{b}': builds share a base and no release resolver "
            "is available to look up commit dates"
        )

    logger.debug("Ordering same-base builds %s and %s by commit date", a, b)
    a_timestamp = resolver.commit_timestamp(a.build_token)
    b_timestamp = resolver.commit_timestamp(b.build_token)
    if a_timestamp > b_timestamp:
        return Ordering.GREATER
    if a_timestamp < b_timestamp:
        return Ordering.LESS
    return Ordering.EQUAL


def _compare_tuples(a: tuple[int, ...], b: tuple[int, ...]) -> Ordering:
    if a > b:
        return Ordering.GREATER
    if a < b:
        return Ordering.LESS
    return Ordering.EQUAL


def is_upgrade(old: Release, new: Release) -> bool:
    """Check whether replacing old with new moves forward.

    A next release is newer than any stable one and a stable release is never
    newer than a next one. Two stable releases compare numerically.

    Raises:
        ValueError: If old and new are the same release. Callers must handle
            the no-change case before asking.
    """
    if old == new:
        raise ValueError(f"Releases are the same: {new}")

    if isinstance(new, NextRelease):
        return True
    if isinstance(old, NextRelease):
        return False
    return compare_releases(old, new) is Ordering.LESS


def remove_v_prefix(version: str, check_for_number: bool = False) -> str:
    """Strip a leading 'v' from a version string.

    Args:
        version: Version to process
        check_for_number: Only strip when a digit follows, so "vnext" stays as is
    """
    if not version.startswith("v") or len(version) < 2:
        return version
    if check_for_number and not version[1].isdigit():
        return version
    return version[1:]


def check_minimal_version(actual: str, minimal: str) -> bool:
    """Check actual >= minimal by comparing major and minor components only."""
    actual_major, actual_minor = _major_minor(actual)
    minimal_major, minimal_minor = _major_minor(minimal)
    return (actual_major, actual_minor) >= (minimal_major, minimal_minor)


def _major_minor(version: str) -> tuple[int, int]:
    parts = remove_v_prefix(version.strip()).split(".")
    if len(parts) < 2:
        raise ValueError(f"Not a major.minor version: '{version}'")
    minor_digits = re.match(r"\d+", parts[1])
    if not parts[0].isdigit() or minor_digits is None:
        raise ValueError(f"Not a major.minor version: '{version}'")
    return int(parts[0]), int(minor_digits.group(0))


def is_prerelease_tool_version(version: str) -> bool:
    """Whether this build of orbitctl is a next build or a source checkout."""
    return NEXT_TAG in version or version == DEVELOPMENT_VERSION
