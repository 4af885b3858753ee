"""Tests for release parsing and ordering."""

from datetime import UTC, datetime

import pytest

from orbitctl.core.errors import ResolutionError
from orbitctl.core.releases.fake import FakeReleaseResolver
from orbitctl.core.versions import (
    NextRelease,
    Ordering,
    StableRelease,
    check_minimal_version,
    compare_releases,
    is_prerelease_tool_version,
    is_upgrade,
    parse_release,
    remove_v_prefix,
)

NEXT = NextRelease(base=None, build_token=None)


def test_parse_stable_release_accepts_v_prefix() -> None:
    assert parse_release("v7.15.0") == StableRelease(7, 15, 0)
    assert parse_release("7.15.0") == StableRelease(7, 15, 0)


def test_parse_next_build() -> None:
    release = parse_release("0.0.20210715-next.597729a")

    assert release == NextRelease(base=StableRelease(0, 0, 20210715), build_token="597729a")
    assert str(release) == "0.0.20210715-next.597729a"


def test_parse_next_sentinel() -> None:
    release = parse_release("next")

    assert isinstance(release, NextRelease)
    assert release.is_sentinel


@pytest.mark.parametrize("value", ["", "7.15", "latest", "7.15.0-rc1", "v"])
def test_parse_rejects_unknown_formats(value: str) -> None:
    with pytest.raises(ValueError):
        parse_release(value)


@pytest.mark.parametrize(
    ("a", "b"),
    [
        ("8.0.0", "7.99.99"),
        ("2.0.0", "1.0.0"),
        ("10.1.0", "9.40.3"),
    ],
)
def test_higher_major_is_greater_regardless_of_minor_and_patch(a: str, b: str) -> None:
    assert compare_releases(parse_release(a), parse_release(b)) is Ordering.GREATER
    assert compare_releases(parse_release(b), parse_release(a)) is Ordering.LESS


@pytest.mark.parametrize("stable", ["0.0.1", "7.22.1", "99.99.99"])
def test_next_sorts_above_every_stable_release(stable: str) -> None:
    release = parse_release(stable)

    assert compare_releases(release, NEXT) is Ordering.LESS
    assert compare_releases(NEXT, release) is Ordering.GREATER


def test_next_builds_with_different_bases_compare_by_base() -> None:
    older = parse_release("0.0.20210714-next.aaaaaaa")
    newer = parse_release("0.0.20210715-next.bbbbbbb")

    assert compare_releases(older, newer) is Ordering.LESS


def test_same_base_next_builds_use_commit_timestamps() -> None:
    resolver = FakeReleaseResolver(
        commit_timestamps={
            "aaaaaaa": datetime(2021, 7, 15, 8, 0, tzinfo=UTC),
            "bbbbbbb": datetime(2021, 7, 15, 17, 0, tzinfo=UTC),
        }
    )
    morning = parse_release("0.0.20210715-next.aaaaaaa")
    evening = parse_release("0.0.20210715-next.bbbbbbb")

    assert compare_releases(evening, morning, resolver) is Ordering.GREATER
    assert resolver.timestamp_calls == ["bbbbbbb", "aaaaaaa"]


def test_same_base_next_builds_without_resolver_is_an_error() -> None:
    a = parse_release("0.0.20210715-next.aaaaaaa")
    b = parse_release("0.0.20210715-next.bbbbbbb")

    with pytest.raises(ResolutionError):
        compare_releases(a, b)


def test_same_base_next_builds_with_unreachable_resolver_is_an_error() -> None:
    a = parse_release("0.0.20210715-next.aaaaaaa")
    b = parse_release("0.0.20210715-next.bbbbbbb")

    with pytest.raises(ResolutionError):
        compare_releases(a, b, FakeReleaseResolver(unreachable=True))


@pytest.mark.parametrize("value", ["7.22.1", "next", "0.0.20210715-next.597729a"])
def test_is_upgrade_rejects_equal_releases(value: str) -> None:
    release = parse_release(value)

    with pytest.raises(ValueError):
        is_upgrade(release, release)


def test_is_upgrade_directions() -> None:
    assert is_upgrade(parse_release("7.20.2"), parse_release("7.22.1"))
    assert not is_upgrade(parse_release("7.22.1"), parse_release("7.20.2"))
    assert is_upgrade(parse_release("7.22.1"), NEXT)
    assert not is_upgrade(NEXT, parse_release("7.22.1"))


def test_remove_v_prefix() -> None:
    assert remove_v_prefix("v7.1.0") == "7.1.0"
    assert remove_v_prefix("7.1.0") == "7.1.0"
    assert remove_v_prefix("vnext", check_for_number=True) == "vnext"
    assert remove_v_prefix("v") == "v"


def test_check_minimal_version_compares_major_and_minor() -> None:
    assert check_minimal_version("v1.27.3", "1.19")
    assert check_minimal_version("4.8.0", "4.8")
    assert check_minimal_version("1.19+", "1.19")
    assert not check_minimal_version("4.7.21", "4.8")


def test_check_minimal_version_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        check_minimal_version("unknown", "1.19")


def test_is_prerelease_tool_version() -> None:
    assert is_prerelease_tool_version("0.0.20210715-next.597729a")
    assert is_prerelease_tool_version("0.0.2")
    assert not is_prerelease_tool_version("7.22.1")
