from orbitctl.core.releases.parsing import latest_semantic_tag, parse_tag_lines
from orbitctl.core.releases.types import ReleaseArtifact


def test_parse_tag_lines_skips_malformed_lines() -> None:
    output = "v7.22.1\tabc\thttps://example/abc\nbroken line\n7.23.0\tdef\thttps://example/def\n"

    assert parse_tag_lines(output) == [
        ReleaseArtifact(tag="v7.22.1", commit_id="abc", download_url="https://example/abc"),
        ReleaseArtifact(tag="7.23.0", commit_id="def", download_url="https://example/def"),
    ]


def test_latest_semantic_tag_ignores_suffixed_tags() -> None:
    artifacts = [
        ReleaseArtifact(tag="v7.9.0", commit_id="a", download_url="u1"),
        ReleaseArtifact(tag="7.22.1", commit_id="b", download_url="u2"),
        ReleaseArtifact(tag="7.23.0-RC2", commit_id="c", download_url="u3"),
        ReleaseArtifact(tag="7.10.0", commit_id="d", download_url="u4"),
    ]

    assert latest_semantic_tag(artifacts) == ReleaseArtifact(
        tag="7.22.1", commit_id="b", download_url="u2"
    )


def test_latest_semantic_tag_normalizes_v_prefix() -> None:
    artifacts = [ReleaseArtifact(tag="v7.22.1", commit_id="b", download_url="u")]

    latest = latest_semantic_tag(artifacts)

    assert latest is not None
    assert latest.tag == "7.22.1"


def test_latest_semantic_tag_without_releases() -> None:
    assert latest_semantic_tag([]) is None
    next_only = [ReleaseArtifact(tag="next", commit_id="a", download_url="u")]
    assert latest_semantic_tag(next_only) is None
