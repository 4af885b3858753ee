"""Parsing helpers for `gh api` release output."""

from orbitctl.core.releases.types import ReleaseArtifact
from orbitctl.core.versions import StableRelease, parse_release, remove_v_prefix


def parse_tag_lines(output: str) -> list[ReleaseArtifact]:
    """Parse tab-separated "name, sha, zipball url" lines into artifacts.

    Tag names keep their original spelling so prefix matching can try both
    the bare and the "v"-prefixed form.
    """
    artifacts: list[ReleaseArtifact] = []
    for line in output.splitlines():
        fields = line.strip().split("\t")
        if len(fields) != 3:
            continue
        name, sha, url = fields
        artifacts.append(ReleaseArtifact(tag=name, commit_id=sha, download_url=url))
    return artifacts


def latest_semantic_tag(artifacts: list[ReleaseArtifact]) -> ReleaseArtifact | None:
    """Pick the highest x.y.z tag, ignoring anything with a suffix like -RC2.

    The returned artifact has its tag normalized without a leading "v".
    """
    semantic: list[tuple[StableRelease, ReleaseArtifact]] = []
    for artifact in artifacts:
        name = remove_v_prefix(artifact.tag)
        try:
            release = parse_release(name)
        except ValueError:
            continue
        if isinstance(release, StableRelease):
            semantic.append((release, artifact))

    if not semantic:
        return None

    release, artifact = max(semantic, key=lambda pair: pair[0].as_tuple())
    return ReleaseArtifact(
        tag=str(release), commit_id=artifact.commit_id, download_url=artifact.download_url
    )
