"""Types returned by the release resolver."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ReleaseArtifact:
    """A concrete published release of the operator.

    Fields:
        tag: Tag name without a leading "v", or "next" for the newest commit
        commit_id: Commit SHA the tag points at
        download_url: Source archive URL for the commit
    """

    tag: str
    commit_id: str
    download_url: str
