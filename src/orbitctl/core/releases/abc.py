"""Abstract interface for looking up published releases."""

from abc import ABC, abstractmethod
from datetime import datetime

from orbitctl.core.releases.types import ReleaseArtifact


class ReleaseResolver(ABC):
    """Resolves version strings and channels to published releases.

    Both operations talk to a remote service. Failures raise ResolutionError
    and must never be read as "no update available".
    """

    @abstractmethod
    def resolve_tag(self, installer: str, version_or_channel: str | None) -> ReleaseArtifact | None:
        """Resolve a version, version prefix or channel name to a release.

        Args:
            installer: Installer the release is for ("operator" or "olm")
            version_or_channel: Exact version ("7.22.1" or "v7.22.1"), a prefix
                ("7.22"), "stable"/"latest"/None for the newest stable tag,
                or "next"/"nightly" for the newest commit

        Returns:
            The matching release, or None when nothing matches

        Raises:
            ResolutionError: If the remote lookup fails
        """
        ...

    @abstractmethod
    def commit_timestamp(self, commit_id: str) -> datetime:
        """Get the committer date of an orbitctl commit.

        Raises:
            ResolutionError: If the commit is unknown or the lookup fails
        """
        ...
