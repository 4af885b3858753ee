"""Fake release resolver for testing."""

from datetime import datetime

from orbitctl.core.errors import ResolutionError
from orbitctl.core.releases.abc import ReleaseResolver
from orbitctl.core.releases.types import ReleaseArtifact


class FakeReleaseResolver(ReleaseResolver):
    """In-memory resolver with canned answers.

    All state is provided via constructor. Lookups of unknown commits raise
    ResolutionError, as does every call when `unreachable` is set.
    """

    def __init__(
        self,
        *,
        artifacts: dict[str, ReleaseArtifact] | None = None,
        commit_timestamps: dict[str, datetime] | None = None,
        unreachable: bool = False,
    ) -> None:
        self._artifacts = artifacts or {}
        self._commit_timestamps = commit_timestamps or {}
        self._unreachable = unreachable
        self._resolve_calls: list[tuple[str, str | None]] = []
        self._timestamp_calls: list[str] = []

    @property
    def resolve_calls(self) -> list[tuple[str, str | None]]:
        """(installer, version_or_channel) pairs passed to resolve_tag()."""
        return self._resolve_calls

    @property
    def timestamp_calls(self) -> list[str]:
        """Commit ids passed to commit_timestamp()."""
        return self._timestamp_calls

    def resolve_tag(self, installer: str, version_or_channel: str | None) -> ReleaseArtifact | None:
        self._resolve_calls.append((installer, version_or_channel))
        if self._unreachable:
            raise ResolutionError("Release service is unreachable")
        return self._artifacts.get(version_or_channel or "stable")

    def commit_timestamp(self, commit_id: str) -> datetime:
        self._timestamp_calls.append(commit_id)
        if self._unreachable:
            raise ResolutionError("Release service is unreachable")
        if commit_id not in self._commit_timestamps:
            raise ResolutionError(f"Failed to read '{commit_id}' commit date")
        return self._commit_timestamps[commit_id]
