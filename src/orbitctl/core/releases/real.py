"""Real release resolver using the gh CLI."""

import logging
from datetime import datetime

from orbitctl.core.errors import ResolutionError
from orbitctl.core.releases.abc import ReleaseResolver
from orbitctl.core.releases.parsing import latest_semantic_tag, parse_tag_lines
from orbitctl.core.releases.types import ReleaseArtifact
from orbitctl.core.subprocess import run_subprocess_with_context
from orbitctl.core.versions import NEXT_TAG, remove_v_prefix

logger = logging.getLogger(__name__)

GITHUB_OWNER = "orbit-project"
OPERATOR_REPO = "orbit-operator"
ORBITCTL_REPO = "orbitctl"

SUPPORTED_INSTALLERS = ("operator", "olm")
_LATEST_ALIASES = ("latest", "stable")
_NEXT_ALIASES = (NEXT_TAG, "nightly")
_GH_TIMEOUT = 30


def _zipball_url(owner: str, repo: str, ref: str) -> str:
    return f"https://api.github.com/repos/{owner}/{repo}/zipball/{ref}"


class RealReleaseResolver(ReleaseResolver):
    """Production implementation over `gh api`.

    Requires the gh CLI to be installed and authenticated.
    """

    def resolve_tag(self, installer: str, version_or_channel: str | None) -> ReleaseArtifact | None:
        if installer not in SUPPORTED_INSTALLERS:
            raise ResolutionError(f"Unsupported installer: {installer}")

        if version_or_channel is None or version_or_channel in _LATEST_ALIASES:
            return latest_semantic_tag(self._list_tags(OPERATOR_REPO))
        if version_or_channel in _NEXT_ALIASES:
            return self._last_commit(OPERATOR_REPO)

        version = remove_v_prefix(version_or_channel)
        tags = self._list_tags(OPERATOR_REPO)
        # Some old tags carry a "v" prefix
        for prefix in (version, f"v{version}"):
            exact = [tag for tag in tags if tag.tag == prefix]
            if exact:
                return ReleaseArtifact(
                    tag=remove_v_prefix(exact[0].tag),
                    commit_id=exact[0].commit_id,
                    download_url=exact[0].download_url,
                )
            matching = [tag for tag in tags if tag.tag.startswith(prefix)]
            latest = latest_semantic_tag(matching)
            if latest is not None:
                return latest

        logger.debug("No tag of %s matches %s", OPERATOR_REPO, version_or_channel)
        return None

    def commit_timestamp(self, commit_id: str) -> datetime:
        output = self._gh_api(
            [f"repos/{GITHUB_OWNER}/{ORBITCTL_REPO}/commits/{commit_id}"],
            jq=".commit.committer.date",
            operation=f"read date of commit '{commit_id}'",
        ).strip()
        if not output or output == "null":
            raise ResolutionError(f"Failed to read '{commit_id}' commit date")
        try:
            return datetime.fromisoformat(output)
        except ValueError as e:
            raise ResolutionError(f"Unexpected date '{output}' for commit '{commit_id}'") from e

    def _list_tags(self, repo: str) -> list[ReleaseArtifact]:
        output = self._gh_api(
            ["--paginate", f"repos/{GITHUB_OWNER}/{repo}/tags?per_page=100"],
            jq=".[] | [.name, .commit.sha, .zipball_url] | @tsv",
            operation=f"list tags of '{GITHUB_OWNER}/{repo}'",
        )
        return parse_tag_lines(output)

    def _last_commit(self, repo: str) -> ReleaseArtifact:
        sha = self._gh_api(
            [f"repos/{GITHUB_OWNER}/{repo}/commits?per_page=1"],
            jq=".[0].sha",
            operation=f"read the last commit of '{GITHUB_OWNER}/{repo}'",
        ).strip()
        if not sha or sha == "null":
            raise ResolutionError(f"Repository '{GITHUB_OWNER}/{repo}' has no commits")
        return ReleaseArtifact(
            tag=NEXT_TAG, commit_id=sha, download_url=_zipball_url(GITHUB_OWNER, repo, sha)
        )

    def _gh_api(self, args: list[str], *, jq: str, operation: str) -> str:
        cmd = ["gh", "api", *args, "--jq", jq]
        try:
            result = run_subprocess_with_context(cmd, operation, timeout=_GH_TIMEOUT)
        except RuntimeError as e:
            raise ResolutionError(str(e)) from e
        return result.stdout
