"""Advisory check for a newer orbitctl release.

The latest published version of each channel is cached in
``{cache_dir}/{channel}-update-info.json`` as
``{"latestVersion": "...", "lastCheck": <epoch ms>}`` and refetched at most
once a day. Every failure degrades to "no update available".
"""

import json
import logging
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import httpx

from orbitctl.core.errors import PlatformError
from orbitctl.core.releases.abc import ReleaseResolver
from orbitctl.core.time.abc import Time
from orbitctl.core.versions import (
    DEVELOPMENT_VERSION,
    NEXT_TAG,
    Ordering,
    compare_releases,
    parse_release,
)

logger = logging.getLogger(__name__)

UPDATE_INFO_FILENAME = "update-info.json"
CHANNELS_URL = "https://orbit-project.github.io/orbitctl/channels/{channel}/linux-x64"
CACHE_TTL = timedelta(days=1)
FETCH_TIMEOUT_SECONDS = 10

FetchLatest = Callable[[str], str | None]


def fetch_latest_tool_version(channel: str) -> str | None:
    """Get the latest orbitctl version published on a channel, or None on any failure."""
    url = CHANNELS_URL.format(channel=channel)
    try:
        response = httpx.get(url, timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("Failed to fetch %s: %s", url, e)
        return None
    version = data.get("version") if isinstance(data, dict) else None
    return version if isinstance(version, str) else None


def is_tool_update_available(
    cache_dir: Path,
    current_version: str,
    *,
    time: Time,
    resolver: ReleaseResolver | None,
    fetch_latest: FetchLatest = fetch_latest_tool_version,
    force_recheck: bool = False,
) -> bool:
    """Check whether a newer orbitctl is published on the current version's channel.

    Args:
        cache_dir: Directory holding the update info cache
        current_version: Version of the running orbitctl
        time: Time abstraction providing the current time
        resolver: Orders two next builds made on the same base
        fetch_latest: Returns the latest version of a channel, or None
        force_recheck: Ignore the cached answer

    Returns:
        True only if a newer version is known for certain
    """
    if current_version == DEVELOPMENT_VERSION:
        return False

    channel = NEXT_TAG if NEXT_TAG in current_version else "stable"
    cache_file = cache_dir / f"{channel}-{UPDATE_INFO_FILENAME}"
    latest_version, last_check = _read_cache(cache_file)

    cached_newer = _is_newer(latest_version, current_version, resolver)
    now_ms = int(time.now().timestamp() * 1000)
    expired = now_ms - last_check > CACHE_TTL.total_seconds() * 1000
    if not force_recheck and (cached_newer or not expired):
        return cached_newer

    fetched = fetch_latest(channel)
    if fetched is None:
        return False
    _write_cache(cache_file, fetched, now_ms)
    return _is_newer(fetched, current_version, resolver)


def _read_cache(cache_file: Path) -> tuple[str, int]:
    if not cache_file.exists():
        return "0.0.0", 0
    try:
        data = json.loads(cache_file.read_text(encoding="utf-8"))
        return str(data["latestVersion"]), int(data["lastCheck"])
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.debug("Ignoring corrupted update info cache %s: %s", cache_file, e)
        return "0.0.0", 0


def _write_cache(cache_file: Path, latest_version: str, now_ms: int) -> None:
    try:
        cache_file.parent.mkdir(parents=True, exist_ok=True)
        cache_file.write_text(
            json.dumps({"latestVersion": latest_version, "lastCheck": now_ms}),
            encoding="utf-8",
        )
    except OSError as e:
        logger.debug("Cannot write update info cache %s: %s", cache_file, e)


def _is_newer(candidate: str, current: str, resolver: ReleaseResolver | None) -> bool:
    try:
        ordering = compare_releases(parse_release(candidate), parse_release(current), resolver)
    except (ValueError, PlatformError) as e:
        logger.debug("Failed to compare versions '%s' and '%s': %s", candidate, current, e)
        return False
    return ordering is Ordering.GREATER
