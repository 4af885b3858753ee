"""Global configuration data structures and loading.

Provides immutable global config data loaded from ~/.orbitctl/config.toml.
Command line flags override it; it overrides built-in defaults.
"""

import tomllib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from orbitctl.core.constants import DEFAULT_NAMESPACE, DEFAULT_POLL_INTERVAL
from orbitctl.core.errors import ConfigurationError


@dataclass(frozen=True)
class GlobalConfig:
    """Immutable global configuration data.

    Loaded once at CLI entry point and stored in OrbitContext.
    """

    namespace: str
    platform: str | None
    poll_interval: float
    check_for_updates: bool
    cache_dir: Path

    @staticmethod
    def defaults() -> "GlobalConfig":
        return GlobalConfig(
            namespace=DEFAULT_NAMESPACE,
            platform=None,
            poll_interval=DEFAULT_POLL_INTERVAL,
            check_for_updates=True,
            cache_dir=Path.home() / ".orbitctl" / "cache",
        )


class ConfigStore(ABC):
    """Abstract interface for global config access.

    Enables in-memory implementations for tests without touching the filesystem.
    """

    @abstractmethod
    def exists(self) -> bool:
        """Check if global config exists."""
        ...

    @abstractmethod
    def load(self) -> GlobalConfig:
        """Load global config, filling unset keys with defaults.

        Raises:
            ConfigurationError: If the config file is malformed
        """
        ...

    @abstractmethod
    def path(self) -> Path:
        """Get the path to the global config file (for error messages)."""
        ...


class FilesystemConfigStore(ConfigStore):
    """Production implementation that reads ~/.orbitctl/config.toml."""

    def exists(self) -> bool:
        return self.path().exists()

    def load(self) -> GlobalConfig:
        defaults = GlobalConfig.defaults()
        config_path = self.path()
        if not config_path.exists():
            return defaults

        try:
            data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        poll_interval = data.get("poll_interval", defaults.poll_interval)
        if not isinstance(poll_interval, int | float) or poll_interval <= 0:
            raise ConfigurationError(
                f"'poll_interval' in {config_path} must be a positive number of seconds"
            )
        platform = data.get("platform")
        if platform is not None and not isinstance(platform, str):
            raise ConfigurationError(f"'platform' in {config_path} must be a string")
        cache_dir = data.get("cache_dir")

        return GlobalConfig(
            namespace=str(data.get("namespace", defaults.namespace)),
            platform=platform,
            poll_interval=float(poll_interval),
            check_for_updates=bool(data.get("check_for_updates", defaults.check_for_updates)),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else defaults.cache_dir,
        )

    def path(self) -> Path:
        return Path.home() / ".orbitctl" / "config.toml"


class InMemoryConfigStore(ConfigStore):
    """Test implementation that holds config in memory."""

    def __init__(self, config: GlobalConfig | None = None) -> None:
        """Initialize in-memory config store.

        Args:
            config: Stored config (None = config file doesn't exist)
        """
        self._config = config

    def exists(self) -> bool:
        return self._config is not None

    def load(self) -> GlobalConfig:
        if self._config is None:
            return GlobalConfig.defaults()
        return self._config

    def path(self) -> Path:
        return Path("/fake/orbitctl/config.toml")
