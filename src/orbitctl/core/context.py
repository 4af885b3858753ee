"""Application context with dependency injection."""

from dataclasses import dataclass

from orbitctl.core.cluster.abc import ClusterApi
from orbitctl.core.cluster.real import RealClusterApi
from orbitctl.core.global_config import ConfigStore, FilesystemConfigStore, GlobalConfig
from orbitctl.core.releases.abc import ReleaseResolver
from orbitctl.core.releases.real import RealReleaseResolver
from orbitctl.core.time.abc import Time
from orbitctl.core.time.real import RealTime
from orbitctl.core.user_feedback import InteractiveFeedback, UserFeedback
from orbitctl.version import __version__


@dataclass(frozen=True)
class OrbitContext:
    """Immutable context holding all dependencies for orbitctl operations.

    Created at CLI entry point and threaded through the application.
    Frozen to prevent accidental modification at runtime.
    """

    cluster: ClusterApi
    releases: ReleaseResolver
    time: Time
    feedback: UserFeedback
    config_store: ConfigStore
    global_config: GlobalConfig
    tool_version: str

    @staticmethod
    def for_test(
        cluster: ClusterApi | None = None,
        releases: ReleaseResolver | None = None,
        time: Time | None = None,
        feedback: UserFeedback | None = None,
        config_store: ConfigStore | None = None,
        global_config: GlobalConfig | None = None,
        tool_version: str = "7.22.1",
    ) -> "OrbitContext":
        """Create test context with optional pre-configured gateways.

        Any gateway left out is replaced by an empty fake.

        Args:
            cluster: Optional ClusterApi. If None, creates an empty FakeClusterApi.
            releases: Optional ReleaseResolver. If None, creates FakeReleaseResolver.
            time: Optional Time. If None, creates FakeTime.
            feedback: Optional UserFeedback. If None, creates FakeUserFeedback.
            config_store: Optional ConfigStore. If None, holds global_config.
            global_config: Optional GlobalConfig. If None, uses test defaults.
            tool_version: Version reported for the running orbitctl.

        Example:
            >>> cluster = FakeClusterApi(namespaces=["orbit"])
            >>> ctx = OrbitContext.for_test(cluster=cluster)
        """
        from pathlib import Path

        from tests.fakes.time import FakeTime
        from tests.fakes.user_feedback import FakeUserFeedback

        from orbitctl.core.cluster.fake import FakeClusterApi
        from orbitctl.core.global_config import InMemoryConfigStore
        from orbitctl.core.releases.fake import FakeReleaseResolver

        if cluster is None:
            cluster = FakeClusterApi()

        if releases is None:
            releases = FakeReleaseResolver()

        if time is None:
            time = FakeTime()

        if feedback is None:
            feedback = FakeUserFeedback()

        if global_config is None:
            global_config = GlobalConfig(
                namespace="orbit",
                platform=None,
                poll_interval=1.0,
                check_for_updates=False,
                cache_dir=Path("/test/orbitctl/cache"),
            )

        if config_store is None:
            config_store = InMemoryConfigStore(config=global_config)

        return OrbitContext(
            cluster=cluster,
            releases=releases,
            time=time,
            feedback=feedback,
            config_store=config_store,
            global_config=global_config,
            tool_version=tool_version,
        )


def create_context(*, kube_context: str | None = None) -> OrbitContext:
    """Create production context with real implementations.

    Called at CLI entry point to create the context for the entire command
    execution. Cluster credentials are loaded lazily on first use, so commands
    that fail validation never touch the kubeconfig.

    Args:
        kube_context: Name of the kubeconfig context to use instead of the current one
    """
    config_store = FilesystemConfigStore()
    global_config = config_store.load()

    return OrbitContext(
        cluster=RealClusterApi(kube_context=kube_context),
        releases=RealReleaseResolver(),
        time=RealTime(),
        feedback=InteractiveFeedback(),
        config_store=config_store,
        global_config=global_config,
        tool_version=__version__,
    )
