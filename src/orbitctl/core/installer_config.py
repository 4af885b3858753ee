"""Single upfront parse-and-validate step for installer options.

Commands collect raw flags into InstallerFlags, then build_installer_config()
turns them into an immutable InstallerConfig or raises ConfigurationError.
Contradictory combinations are rejected here, before any cluster mutation.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from orbitctl.core.channels import Channel
from orbitctl.core.cluster.abc import ClusterApi
from orbitctl.core.constants import (
    ALL_NAMESPACES_OPERATOR_NAMESPACE,
    DEFAULT_OLM_INSTALL_TIMEOUT,
    DEFAULT_OLM_UPDATE_TIMEOUT,
    DEFAULT_POD_READY_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    OLM_SUGGESTED_NAMESPACE,
)
from orbitctl.core.errors import ConfigurationError
from orbitctl.core.platforms import Installer, Platform
from orbitctl.core.subscription import find_orbit_subscription
from orbitctl.core.versions import remove_v_prefix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallerFlags:
    """Installer options exactly as the user gave them (None means unset)."""

    namespace: str | None = None
    installer: str | None = None
    platform: str | None = None
    version: str | None = None
    olm_channel: str | None = None
    package_manifest_name: str | None = None
    catalog_source_name: str | None = None
    catalog_source_yaml: Path | None = None
    catalog_source_namespace: str | None = None
    starting_csv: str | None = None
    auto_update: bool | None = None
    operator_image: str | None = None
    cr_yaml: Path | None = None
    cr_patch_yaml: Path | None = None
    cluster_monitoring: bool = False
    olm_suggested_namespace: bool = False
    assume_yes: bool = False
    batch: bool = False
    olm_install_timeout: float = DEFAULT_OLM_INSTALL_TIMEOUT
    olm_update_timeout: float = DEFAULT_OLM_UPDATE_TIMEOUT
    pod_ready_timeout: float = DEFAULT_POD_READY_TIMEOUT
    skip_version_check: bool = False
    skip_cluster_availability_check: bool = False
    delete_namespace: bool = False


@dataclass(frozen=True)
class InstallerConfig:
    """Validated installer configuration.

    Immutable input of every pipeline run. Files named by flags are already
    loaded: catalog_source_manifest, orbit_cluster and orbit_cluster_patch hold
    their parsed YAML.
    """

    namespace: str
    installer: Installer
    platform: Platform
    version: str | None
    channel: Channel | None
    package_manifest_name: str | None
    catalog_source_name: str | None
    catalog_source_manifest: dict[str, Any] | None
    catalog_source_namespace: str | None
    starting_csv: str | None
    auto_update: bool | None
    operator_image: str | None
    orbit_cluster: dict[str, Any] | None
    orbit_cluster_patch: dict[str, Any] | None
    cluster_monitoring: bool
    assume_yes: bool
    batch: bool
    olm_install_timeout: float
    olm_update_timeout: float
    pod_ready_timeout: float
    poll_interval: float
    skip_version_check: bool
    skip_cluster_availability_check: bool
    delete_namespace: bool

    @property
    def needs_confirmation(self) -> bool:
        """Whether irreversible steps must ask the user first."""
        return not (self.batch or self.assume_yes)


_OLM_ONLY_FLAGS = (
    ("starting_csv", "--starting-csv"),
    ("catalog_source_yaml", "--catalog-source-yaml"),
    ("olm_channel", "--olm-channel"),
    ("package_manifest_name", "--package-manifest-name"),
    ("catalog_source_name", "--catalog-source-name"),
    ("catalog_source_namespace", "--catalog-source-namespace"),
    ("auto_update", "--auto-update"),
)


def build_installer_config(
    flags: InstallerFlags,
    *,
    installer: Installer,
    platform: Platform,
    default_namespace: str,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> InstallerConfig:
    """Validate flags and produce the installer configuration.

    Args:
        flags: Raw user options
        installer: Installer chosen by the user or detected from the cluster
        platform: Platform chosen by the user or detected from the cluster
        default_namespace: Namespace used when --namespace is not given
        poll_interval: Seconds between cluster polls

    Raises:
        ConfigurationError: On contradictory or unsupported combinations,
            unknown channels, or unreadable YAML files
    """
    if installer is Installer.OLM:
        if flags.catalog_source_name and flags.catalog_source_yaml:
            raise ConfigurationError(
                "Only one of --catalog-source-name or --catalog-source-yaml may be given"
            )
        if flags.catalog_source_yaml and not flags.package_manifest_name:
            raise ConfigurationError(
                "--package-manifest-name is required when --catalog-source-yaml is used"
            )
        if flags.catalog_source_yaml and not flags.olm_channel:
            raise ConfigurationError("--olm-channel is required when --catalog-source-yaml is used")
    else:
        for attribute, flag_name in _OLM_ONLY_FLAGS:
            if getattr(flags, attribute) is not None:
                raise ConfigurationError(
                    f"{flag_name} can only be used with the '{Installer.OLM.value}' installer"
                )

    if flags.cluster_monitoring and platform is not Platform.OPENSHIFT:
        raise ConfigurationError(
            f"--cluster-monitoring can only be used on the '{Platform.OPENSHIFT.value}' platform"
        )

    for name, timeout in (
        ("--olm-install-timeout", flags.olm_install_timeout),
        ("--olm-update-timeout", flags.olm_update_timeout),
        ("--pod-ready-timeout", flags.pod_ready_timeout),
    ):
        if timeout <= 0:
            raise ConfigurationError(f"{name} must be a positive number of seconds")
    if poll_interval <= 0:
        raise ConfigurationError("Poll interval must be a positive number of seconds")

    channel = Channel.parse(flags.olm_channel) if flags.olm_channel is not None else None

    namespace = flags.namespace or default_namespace
    if installer is Installer.OLM and flags.olm_suggested_namespace:
        logger.debug("Using OLM suggested namespace %s", OLM_SUGGESTED_NAMESPACE)
        namespace = OLM_SUGGESTED_NAMESPACE

    version = None
    if flags.version is not None:
        version = remove_v_prefix(flags.version.strip(), check_for_number=True)
        if not version:
            raise ConfigurationError("--version must not be empty")

    return InstallerConfig(
        namespace=namespace,
        installer=installer,
        platform=platform,
        version=version,
        channel=channel,
        package_manifest_name=flags.package_manifest_name,
        catalog_source_name=flags.catalog_source_name,
        catalog_source_manifest=_load_yaml(flags.catalog_source_yaml, "--catalog-source-yaml"),
        catalog_source_namespace=flags.catalog_source_namespace,
        starting_csv=flags.starting_csv,
        auto_update=flags.auto_update,
        operator_image=flags.operator_image,
        orbit_cluster=_load_yaml(flags.cr_yaml, "--cr-yaml"),
        orbit_cluster_patch=_load_yaml(flags.cr_patch_yaml, "--cr-patch-yaml"),
        cluster_monitoring=flags.cluster_monitoring,
        assume_yes=flags.assume_yes,
        batch=flags.batch,
        olm_install_timeout=flags.olm_install_timeout,
        olm_update_timeout=flags.olm_update_timeout,
        pod_ready_timeout=flags.pod_ready_timeout,
        poll_interval=poll_interval,
        skip_version_check=flags.skip_version_check,
        skip_cluster_availability_check=flags.skip_cluster_availability_check,
        delete_namespace=flags.delete_namespace,
    )


def _load_yaml(path: Path | None, flag_name: str) -> dict[str, Any] | None:
    if path is None:
        return None
    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read {flag_name} file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {flag_name} file {path}: {e}") from e
    if not isinstance(content, dict):
        raise ConfigurationError(f"{flag_name} file {path} must contain a single YAML mapping")
    return content


def parse_platform(value: str | None) -> Platform | None:
    if value is None:
        return None
    for platform in Platform:
        if platform.value == value:
            return platform
    raise ConfigurationError(f"Unknown platform '{value}'")


def parse_installer(value: str | None) -> Installer | None:
    if value is None:
        return None
    for installer in Installer:
        if installer.value == value:
            return installer
    raise ConfigurationError(f"Unknown installer '{value}'")


def resolve_platform(
    requested: str | None, configured: str | None, cluster: ClusterApi
) -> Platform:
    """Platform from the flag, then the config file, then cluster detection."""
    platform = parse_platform(requested) or parse_platform(configured)
    if platform is not None:
        return platform
    return Platform.OPENSHIFT if cluster.is_openshift() else Platform.KUBERNETES


def default_deploy_installer(
    cluster: ClusterApi, flags: InstallerFlags, platform: Platform
) -> Installer:
    """Installer used for a new deployment when --installer is not given.

    OLM is chosen when it is available and either a custom catalog source was
    requested or the cluster is OpenShift.
    """
    if not cluster.is_olm_preinstalled():
        return Installer.OPERATOR
    if flags.catalog_source_name or flags.catalog_source_yaml:
        return Installer.OLM
    if platform is Platform.OPENSHIFT:
        return Installer.OLM
    return Installer.OPERATOR


def default_existing_installer(cluster: ClusterApi, namespace: str) -> Installer:
    """Installer of an existing deployment: OLM when an orbit subscription exists."""
    if not cluster.is_olm_preinstalled():
        return Installer.OPERATOR
    subscription = find_orbit_subscription(
        cluster, [namespace, ALL_NAMESPACES_OPERATOR_NAMESPACE]
    )
    return Installer.OLM if subscription is not None else Installer.OPERATOR


def find_working_namespace(cluster: ClusterApi, requested: str | None, default: str) -> str:
    """Namespace holding an existing deployment.

    An explicit namespace always wins. Otherwise the default namespace is used
    when it holds an OrbitCluster, or the namespace of the only OrbitCluster
    on the cluster.
    """
    if requested:
        return requested
    if cluster.list_orbit_clusters(default):
        return default
    clusters = cluster.list_orbit_clusters(None)
    if len(clusters) == 1:
        found = clusters[0]["metadata"]["namespace"]
        logger.debug("Found the only OrbitCluster in namespace %s", found)
        return found
    return default
