"""Channel, catalog source and approval selection for OLM installs.

Rules, first match wins:

- A version was requested: strip its "v"; an explicit starting version is used
  verbatim, otherwise stable channels derive one from their template. Approval
  is forced to Manual.
- Only a starting version was requested: approval is forced to Manual, since
  automatic approval would immediately move past the pin.
- Neither: approval is Automatic unless auto-update was explicitly turned off.

The catalog source is the user's custom source when one was named or loaded
from a manifest, the platform's default source for stable channels, or the
dedicated next catalog source otherwise.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from orbitctl.core.cluster.types import ApprovalStrategy, CatalogSourceRef
from orbitctl.core.constants import (
    ALL_NAMESPACES_OPERATOR_NAMESPACE,
    CUSTOM_CATALOG_SOURCE_NAME,
    KUBERNETES_CATALOG_SOURCE,
    KUBERNETES_CATALOG_SOURCE_NAMESPACE,
    NEXT_CATALOG_SOURCE_NAME,
    NEXT_PACKAGE_NAME_PREFIX,
    OPENSHIFT_CATALOG_SOURCE,
    OPENSHIFT_CATALOG_SOURCE_NAMESPACE,
    STABLE_ALL_NAMESPACES_STARTING_CSV_TEMPLATE,
    STABLE_PACKAGE_NAME,
    STABLE_STARTING_CSV_TEMPLATE,
)
from orbitctl.core.errors import ConfigurationError
from orbitctl.core.platforms import Platform
from orbitctl.core.versions import NEXT_TAG, is_prerelease_tool_version, remove_v_prefix

if TYPE_CHECKING:
    from orbitctl.core.installer_config import InstallerConfig


class Channel(Enum):
    """OLM channel of the orbit package."""

    STABLE = "stable"
    NEXT = "next"
    STABLE_ALL_NAMESPACES = "stable-all-namespaces"
    NEXT_ALL_NAMESPACES = "next-all-namespaces"

    @property
    def is_stable_family(self) -> bool:
        return self in (Channel.STABLE, Channel.STABLE_ALL_NAMESPACES)

    @property
    def is_all_namespaces(self) -> bool:
        return self in (Channel.STABLE_ALL_NAMESPACES, Channel.NEXT_ALL_NAMESPACES)

    @staticmethod
    def parse(value: str) -> "Channel":
        """Parse a channel name.

        Raises:
            ConfigurationError: If the name is not a known channel
        """
        for channel in Channel:
            if channel.value == value:
                return channel
        valid = ", ".join(channel.value for channel in Channel)
        raise ConfigurationError(f"Unknown OLM channel '{value}'. Valid channels: {valid}")


@dataclass(frozen=True)
class ChannelSelection:
    """Fully resolved subscription target.

    Fields:
        channel: Effective channel
        catalog_source: Source the subscription points at
        package_name: Package to subscribe to
        approval_strategy: Install plan approval mode
        starting_version: Cluster service version to start from, if pinned
        needs_next_catalog_source: The next catalog source must exist and be
            ready before subscribing
        custom_catalog_source: Manifest of a user-supplied catalog source to
            create, already renamed and placed in its namespace
    """

    channel: Channel
    catalog_source: CatalogSourceRef
    package_name: str
    approval_strategy: ApprovalStrategy
    starting_version: str | None
    needs_next_catalog_source: bool
    custom_catalog_source: dict[str, Any] | None


def operator_namespace_for(config: "InstallerConfig") -> str:
    """Namespace the operator (and its subscription) lives in."""
    if config.channel is not None and config.channel.is_all_namespaces:
        return ALL_NAMESPACES_OPERATOR_NAMESPACE
    return config.namespace


def is_deploying_stable(version: str | None, tool_version: str) -> bool:
    """Whether the requested (or implied) target is a stable release.

    Without an explicit version a stable orbitctl deploys stable releases and
    a pre-release orbitctl deploys next builds.
    """
    if version is not None:
        return NEXT_TAG not in version
    return not is_prerelease_tool_version(tool_version)


def select_channel(
    config: "InstallerConfig", *, operator_namespace: str, deploying_stable: bool
) -> ChannelSelection:
    """Resolve channel, catalog source, package and approval for a new subscription."""
    custom_source = config.catalog_source_name is not None or (
        config.catalog_source_manifest is not None
    )

    if config.channel is not None:
        channel = config.channel
    elif custom_source or deploying_stable:
        channel = Channel.STABLE
    else:
        channel = Channel.NEXT

    approval, starting_version = _select_approval(config, channel)

    if custom_source:
        source = CatalogSourceRef(
            name=config.catalog_source_name or CUSTOM_CATALOG_SOURCE_NAME,
            namespace=config.catalog_source_namespace or operator_namespace,
        )
        return ChannelSelection(
            channel=channel,
            catalog_source=source,
            package_name=config.package_manifest_name or STABLE_PACKAGE_NAME,
            approval_strategy=approval,
            starting_version=starting_version,
            needs_next_catalog_source=False,
            custom_catalog_source=_custom_catalog_source(config, source),
        )

    if channel.is_stable_family:
        return ChannelSelection(
            channel=channel,
            catalog_source=default_stable_catalog_source(config.platform),
            package_name=config.package_manifest_name or STABLE_PACKAGE_NAME,
            approval_strategy=approval,
            starting_version=starting_version,
            needs_next_catalog_source=False,
            custom_catalog_source=None,
        )

    return ChannelSelection(
        channel=channel,
        catalog_source=CatalogSourceRef(
            name=NEXT_CATALOG_SOURCE_NAME, namespace=operator_namespace
        ),
        package_name=config.package_manifest_name
        or f"{NEXT_PACKAGE_NAME_PREFIX}-{config.platform.value}",
        approval_strategy=approval,
        starting_version=starting_version,
        needs_next_catalog_source=True,
        custom_catalog_source=None,
    )


def _select_approval(
    config: "InstallerConfig", channel: Channel
) -> tuple[ApprovalStrategy, str | None]:
    if config.version is not None:
        version = remove_v_prefix(config.version, check_for_number=True)
        if config.starting_csv is not None:
            return ApprovalStrategy.MANUAL, config.starting_csv
        if channel is Channel.STABLE:
            return ApprovalStrategy.MANUAL, STABLE_STARTING_CSV_TEMPLATE.format(version=version)
        if channel is Channel.STABLE_ALL_NAMESPACES:
            return (
                ApprovalStrategy.MANUAL,
                STABLE_ALL_NAMESPACES_STARTING_CSV_TEMPLATE.format(version=version),
            )
        # Next channels only serve their latest build
        return ApprovalStrategy.MANUAL, None

    if config.starting_csv is not None:
        return ApprovalStrategy.MANUAL, config.starting_csv

    if config.auto_update is False:
        return ApprovalStrategy.MANUAL, None
    return ApprovalStrategy.AUTOMATIC, None


def default_stable_catalog_source(platform: Platform) -> CatalogSourceRef:
    if platform is Platform.OPENSHIFT:
        return CatalogSourceRef(
            name=OPENSHIFT_CATALOG_SOURCE, namespace=OPENSHIFT_CATALOG_SOURCE_NAMESPACE
        )
    return CatalogSourceRef(
        name=KUBERNETES_CATALOG_SOURCE, namespace=KUBERNETES_CATALOG_SOURCE_NAMESPACE
    )


def _custom_catalog_source(
    config: "InstallerConfig", source: CatalogSourceRef
) -> dict[str, Any] | None:
    if config.catalog_source_manifest is None:
        return None
    manifest = dict(config.catalog_source_manifest)
    metadata = dict(manifest.get("metadata") or {})
    metadata["name"] = source.name
    metadata["namespace"] = source.namespace
    manifest["metadata"] = metadata
    return manifest
