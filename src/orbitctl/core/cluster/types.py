"""Typed views of the OLM resources orbitctl reads and writes.

Only the fields the installers act on are modelled. Everything else stays in
the raw resource dictionaries returned by ClusterApi.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from orbitctl.core.errors import ConfigurationError

OLM_GROUP = "operators.coreos.com"
OLM_VERSION = "v1alpha1"
OPERATOR_GROUP_VERSION = "v1"
OLM_API_VERSION = f"{OLM_GROUP}/{OLM_VERSION}"

INSTALL_PLAN_PENDING_CONDITION = "InstallPlanPending"
CSV_FAILED_PHASE = "Failed"
INSTALL_PLAN_COMPLETE_PHASE = "Complete"
INSTALL_PLAN_FAILED_PHASE = "Failed"
CATALOG_SOURCE_READY_STATE = "READY"


class ApprovalStrategy(Enum):
    """Install plan approval mode of a subscription (OLM wire values)."""

    AUTOMATIC = "Automatic"
    MANUAL = "Manual"


class SubscriptionState(Enum):
    """Subscription status state as reported by OLM."""

    AT_LATEST_KNOWN = "AtLatestKnown"
    UPGRADE_PENDING = "UpgradePending"
    UPGRADE_AVAILABLE = "UpgradeAvailable"
    OTHER = "Other"

    @staticmethod
    def parse(value: str | None) -> "SubscriptionState":
        for state in SubscriptionState:
            if state.value == value:
                return state
        return SubscriptionState.OTHER


@dataclass(frozen=True)
class CatalogSourceRef:
    """Where package metadata is published."""

    name: str
    namespace: str


@dataclass(frozen=True)
class SubscriptionSpec:
    """Desired state submitted when creating a subscription.

    A pinned starting version with automatic approval is contradictory: OLM
    would immediately move past the pin.
    """

    name: str
    package_name: str
    namespace: str
    source: CatalogSourceRef
    channel: str
    approval_strategy: ApprovalStrategy
    starting_version: str | None = None

    def __post_init__(self) -> None:
        if self.starting_version and self.approval_strategy is ApprovalStrategy.AUTOMATIC:
            raise ConfigurationError(
                f"Subscription '{self.name}' pins starting version '{self.starting_version}' "
                "and cannot use automatic install plan approval"
            )

    def to_manifest(self) -> dict[str, Any]:
        spec: dict[str, Any] = {
            "channel": self.channel,
            "installPlanApproval": self.approval_strategy.value,
            "name": self.package_name,
            "source": self.source.name,
            "sourceNamespace": self.source.namespace,
        }
        if self.starting_version:
            spec["startingCSV"] = self.starting_version
        return {
            "apiVersion": OLM_API_VERSION,
            "kind": "Subscription",
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": spec,
        }


@dataclass(frozen=True)
class SubscriptionStatus:
    """Read view of a subscription's status block."""

    state: SubscriptionState
    installed_version: str | None
    current_version: str | None
    install_plan_name: str | None
    install_plan_pending: bool

    @staticmethod
    def from_resource(subscription: dict[str, Any]) -> "SubscriptionStatus":
        status = subscription.get("status") or {}
        install_plan = status.get("installplan") or status.get("installPlanRef") or {}
        conditions = status.get("conditions") or []
        pending = any(
            condition.get("type") == INSTALL_PLAN_PENDING_CONDITION
            and condition.get("status") == "True"
            for condition in conditions
        )
        return SubscriptionStatus(
            state=SubscriptionState.parse(status.get("state")),
            installed_version=status.get("installedCSV"),
            current_version=status.get("currentCSV"),
            install_plan_name=install_plan.get("name"),
            install_plan_pending=pending,
        )


@dataclass(frozen=True)
class InstalledVersion:
    """Read view of a ClusterServiceVersion."""

    name: str
    phase: str | None
    message: str | None
    reason: str | None

    @property
    def failed(self) -> bool:
        return self.phase == CSV_FAILED_PHASE

    @staticmethod
    def from_resource(csv: dict[str, Any]) -> "InstalledVersion":
        status = csv.get("status") or {}
        return InstalledVersion(
            name=csv["metadata"]["name"],
            phase=status.get("phase"),
            message=status.get("message"),
            reason=status.get("reason"),
        )


def version_from_csv_name(csv_name: str) -> str:
    """Extract "7.22.1" from "orbit-operator.v7.22.1"."""
    _, separator, version = csv_name.partition(".v")
    return version if separator else csv_name


def resource_name(resource: dict[str, Any]) -> str:
    return resource["metadata"]["name"]
