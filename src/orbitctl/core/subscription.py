"""Drive an OLM subscription to an installed operator version.

One SubscriptionReconciler instance follows a single install or update
invocation through these states:

    NOT_FOUND -> CREATED -> AWAITING_INSTALL_PLAN -> [AWAITING_APPROVAL]
        -> INSTALL_PLAN_RUNNING -> INSTALLED -> VERIFIED

FAILED is entered from any non-terminal state when a step raises. Every step
re-reads the subscription from the cluster; nothing is cached between steps
except the names needed to find the objects again.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from orbitctl.core.cluster.abc import ClusterApi, Resource
from orbitctl.core.cluster.types import (
    INSTALL_PLAN_COMPLETE_PHASE,
    INSTALL_PLAN_FAILED_PHASE,
    ApprovalStrategy,
    InstalledVersion,
    SubscriptionSpec,
    SubscriptionState,
    SubscriptionStatus,
    resource_name,
    version_from_csv_name,
)
from orbitctl.core.constants import NEXT_PACKAGE_NAME_PREFIX, STABLE_PACKAGE_NAME
from orbitctl.core.errors import (
    InstallationFailedError,
    InstallPlanNotFoundError,
    PlatformError,
    UpdateConflictError,
)
from orbitctl.core.polling import poll_until
from orbitctl.core.time.abc import Time

logger = logging.getLogger(__name__)


class ReconcilerState(Enum):
    NOT_FOUND = "not-found"
    CREATED = "created"
    AWAITING_INSTALL_PLAN = "awaiting-install-plan"
    AWAITING_APPROVAL = "awaiting-approval"
    INSTALL_PLAN_RUNNING = "install-plan-running"
    INSTALLED = "installed"
    VERIFIED = "verified"
    FAILED = "failed"


_TRANSITIONS: dict[ReconcilerState, frozenset[ReconcilerState]] = {
    ReconcilerState.NOT_FOUND: frozenset({ReconcilerState.CREATED}),
    ReconcilerState.CREATED: frozenset({ReconcilerState.AWAITING_INSTALL_PLAN}),
    ReconcilerState.AWAITING_INSTALL_PLAN: frozenset(
        {ReconcilerState.AWAITING_APPROVAL, ReconcilerState.INSTALL_PLAN_RUNNING}
    ),
    ReconcilerState.AWAITING_APPROVAL: frozenset({ReconcilerState.INSTALL_PLAN_RUNNING}),
    ReconcilerState.INSTALL_PLAN_RUNNING: frozenset({ReconcilerState.INSTALLED}),
    ReconcilerState.INSTALLED: frozenset({ReconcilerState.VERIFIED}),
    ReconcilerState.VERIFIED: frozenset(),
    ReconcilerState.FAILED: frozenset(),
}

_TERMINAL_STATES = frozenset({ReconcilerState.VERIFIED, ReconcilerState.FAILED})


class UpdateStatus(Enum):
    """What an existing subscription says about a pending update."""

    UP_TO_DATE = "up-to-date"
    PENDING = "pending"


@dataclass(frozen=True)
class UpdateInspection:
    """Result of inspecting an existing subscription for an update.

    Versions are taken from the installed and current cluster service version
    names, e.g. "7.22.1" from "orbit-operator.v7.22.1".
    """

    status: UpdateStatus
    installed_version: str | None
    target_version: str | None
    install_plan_name: str | None


def is_orbit_subscription(subscription: Resource) -> bool:
    package = (subscription.get("spec") or {}).get("name", "")
    return package == STABLE_PACKAGE_NAME or package.startswith(f"{NEXT_PACKAGE_NAME_PREFIX}-")


def find_orbit_subscription(cluster: ClusterApi, namespaces: list[str]) -> Resource | None:
    """Find the subscription to the orbit package in the first namespace that has one."""
    for namespace in namespaces:
        for subscription in cluster.list_subscriptions(namespace):
            if is_orbit_subscription(subscription):
                return subscription
    return None


class SubscriptionReconciler:
    """State machine for one subscription install or update.

    Attributes are read by pipeline stages after each step: subscription_name
    once the subscription is created or found, install_plan_name once an
    install plan was observed, installed_version once the operator is
    installed.
    """

    def __init__(
        self,
        cluster: ClusterApi,
        time: Time,
        *,
        namespace: str,
        poll_interval: float,
    ) -> None:
        self._cluster = cluster
        self._time = time
        self._namespace = namespace
        self._poll_interval = poll_interval
        self._state = ReconcilerState.NOT_FOUND
        self._history: list[ReconcilerState] = [ReconcilerState.NOT_FOUND]
        self._approval_strategy: ApprovalStrategy | None = None
        self.subscription_name: str | None = None
        self.install_plan_name: str | None = None
        self.installed_version: InstalledVersion | None = None

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def history(self) -> list[ReconcilerState]:
        """Every state visited, in order."""
        return list(self._history)

    def _transition(self, target: ReconcilerState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Illegal subscription reconciler transition: "
                f"{self._state.value} -> {target.value}"
            )
        logger.debug("Subscription reconciler: %s -> %s", self._state.value, target.value)
        self._state = target
        self._history.append(target)

    def _fail(self) -> None:
        if self._state not in _TERMINAL_STATES:
            logger.debug("Subscription reconciler: %s -> failed", self._state.value)
            self._state = ReconcilerState.FAILED
            self._history.append(ReconcilerState.FAILED)

    def _require(self, *states: ReconcilerState) -> None:
        if self._state not in states:
            expected = " or ".join(state.value for state in states)
            raise RuntimeError(
                f"Subscription reconciler is {self._state.value}, expected {expected}"
            )

    def _read_subscription(self) -> Resource:
        assert self.subscription_name is not None
        subscription = self._cluster.get_subscription(self._namespace, self.subscription_name)
        if subscription is None:
            raise InstallPlanNotFoundError(
                f"Subscription '{self.subscription_name}' disappeared from namespace "
                f"'{self._namespace}'"
            )
        return subscription

    # Install path

    def ensure_subscription(self, spec: SubscriptionSpec) -> bool:
        """Create the subscription unless one for orbit already exists.

        An existing subscription is reused as-is, never overwritten; its name
        is what the following steps use.

        Returns:
            True if a subscription was created, False if an existing one was reused
        """
        self._require(ReconcilerState.NOT_FOUND)
        try:
            existing = find_orbit_subscription(self._cluster, [self._namespace])
            if existing is not None:
                self.subscription_name = resource_name(existing)
                self._approval_strategy = _approval_of(existing)
                logger.debug("Reusing subscription %s", self.subscription_name)
                self._transition(ReconcilerState.CREATED)
                return False

            self._cluster.create_subscription(spec.to_manifest())
        except PlatformError:
            self._fail()
            raise
        self.subscription_name = spec.name
        self._approval_strategy = spec.approval_strategy
        self._transition(ReconcilerState.CREATED)
        return True

    def wait_for_install_plan(self, timeout: float) -> str:
        """Wait until the subscription references an install plan.

        Returns:
            Name of the install plan
        """
        self._require(ReconcilerState.CREATED)
        self._transition(ReconcilerState.AWAITING_INSTALL_PLAN)

        def probe() -> str | None:
            status = SubscriptionStatus.from_resource(self._read_subscription())
            return status.install_plan_name

        try:
            self.install_plan_name = poll_until(
                self._time,
                probe,
                condition=(
                    f"an install plan for subscription '{self.subscription_name}' "
                    f"in namespace '{self._namespace}'"
                ),
                timeout=timeout,
                interval=self._poll_interval,
            )
        except PlatformError:
            self._fail()
            raise

        if self._approval_strategy is ApprovalStrategy.MANUAL:
            self._transition(ReconcilerState.AWAITING_APPROVAL)
        else:
            self._transition(ReconcilerState.INSTALL_PLAN_RUNNING)
        return self.install_plan_name

    @property
    def approval_strategy(self) -> ApprovalStrategy | None:
        """Approval mode of the subscription being followed, once known."""
        return self._approval_strategy

    @property
    def needs_approval(self) -> bool:
        return self._state is ReconcilerState.AWAITING_APPROVAL

    def approve_install_plan(self) -> None:
        self._require(ReconcilerState.AWAITING_APPROVAL)
        assert self.install_plan_name is not None
        try:
            self._cluster.approve_install_plan(self._namespace, self.install_plan_name)
        except PlatformError:
            self._fail()
            raise
        self._transition(ReconcilerState.INSTALL_PLAN_RUNNING)

    def wait_for_install_plan_completion(self, timeout: float) -> None:
        """Wait for the install plan to reach phase Complete.

        Raises:
            InstallationFailedError: As soon as the install plan reports phase
                Failed, with the message and reason of its failed condition
        """
        self._require(ReconcilerState.INSTALL_PLAN_RUNNING)
        assert self.install_plan_name is not None
        plan_name = self.install_plan_name

        def probe() -> bool | None:
            plan = self._cluster.get_install_plan(self._namespace, plan_name)
            if plan is None:
                return None
            status = plan.get("status") or {}
            phase = status.get("phase")
            if phase == INSTALL_PLAN_FAILED_PHASE:
                message, reason = _failed_condition(status.get("conditions") or [])
                raise InstallationFailedError(
                    plan_name, self._namespace, message, reason, kind="Install plan"
                )
            return True if phase == INSTALL_PLAN_COMPLETE_PHASE else None

        try:
            poll_until(
                self._time,
                probe,
                condition=(
                    f"install plan '{plan_name}' in namespace '{self._namespace}' to complete"
                ),
                timeout=timeout,
                interval=self._poll_interval,
            )
        except PlatformError:
            self._fail()
            raise

    def wait_for_installed_version(self, timeout: float) -> InstalledVersion:
        """Wait for the installed cluster service version and check its phase.

        Raises:
            InstallationFailedError: If the cluster service version reports phase
                Failed. Its message and reason are reported verbatim.
        """
        self._require(ReconcilerState.INSTALL_PLAN_RUNNING)

        def probe() -> InstalledVersion | None:
            status = SubscriptionStatus.from_resource(self._read_subscription())
            if status.installed_version is None:
                return None
            csv = self._cluster.get_cluster_service_version(
                self._namespace, status.installed_version
            )
            if csv is None:
                return None
            return InstalledVersion.from_resource(csv)

        try:
            installed = poll_until(
                self._time,
                probe,
                condition=(
                    f"the installed cluster service version of subscription "
                    f"'{self.subscription_name}' in namespace '{self._namespace}'"
                ),
                timeout=timeout,
                interval=self._poll_interval,
            )
            if installed.failed:
                raise InstallationFailedError(
                    installed.name,
                    self._namespace,
                    installed.message or "unknown",
                    installed.reason or "unknown",
                )
        except PlatformError:
            self._fail()
            raise

        self.installed_version = installed
        self._transition(ReconcilerState.INSTALLED)
        return installed

    def verify_installed_version(self) -> InstalledVersion:
        """Read the installed cluster service version back as the final gate."""
        self._require(ReconcilerState.INSTALLED)
        assert self.installed_version is not None
        name = self.installed_version.name
        try:
            csv = self._cluster.get_cluster_service_version(self._namespace, name)
            if csv is None:
                raise InstallationFailedError(
                    name, self._namespace, "resource not found", "NotFound"
                )
            verified = InstalledVersion.from_resource(csv)
            if verified.failed:
                raise InstallationFailedError(
                    name,
                    self._namespace,
                    verified.message or "unknown",
                    verified.reason or "unknown",
                )
        except PlatformError:
            self._fail()
            raise

        self.installed_version = verified
        self._transition(ReconcilerState.VERIFIED)
        return verified

    # Update path

    def track_existing(self, subscription: Resource) -> None:
        """Start from a subscription found on the cluster."""
        self._require(ReconcilerState.NOT_FOUND)
        self.subscription_name = resource_name(subscription)
        self._approval_strategy = _approval_of(subscription)
        self._transition(ReconcilerState.CREATED)

    def inspect_update(self) -> UpdateInspection:
        """Classify the pending update announced by the subscription status.

        Raises:
            UpdateConflictError: If another update is already in flight
            InstallPlanNotFoundError: If there is no install plan to approve
        """
        self._require(ReconcilerState.CREATED)
        try:
            status = SubscriptionStatus.from_resource(self._read_subscription())
            installed = (
                version_from_csv_name(status.installed_version)
                if status.installed_version
                else None
            )
            target = (
                version_from_csv_name(status.current_version) if status.current_version else None
            )

            if status.state is SubscriptionState.AT_LATEST_KNOWN:
                return UpdateInspection(UpdateStatus.UP_TO_DATE, installed, target, None)

            if (
                status.state is SubscriptionState.UPGRADE_PENDING
                and status.install_plan_pending
                and status.install_plan_name
            ):
                self.install_plan_name = status.install_plan_name
                self._transition(ReconcilerState.AWAITING_INSTALL_PLAN)
                self._transition(ReconcilerState.AWAITING_APPROVAL)
                return UpdateInspection(
                    UpdateStatus.PENDING, installed, target, status.install_plan_name
                )

            if (
                status.state is SubscriptionState.UPGRADE_AVAILABLE
                and status.installed_version == status.current_version
            ):
                raise UpdateConflictError(
                    f"Another update of subscription '{self.subscription_name}' in namespace "
                    f"'{self._namespace}' is in progress"
                )

            raise InstallPlanNotFoundError(
                f"Unable to find installation plan to update for subscription "
                f"'{self.subscription_name}' in namespace '{self._namespace}'."
            )
        except PlatformError:
            self._fail()
            raise


def _approval_of(subscription: Resource) -> ApprovalStrategy:
    value = (subscription.get("spec") or {}).get("installPlanApproval")
    if value == ApprovalStrategy.MANUAL.value:
        return ApprovalStrategy.MANUAL
    return ApprovalStrategy.AUTOMATIC


def _failed_condition(conditions: list[dict]) -> tuple[str, str]:
    """Message and reason of the condition that explains a failed install plan."""
    for condition in conditions:
        if condition.get("status") == "False":
            return condition.get("message") or "unknown", condition.get("reason") or "unknown"
    return "unknown", "unknown"
