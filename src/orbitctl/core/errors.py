"""Error taxonomy for orbitctl operations.

Every failure that halts a pipeline is a PlatformError subclass. The CLI
error boundary turns them into a red "Error:" line and exit status 1, except
UserCancelledError which is a clean abort with exit status 0.
"""


class PlatformError(Exception):
    """Base class for all errors reported to the user."""


class ConfigurationError(PlatformError):
    """Contradictory or unsupported flag combination.

    Raised before any cluster mutation takes place.
    """


class ClusterApiError(PlatformError):
    """Transport or authorization failure talking to the cluster."""

    def __init__(self, operation: str, cause: str) -> None:
        super().__init__(f"Failed to {operation}: {cause}")
        self.operation = operation
        self.cause = cause


class ResolutionError(PlatformError):
    """Release Resolver unreachable or returned no match."""


class WaitTimeoutError(PlatformError):
    """A bounded poll did not observe the awaited condition in time."""

    def __init__(self, condition: str, timeout: float) -> None:
        super().__init__(
            f"Timed out after {timeout:g}s waiting for {condition}. "
            "Re-run the command to resume from the current cluster state."
        )
        self.condition = condition
        self.timeout = timeout


class InstallationFailedError(PlatformError):
    """The install plan or the installed-version resource reports phase Failed."""

    def __init__(
        self,
        resource: str,
        namespace: str,
        message: str,
        reason: str,
        kind: str = "Cluster service version",
    ) -> None:
        super().__init__(
            f"{kind} '{resource}' in namespace '{namespace}' failed. "
            f"Cause: {message}. Reason: {reason}."
        )
        self.resource = resource
        self.namespace = namespace
        self.message = message
        self.reason = reason


class ToolTooOldError(PlatformError):
    """The running orbitctl is older than the release it was asked to install."""


class DowngradeRejectedError(PlatformError):
    """Downgrading the operator is never supported."""


class UpdateConflictError(PlatformError):
    """Another update of the same subscription is already in flight."""


class UserCancelledError(PlatformError):
    """The user declined a confirmation prompt."""


class InstallPlanNotFoundError(PlatformError):
    """A subscription offers no install plan to approve."""


class NotDeployedError(PlatformError):
    """Orbit (or the piece of it a command needs) is not deployed where expected."""
