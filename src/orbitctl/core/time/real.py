"""Real time implementation using actual time.sleep()."""

import time
from datetime import UTC, datetime

from orbitctl.core.time.abc import Time


class RealTime(Time):
    """Production implementation using the system clock."""

    def sleep(self, seconds: float) -> None:
        """Sleep for specified number of seconds using time.sleep()."""
        time.sleep(seconds)

    def now(self) -> datetime:
        return datetime.now(UTC)
