"""Bounded polling against the cluster."""

import logging
from collections.abc import Callable
from typing import TypeVar

from orbitctl.core.errors import WaitTimeoutError
from orbitctl.core.time.abc import Time

logger = logging.getLogger(__name__)

T = TypeVar("T")


def poll_until(
    time: Time,
    probe: Callable[[], T | None],
    *,
    condition: str,
    timeout: float,
    interval: float,
) -> T:
    """Call probe every interval seconds until it returns a value.

    The probe re-reads cluster state on every call; None means "not yet".

    Args:
        time: Time abstraction used for sleeping
        probe: Returns the awaited value, or None while the condition does not hold
        condition: Description of what is awaited, used in the timeout message
        timeout: Seconds to wait in total
        interval: Seconds between attempts

    Returns:
        First non-None value returned by probe

    Raises:
        WaitTimeoutError: If the attempts are exhausted
    """
    max_attempts = max(1, int(timeout // interval))
    for attempt in range(max_attempts):
        result = probe()
        if result is not None:
            logger.debug("%s observed after %d attempt(s)", condition, attempt + 1)
            return result
        if attempt < max_attempts - 1:
            time.sleep(interval)

    raise WaitTimeoutError(condition, timeout)
