import pytest

from orbitctl.core.errors import WaitTimeoutError
from orbitctl.core.polling import poll_until
from tests.fakes.time import FakeTime


def test_returns_first_value_and_sleeps_between_attempts() -> None:
    time = FakeTime()
    answers = iter([None, None, "ready"])

    result = poll_until(time, lambda: next(answers), condition="x", timeout=10, interval=2)

    assert result == "ready"
    assert time.sleep_calls == [2, 2]


def test_no_sleep_when_condition_already_holds() -> None:
    time = FakeTime()

    assert poll_until(time, lambda: 1, condition="x", timeout=10, interval=2) == 1
    assert time.sleep_calls == []


def test_gives_up_after_timeout() -> None:
    time = FakeTime()
    calls: list[int] = []

    def probe() -> None:
        calls.append(1)
        return None

    with pytest.raises(WaitTimeoutError, match="waiting for operator deployment"):
        poll_until(time, probe, condition="operator deployment", timeout=5, interval=1)

    assert len(calls) == 5
    assert time.sleep_calls == [1, 1, 1, 1]


def test_interval_longer_than_timeout_still_probes_once() -> None:
    calls: list[int] = []

    def probe() -> None:
        calls.append(1)
        return None

    with pytest.raises(WaitTimeoutError):
        poll_until(FakeTime(), probe, condition="x", timeout=1, interval=5)
    assert calls == [1]
