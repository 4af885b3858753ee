"""Tests for stage ordering, predicates, halting and write checks."""

import pytest

from orbitctl.core.errors import ConfigurationError
from orbitctl.core.pipeline import (
    InstallationContext,
    Pipeline,
    Stage,
    StageOutcome,
)
from tests.builders import make_config
from tests.fakes.user_feedback import FakeUserFeedback


def _ctx() -> InstallationContext:
    return InstallationContext(config=make_config())


def test_reading_a_field_nobody_wrote_fails_at_construction() -> None:
    with pytest.raises(ValueError, match="reads \\['operator_namespace'\\]"):
        Pipeline([Stage(title="Use", run=lambda ctx: None, reads=("operator_namespace",))])


def test_reading_a_field_written_later_fails_at_construction() -> None:
    def write(ctx: InstallationContext) -> None:
        ctx.operator_namespace = "orbit"

    with pytest.raises(ValueError):
        Pipeline(
            [
                Stage(title="Use", run=lambda ctx: None, reads=("operator_namespace",)),
                Stage(title="Write", run=write, writes=("operator_namespace",)),
            ]
        )


def test_unknown_fields_and_config_writes_are_rejected() -> None:
    with pytest.raises(ValueError, match="unknown context fields"):
        Pipeline([Stage(title="Bad", run=lambda ctx: None, writes=("nope",))])
    with pytest.raises(ValueError, match="immutable"):
        Pipeline([Stage(title="Bad", run=lambda ctx: None, writes=("config",))])


def test_stages_run_in_order_and_report_progress() -> None:
    feedback = FakeUserFeedback()
    order: list[str] = []

    def first(ctx: InstallationContext) -> StageOutcome:
        order.append("first")
        ctx.operator_namespace = "orbit"
        return StageOutcome.ok()

    def second(ctx: InstallationContext) -> StageOutcome:
        order.append(f"second:{ctx.operator_namespace}")
        return StageOutcome.exists()

    result = Pipeline(
        [
            Stage(title="First", run=first, writes=("operator_namespace",)),
            Stage(title="Second", run=second, reads=("operator_namespace",)),
        ]
    ).run(_ctx(), feedback)

    assert order == ["first", "second:orbit"]
    assert result.completed == ["First", "Second"]
    assert feedback.infos == ["First...[OK]", "Second...[Exists]"]


def test_predicate_skips_stage() -> None:
    feedback = FakeUserFeedback()

    result = Pipeline(
        [
            Stage(title="Skipped", run=lambda ctx: None, when=lambda ctx: False),
            Stage(title="Ran", run=lambda ctx: StageOutcome.ok("details")),
        ]
    ).run(_ctx(), feedback)

    assert result.skipped == ["Skipped"]
    assert feedback.infos == ["Ran...[OK: details]"]


def test_halt_stops_the_pipeline_without_error() -> None:
    feedback = FakeUserFeedback()
    ran: list[str] = []

    result = Pipeline(
        [
            Stage(title="Stop here", run=lambda ctx: StageOutcome.halt("Already installed.")),
            Stage(title="Never", run=lambda ctx: ran.append("never")),
        ]
    ).run(_ctx(), feedback)

    assert result.halted
    assert result.halt_message == "Already installed."
    assert result.skipped == ["Never"]
    assert ran == []


def test_undeclared_write_is_a_bug() -> None:
    def sneaky(ctx: InstallationContext) -> None:
        ctx.subscription_name = "sneaky"

    with pytest.raises(RuntimeError, match="undeclared context fields"):
        Pipeline([Stage(title="Sneaky", run=sneaky)]).run(_ctx(), FakeUserFeedback())


def test_stage_errors_propagate_and_stop_the_run() -> None:
    ran: list[str] = []

    def fail(ctx: InstallationContext) -> None:
        raise ConfigurationError("broken")

    with pytest.raises(ConfigurationError):
        Pipeline(
            [
                Stage(title="Fail", run=fail),
                Stage(title="After", run=lambda ctx: ran.append("after")),
            ]
        ).run(_ctx(), FakeUserFeedback())
    assert ran == []
