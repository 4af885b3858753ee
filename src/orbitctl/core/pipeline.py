"""Ordered, conditional stage lists run against an InstallationContext.

A pipeline is a flat list of stages run strictly in order. Each stage
declares the context fields it reads and writes:

- At construction, a stage may read only the immutable ``config`` input or
  fields written by an earlier stage
- At run time, a stage that changes a field it did not declare is a bug and
  stops the run

A stage's ``when`` predicate decides at run time whether it runs at all. A
stage may halt the pipeline with a message (for example "already installed");
halting is not an error, the remaining stages are simply skipped.
"""

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from orbitctl.core.channels import ChannelSelection
from orbitctl.core.cluster.types import ApprovalStrategy
from orbitctl.core.installer_config import InstallerConfig
from orbitctl.core.update_decision import OperatorImageRef, UpdateDecision
from orbitctl.core.user_feedback import UserFeedback

logger = logging.getLogger(__name__)


@dataclass
class InstallationContext:
    """Request-scoped accumulator threaded through one pipeline run.

    ``config`` is the immutable input. Every other field starts empty and is
    filled in by the stage that declares it in its write set. Never persisted.
    """

    config: InstallerConfig
    olm_preinstalled: bool | None = None
    platform_version: str | None = None
    already_deployed: bool = False
    already_running: bool = False
    operator_namespace: str | None = None
    channel_selection: ChannelSelection | None = None
    approval_strategy: ApprovalStrategy | None = None
    subscription_name: str | None = None
    install_plan_name: str | None = None
    installed_version: str | None = None
    current_version: str | None = None
    target_version: str | None = None
    operator_group: dict[str, Any] | None = None
    orbit_cluster_namespace: str | None = None
    orbit_cluster: dict[str, Any] | None = None
    deployed_image: OperatorImageRef | None = None
    new_image: OperatorImageRef | None = None
    update_decision: UpdateDecision | None = None
    highlighted_messages: list[str] = field(default_factory=list)


PIPELINE_INPUTS = frozenset({"config"})
_CONTEXT_FIELDS = frozenset(context_field.name for context_field in fields(InstallationContext))


class StageStatus(Enum):
    OK = "OK"
    EXISTS = "Exists"
    HALT = "Halt"


@dataclass(frozen=True)
class StageOutcome:
    """What a stage reports back to the runner."""

    status: StageStatus
    detail: str | None = None

    @staticmethod
    def ok(detail: str | None = None) -> "StageOutcome":
        return StageOutcome(StageStatus.OK, detail)

    @staticmethod
    def exists() -> "StageOutcome":
        return StageOutcome(StageStatus.EXISTS)

    @staticmethod
    def halt(message: str) -> "StageOutcome":
        """Stop the pipeline here; the message replaces the success report."""
        return StageOutcome(StageStatus.HALT, message)

    def render(self, title: str) -> str:
        if self.detail:
            return f"{title}...[{self.status.value}: {self.detail}]"
        return f"{title}...[{self.status.value}]"


@dataclass(frozen=True)
class Stage:
    """One step of a pipeline.

    Fields:
        title: Progress line shown to the user
        run: Does the work; returning None means OK
        when: Predicate evaluated right before the stage; None means always
        reads: Context fields the stage (and its predicate) reads
        writes: Context fields the stage may change
    """

    title: str
    run: Callable[[InstallationContext], StageOutcome | None]
    when: Callable[[InstallationContext], bool] | None = None
    reads: tuple[str, ...] = ()
    writes: tuple[str, ...] = ()


@dataclass(frozen=True)
class PipelineResult:
    """Titles of the stages that ran and were skipped, and the halt message if any."""

    completed: list[str]
    skipped: list[str]
    halt_message: str | None = None

    @property
    def halted(self) -> bool:
        return self.halt_message is not None


class Pipeline:
    """Strictly sequential list of stages with checked data dependencies."""

    def __init__(self, stages: list[Stage]) -> None:
        """Create a pipeline.

        Raises:
            ValueError: If a stage names an unknown context field, or reads a
                field that no earlier stage writes
        """
        available = set(PIPELINE_INPUTS)
        for stage in stages:
            unknown = (set(stage.reads) | set(stage.writes)) - _CONTEXT_FIELDS
            if unknown:
                raise ValueError(
                    f"Stage '{stage.title}' names unknown context fields: {sorted(unknown)}"
                )
            if set(stage.writes) & PIPELINE_INPUTS:
                raise ValueError(f"Stage '{stage.title}' writes the immutable pipeline input")
            missing = set(stage.reads) - available
            if missing:
                raise ValueError(
                    f"Stage '{stage.title}' reads {sorted(missing)} before any stage writes it"
                )
            available.update(stage.writes)
        self._stages = list(stages)

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages)

    def run(self, ctx: InstallationContext, feedback: UserFeedback) -> PipelineResult:
        """Run every enabled stage in order.

        Exceptions raised by a stage propagate unchanged; no later stage runs
        and nothing already done is rolled back.
        """
        completed: list[str] = []
        skipped: list[str] = []
        for index, stage in enumerate(self._stages):
            if stage.when is not None and not stage.when(ctx):
                logger.debug("Skipping stage: %s", stage.title)
                skipped.append(stage.title)
                continue

            logger.debug("Running stage: %s", stage.title)
            before = _snapshot(ctx)
            outcome = stage.run(ctx) or StageOutcome.ok()
            _check_writes(stage, before, _snapshot(ctx))
            completed.append(stage.title)

            if outcome.status is StageStatus.HALT:
                assert outcome.detail is not None
                skipped.extend(remaining.title for remaining in self._stages[index + 1 :])
                return PipelineResult(completed, skipped, halt_message=outcome.detail)
            feedback.info(outcome.render(stage.title))

        return PipelineResult(completed, skipped)


def _snapshot(ctx: InstallationContext) -> dict[str, Any]:
    return {
        name: copy.deepcopy(getattr(ctx, name))
        for name in _CONTEXT_FIELDS
        if name not in PIPELINE_INPUTS
    }


def _check_writes(stage: Stage, before: dict[str, Any], after: dict[str, Any]) -> None:
    changed = {name for name in before if before[name] != after[name]}
    undeclared = changed - set(stage.writes)
    if undeclared:
        raise RuntimeError(
            f"Stage '{stage.title}' changed undeclared context fields: {sorted(undeclared)}"
        )
