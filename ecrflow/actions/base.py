"""Event-Condition-Action protocol shared by every action kind."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..collaborators import (
    Artifact,
    ArtifactWriter,
    DataFetcher,
    FetchResult,
    ReportBuilder,
    ReportResult,
    ResultStatus,
)
from ..contracts import (
    ActionOutcome,
    ActionStatus,
    ActionType,
    Duration,
    ExecutionState,
    JobStatus,
    RelatedAction,
    Relationship,
    TimingSchedule,
    TriggerMatchStatus,
    WorkflowEvent,
)
from ..errors import InvalidInputError
from ..matching import (
    Condition,
    TriggerDefinition,
    evaluate_conditions,
    match_trigger_codes,
    required_types,
)
from ..persistence import SubjectRecord
from ..scheduling import BaseScheduler
from .kinds import FINALIZERS, complete_not_applicable

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    """Collaborators an action may call while it executes.

    Collaborator exceptions are caught here and turned into ``FAILURE``
    results so they never cross into the protocol.
    """

    trigger: TriggerDefinition
    scheduler: BaseScheduler
    fetcher: DataFetcher
    report_builder: ReportBuilder
    artifact_writer: Optional[ArtifactWriter] = None

    async def fetch(self, subject: SubjectRecord, types: set[str]) -> FetchResult:
        if not types:
            return FetchResult(status=ResultStatus.EMPTY)
        try:
            result = await self.fetcher.fetch_filtered_data(subject, sorted(types))
        except Exception as e:
            logger.warning(
                f"Data fetch failed for subject={subject.subject_id}: {e}"
            )
            return FetchResult.failure(str(e))
        if result.status == ResultStatus.FAILURE:
            logger.warning(
                f"Data fetch reported failure for subject={subject.subject_id}: {result.error}"
            )
        return result

    async def recheck_trigger(self, subject: SubjectRecord) -> TriggerMatchStatus:
        """Match trigger codes against freshly fetched data."""
        result = await self.fetch(subject, set(self.trigger.resource_types))
        if result.status == ResultStatus.FAILURE:
            return TriggerMatchStatus()
        return match_trigger_codes(result.data, self.trigger)

    async def build_report(
        self, subject: SubjectRecord, trigger_match: TriggerMatchStatus
    ) -> ReportResult:
        try:
            return await self.report_builder.build_report(subject, trigger_match)
        except Exception as e:
            logger.warning(
                f"Report build failed for subject={subject.subject_id}: {e}"
            )
            return ReportResult.failure(str(e))

    def write_artifact(
        self, subject: SubjectRecord, action_kind: ActionType, artifact: Artifact
    ) -> None:
        if self.artifact_writer is None:
            return
        try:
            self.artifact_writer.write(subject, action_kind, artifact)
        except Exception as e:
            logger.warning(f"Unable to save artifact {artifact.artifact_id}: {e}")


@dataclass
class ActionResult:
    outcome: ActionOutcome
    state: ExecutionState


class Action(BaseModel):
    """One configured unit of work in the action graph."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action_id: str = Field(alias="id", min_length=1)
    kind: ActionType
    description: Optional[str] = None
    conditions: tuple[Condition, ...] = ()
    related_actions: tuple[RelatedAction, ...] = ()
    timing: tuple[TimingSchedule, ...] = ()

    def after_targets(self) -> list[str]:
        return [
            edge.target
            for edge in self.related_actions
            if edge.relationship == Relationship.AFTER
        ]

    async def execute(
        self,
        subject: Any,
        state: ExecutionState,
        event: WorkflowEvent,
        context: ActionContext,
    ) -> ActionResult:
        """Run one pass of the ECA protocol.

        ``state`` is never modified; the returned result carries the state
        after this pass.
        """
        if not isinstance(subject, SubjectRecord):
            msg = (
                "Invalid object passed to execute, SubjectRecord expected, found: "
                f"{type(subject).__name__}"
            )
            logger.error(msg)
            raise InvalidInputError(msg)

        logger.info(
            f"Executing {self.kind.value} action {self.action_id} for "
            f"subject={subject.subject_id} event={event.value} "
            f"prior status={state.job_status(self.action_id).value}"
        )

        if state.has_completed(self.action_id):
            logger.info(f"Action {self.action_id} already completed, nothing to do")
            return ActionResult(ActionOutcome.NO_OP, state)

        if not await self._conditions_met(subject, context):
            if (
                event == WorkflowEvent.SCHEDULED_JOB
                and state.job_status(self.action_id) == JobStatus.SCHEDULED
            ):
                # The job must still close; the action ends without a report.
                logger.info(
                    f"Conditions no longer hold for scheduled action {self.action_id}"
                )
                new_state = state.model_copy(deep=True)
                await complete_not_applicable(self, subject, new_state, context)
                return ActionResult(ActionOutcome.COMPLETED, new_state)
            logger.info(f"Conditions not met for action {self.action_id}")
            return ActionResult(ActionOutcome.CONDITIONS_NOT_MET, state)

        new_state = state.model_copy(deep=True)
        own = new_state.ensure_status(self.action_id)

        outcome = await self._resolve_dependencies(subject, new_state, own, context)
        if outcome is not None:
            return ActionResult(outcome, new_state)

        if own.job_status == JobStatus.NOT_STARTED:
            if self.timing:
                logger.info(f"Timing data present, scheduling action {self.action_id}")
                await self._schedule(subject, None, context)
                own.mark_scheduled()
                return ActionResult(ActionOutcome.SCHEDULED, new_state)
            logger.info(f"No timing data, completing action {self.action_id} now")
        elif event != WorkflowEvent.SCHEDULED_JOB:
            logger.info(
                f"Action {self.action_id} has a job pending, ignoring {event.value}"
            )
            return ActionResult(ActionOutcome.NO_OP, new_state)
        else:
            logger.info(f"Scheduled job fired for action {self.action_id}")

        await FINALIZERS[self.kind](self, subject, new_state, context)
        logger.info(
            f"Action {self.action_id} completed for subject={subject.subject_id} "
            f"artifact={new_state.status_for(self.action_id).artifact_id}"
        )
        return ActionResult(ActionOutcome.COMPLETED, new_state)

    # ------------------------------------------------------------------
    async def _conditions_met(
        self, subject: SubjectRecord, context: ActionContext
    ) -> bool:
        if not self.conditions:
            return True
        result = await context.fetch(
            subject, required_types(self.conditions, context.trigger)
        )
        return evaluate_conditions(self.conditions, result.data, context.trigger)

    async def _resolve_dependencies(
        self,
        subject: SubjectRecord,
        state: ExecutionState,
        own: ActionStatus,
        context: ActionContext,
    ) -> Optional[ActionOutcome]:
        """Walk ``AFTER`` edges; return an outcome when this pass must stop."""
        for edge in self.related_actions:
            if edge.relationship != Relationship.AFTER:
                logger.info(
                    f"Action {edge.target} is related via {edge.relationship.value}"
                )
                continue

            target = state.ensure_status(edge.target)
            if not target.is_completed:
                logger.info(
                    f"Action {edge.target} is not completed, "
                    f"action {self.action_id} has to wait"
                )
                return ActionOutcome.WAITING

            logger.debug(f"Related action {edge.target} has completed")
            if edge.delay is not None and own.job_status == JobStatus.NOT_STARTED:
                logger.info(
                    f"Delaying action {self.action_id} by {edge.delay} "
                    f"after {edge.target}"
                )
                await self._schedule(subject, edge.delay, context)
                own.mark_scheduled()
                return ActionOutcome.SCHEDULED
        return None

    async def _schedule(
        self,
        subject: SubjectRecord,
        delay: Optional[Duration],
        context: ActionContext,
    ) -> None:
        """Register one job; timing entries win over a raw edge delay."""
        if self.timing:
            if len(self.timing) > 1:
                logger.info(
                    f"Action {self.action_id} has {len(self.timing)} timing entries, "
                    "only the first is scheduled"
                )
            when: Duration | TimingSchedule = self.timing[0]
        elif delay is not None:
            when = delay
        else:
            raise ValueError(f"Nothing to schedule for action {self.action_id}")

        await context.scheduler.schedule_job(
            subject.subject_id,
            self.action_id,
            self.kind,
            when,
            subject.start_date,
        )
