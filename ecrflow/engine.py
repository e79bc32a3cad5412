"""Workflow engine entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from .actions import Action, ActionContext, ActionRegistry, load_workflow
from .collaborators import (
    ArtifactWriter,
    CachedDataFetcher,
    DataFetcher,
    FileArtifactWriter,
    ReportBuilder,
    SummaryReportBuilder,
)
from .config import EcrflowConfig, load_config
from .contracts import ActionOutcome, ExecutionState, ScheduledJob, WorkflowEvent
from .errors import WorkflowDefinitionError
from .persistence import SubjectRecord, SubjectRepository, get_repository
from .scheduling import BaseScheduler, get_scheduler
from .state import ExecutionStateStore

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Runs actions for subjects and persists the resulting state.

    Every public entry point holds a per-subject lock for its whole
    load/execute/save cycle, so invocations for one subject never interleave
    inside this process. Exclusion across processes is left to whoever owns
    the subject store.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        repository: SubjectRepository,
        scheduler: BaseScheduler,
        fetcher: DataFetcher,
        report_builder: ReportBuilder,
        artifact_writer: Optional[ArtifactWriter] = None,
    ) -> None:
        self.registry = registry
        self.store = ExecutionStateStore(repository)
        self.scheduler = scheduler
        self.context = ActionContext(
            trigger=registry.trigger,
            scheduler=scheduler,
            fetcher=fetcher,
            report_builder=report_builder,
            artifact_writer=artifact_writer,
        )
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def register_subject(self, record: SubjectRecord) -> None:
        await self.store.repository.create_subject(record)
        logger.info(f"Registered subject={record.subject_id}")

    async def load_state(self, subject_id: str) -> ExecutionState:
        return await self.store.load(subject_id)

    # ------------------------------------------------------------------
    async def run_action(
        self, subject_id: str, action_id: str, event: WorkflowEvent
    ) -> ActionOutcome:
        """Run one action for one subject."""
        action = self.registry.get(action_id)
        async with self._subject_lock(subject_id):
            return await self._run_locked(subject_id, action, event)

    async def handle_event(
        self, subject_id: str, event: WorkflowEvent
    ) -> dict[str, ActionOutcome]:
        """Run every action in dependency order for one inbound event."""
        outcomes: dict[str, ActionOutcome] = {}
        async with self._subject_lock(subject_id):
            for action in self.registry.topological_order():
                outcomes[action.action_id] = await self._run_locked(
                    subject_id, action, event
                )
        return outcomes

    async def handle_scheduled_job(self, job: ScheduledJob) -> dict[str, ActionOutcome]:
        """Run a fired job, then give its dependents a chance to proceed."""
        action = self.registry.get(job.action_id)
        logger.info(
            f"Running scheduled job {job.job_id} for action {job.action_id} "
            f"subject={job.subject_id}"
        )
        outcomes: dict[str, ActionOutcome] = {}
        async with self._subject_lock(job.subject_id):
            outcome = await self._run_locked(
                job.subject_id, action, WorkflowEvent.SCHEDULED_JOB
            )
            outcomes[action.action_id] = outcome
            # NO_OP here means an earlier run of this job completed the action
            # but failed before its dependents were handled
            if outcome in (ActionOutcome.COMPLETED, ActionOutcome.NO_OP):
                await self._cascade(job.subject_id, action, outcomes)
        return outcomes

    @asynccontextmanager
    async def _subject_lock(self, subject_id: str) -> AsyncIterator[None]:
        """Hold the subject's lock; it is discarded once nobody uses it."""
        lock = self._locks.get(subject_id)
        if lock is None:
            lock = self._locks[subject_id] = asyncio.Lock()
        self._lock_users[subject_id] = self._lock_users.get(subject_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[subject_id] -= 1
            if not self._lock_users[subject_id]:
                del self._lock_users[subject_id]
                del self._locks[subject_id]

    async def _cascade(
        self,
        subject_id: str,
        completed: Action,
        outcomes: dict[str, ActionOutcome],
    ) -> None:
        for dependent in self.registry.dependents_of(completed.action_id):
            if dependent.action_id in outcomes:
                continue
            outcome = await self._run_locked(
                subject_id, dependent, WorkflowEvent.DEPENDENCY_COMPLETED
            )
            outcomes[dependent.action_id] = outcome
            if outcome == ActionOutcome.COMPLETED:
                await self._cascade(subject_id, dependent, outcomes)

    async def _run_locked(
        self, subject_id: str, action: Action, event: WorkflowEvent
    ) -> ActionOutcome:
        subject, state = await self.store.load_subject(subject_id)
        result = await action.execute(subject, state, event, self.context)
        if result.state != state:
            await self.store.save(subject_id, result.state)
        logger.info(
            f"Action {action.action_id} for subject={subject_id}: {result.outcome.value}"
        )
        return result.outcome


def create_engine(
    config: Optional[EcrflowConfig] = None,
    registry: Optional[ActionRegistry] = None,
    scheduler: Optional[BaseScheduler] = None,
) -> WorkflowEngine:
    """Build an engine from configuration using the bundled collaborators."""
    config = config or load_config()
    if registry is None:
        if not config.workflow_path:
            raise WorkflowDefinitionError(
                "No workflow definition configured (set workflow_path or ECRFLOW_WORKFLOW)"
            )
        registry = load_workflow(config.workflow_path)
    writer = (
        FileArtifactWriter(config.artifact_directory)
        if config.artifact_directory
        else None
    )
    return WorkflowEngine(
        registry=registry,
        repository=get_repository(config.database_url),
        scheduler=scheduler or get_scheduler(config=config),
        fetcher=CachedDataFetcher(),
        report_builder=SummaryReportBuilder(),
        artifact_writer=writer,
    )
