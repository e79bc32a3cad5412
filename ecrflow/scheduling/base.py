"""Base scheduler interface for delayed action re-invocation."""

from __future__ import annotations

import abc
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Union

from ..contracts import ActionType, Duration, ScheduledJob, TimingSchedule

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseScheduler(metaclass=abc.ABCMeta):
    """Abstract scheduler that stores jobs until they fall due.

    Every job returned by ``schedule_job`` is handed out by ``due_jobs`` at
    most once, at or after its ``fire_at`` time. A worker that fails to run
    a claimed job puts it back with ``requeue`` or ``release``.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return as_utc(self._clock())

    async def connect(self) -> None:
        """Open connection to the backing store (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the backing store (no-op by default)."""
        pass

    def compute_fire_times(
        self,
        when: Union[Duration, TimingSchedule],
        reference_time: Optional[datetime] = None,
    ) -> list[datetime]:
        """Return the times at which ``when`` asks for the action to run.

        A raw ``Duration`` is measured from now. A ``TimingSchedule`` is
        measured from ``reference_time`` (now when absent) and may repeat.
        """
        now = self.now()
        if isinstance(when, Duration):
            return [now + when.to_timedelta()]

        base = as_utc(reference_time) if reference_time else now
        first = base + when.offset.to_timedelta()
        if first < now:
            first = now
        times = [first]
        if when.period is not None:
            step = when.period.to_timedelta()
            for i in range(1, when.max_repeat):
                times.append(first + step * i)
        return times

    async def schedule_job(
        self,
        subject_id: str,
        action_id: str,
        action_kind: ActionType,
        when: Union[Duration, TimingSchedule],
        reference_time: Optional[datetime] = None,
    ) -> list[ScheduledJob]:
        """Register future invocations of ``action_id`` for ``subject_id``."""
        jobs = [
            ScheduledJob(
                subject_id=subject_id,
                action_id=action_id,
                action_kind=action_kind,
                fire_at=fire_at,
            )
            for fire_at in self.compute_fire_times(when, reference_time)
        ]
        for job in jobs:
            await self._enqueue(job)
            logger.info(
                f"Scheduled {action_kind.value} action {action_id} for "
                f"subject={subject_id} at {job.fire_at.isoformat()}"
            )
        return jobs

    async def requeue(self, job: ScheduledJob, delay: timedelta) -> ScheduledJob:
        """Put a failed job back as its next attempt, ``delay`` from now."""
        retry = job.model_copy(
            update={"fire_at": self.now() + delay, "attempt": job.attempt + 1}
        )
        await self._enqueue(retry)
        logger.info(
            f"Requeued job {job.job_id} for action {job.action_id} "
            f"subject={job.subject_id} attempt={retry.attempt} "
            f"at {retry.fire_at.isoformat()}"
        )
        return retry

    async def release(self, jobs: Iterable[ScheduledJob]) -> None:
        """Return claimed jobs that were never run, unchanged."""
        for job in jobs:
            await self._enqueue(job)
            logger.debug(f"Released unprocessed job {job.job_id}")

    @abc.abstractmethod
    async def _enqueue(self, job: ScheduledJob) -> None:
        """Store ``job`` until it falls due."""
        raise NotImplementedError

    @abc.abstractmethod
    async def due_jobs(self, now: Optional[datetime] = None) -> list[ScheduledJob]:
        """Claim and return all jobs whose fire time has passed."""
        raise NotImplementedError

    @abc.abstractmethod
    async def pending_jobs(self) -> list[ScheduledJob]:
        """Return jobs that have not been claimed yet, earliest first."""
        raise NotImplementedError
