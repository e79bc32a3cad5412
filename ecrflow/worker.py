"""Worker that fires scheduled jobs back into the engine."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from .constants import (
    DEFAULT_MAX_JOB_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETRY_BASE,
)
from .contracts import ScheduledJob
from .engine import WorkflowEngine
from .errors import EcrflowError
from .scheduling import BaseScheduler

logger = logging.getLogger(__name__)


def compute_backoff(attempt: int, base: float = DEFAULT_RETRY_BASE) -> timedelta:
    """Exponential delay before retry number ``attempt`` (1-based)."""
    return timedelta(seconds=base**attempt)


class ScheduledJobWorker:
    """Polls the scheduler for due jobs and hands each to the engine.

    Jobs that fail with an ``EcrflowError`` or an unknown action are dropped;
    the subject or workflow definition has to be fixed first. Any other
    failure is treated as transient and the job is requeued with exponential
    backoff until ``max_attempts`` runs have failed.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        scheduler: BaseScheduler,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_JOB_ATTEMPTS,
    ) -> None:
        self._engine = engine
        self._scheduler = scheduler
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self.processed_jobs: list[ScheduledJob] = []
        self.failed_jobs: list[ScheduledJob] = []

    async def run_due_jobs(self) -> int:
        """Run every job that is due now and return how many were claimed."""
        jobs = await self._scheduler.due_jobs()
        for index, job in enumerate(jobs):
            try:
                await self._handle_job(job)
            except BaseException:
                # cancelled mid-batch: the current job and the rest go back
                await self._scheduler.release(jobs[index:])
                raise
        return len(jobs)

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Poll for due jobs until ``lifespan`` seconds pass (forever if None)."""
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        await self._scheduler.connect()
        try:
            while True:
                if lifespan is not None and loop.time() - start_time >= lifespan:
                    break
                if not await self.run_due_jobs():
                    await asyncio.sleep(self._poll_interval)
        finally:
            await self._scheduler.disconnect()

    async def _handle_job(self, job: ScheduledJob) -> None:
        try:
            outcomes = await self._engine.handle_scheduled_job(job)
        except (EcrflowError, KeyError) as e:
            logger.error(
                f"Scheduled job {job.job_id} for subject={job.subject_id} "
                f"action={job.action_id} failed: {e}"
            )
            self.failed_jobs.append(job)
            return
        except Exception:
            logger.exception(
                f"Scheduled job {job.job_id} for subject={job.subject_id} "
                f"action={job.action_id} raised on attempt {job.attempt + 1}"
            )
            await self._retry(job)
            return
        self.processed_jobs.append(job)
        logger.info(
            f"Scheduled job {job.job_id} done: "
            + ", ".join(f"{k}={v.value}" for k, v in outcomes.items())
        )

    async def _retry(self, job: ScheduledJob) -> None:
        if job.attempt + 1 >= self._max_attempts:
            logger.error(
                f"Giving up on job {job.job_id} after {job.attempt + 1} attempts"
            )
            self.failed_jobs.append(job)
            return
        try:
            await self._scheduler.requeue(job, compute_backoff(job.attempt + 1))
        except Exception:
            logger.exception(f"Unable to requeue job {job.job_id}")
            self.failed_jobs.append(job)
