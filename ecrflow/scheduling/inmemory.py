"""In-memory scheduler for testing."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional

from ..contracts import ScheduledJob
from .base import BaseScheduler, Clock, as_utc


class InMemoryScheduler(BaseScheduler):
    """Simple in-process job store for unit tests and single workers."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        super().__init__(clock)
        self._jobs: List[ScheduledJob] = []
        self._lock = asyncio.Lock()

    async def _enqueue(self, job: ScheduledJob) -> None:
        async with self._lock:
            self._jobs.append(job)
            self._jobs.sort(key=lambda j: j.fire_at)

    async def due_jobs(self, now: Optional[datetime] = None) -> list[ScheduledJob]:
        cutoff = as_utc(now) if now else self.now()
        async with self._lock:
            due = [job for job in self._jobs if job.fire_at <= cutoff]
            self._jobs = [job for job in self._jobs if job.fire_at > cutoff]
        return due

    async def pending_jobs(self) -> list[ScheduledJob]:
        async with self._lock:
            return list(self._jobs)
