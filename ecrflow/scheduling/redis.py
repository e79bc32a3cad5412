"""Redis scheduler for cross-process delayed jobs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from ..constants import DEFAULT_REDIS_JOBS_KEY
from ..contracts import ScheduledJob
from .base import BaseScheduler, Clock, as_utc

logger = logging.getLogger(__name__)


class RedisScheduler(BaseScheduler):
    """Keep jobs in a Redis sorted set scored by fire timestamp.

    A worker claims a job by removing it from the set; only the worker whose
    ``ZREM`` succeeds runs the job.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        key: str = DEFAULT_REDIS_JOBS_KEY,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.key = key
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _enqueue(self, job: ScheduledJob) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.zadd(self.key, {job.to_json(): job.fire_at.timestamp()})

    async def due_jobs(self, now: Optional[datetime] = None) -> list[ScheduledJob]:
        if not self._redis:
            await self.connect()
        cutoff = (as_utc(now) if now else self.now()).timestamp()
        members = await self._redis.zrangebyscore(self.key, "-inf", cutoff)

        claimed: list[ScheduledJob] = []
        for member in members:
            if not await self._redis.zrem(self.key, member):
                # another worker claimed it first
                continue
            try:
                claimed.append(ScheduledJob.from_json(member))
            except (ValidationError, ValueError) as e:
                logger.error(f"Dropping unreadable scheduled job {member!r}: {e}")
        return claimed

    async def pending_jobs(self) -> list[ScheduledJob]:
        if not self._redis:
            await self.connect()
        members = await self._redis.zrange(self.key, 0, -1)
        return [ScheduledJob.from_json(m) for m in members]
