"""Scheduler factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import EcrflowConfig, load_config
from .base import BaseScheduler, Clock
from .inmemory import InMemoryScheduler


def get_scheduler(
    backend: Optional[str] = None,
    config: Optional[EcrflowConfig] = None,
    clock: Optional[Clock] = None,
) -> BaseScheduler:
    """Factory function to get the configured scheduler."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("ECRFLOW_SCHEDULER")
        or config.scheduler.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryScheduler(clock=clock)
    elif backend == "redis":
        from .redis import RedisScheduler

        redis_conf = config.scheduler.redis
        return RedisScheduler(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            key=redis_conf.key,
            clock=clock,
        )
    else:
        raise ValueError(f"Unsupported scheduler backend: {backend}")


__all__ = ["BaseScheduler", "InMemoryScheduler", "get_scheduler"]
