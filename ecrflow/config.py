from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_POLL_INTERVAL, DEFAULT_REDIS_JOBS_KEY


class RedisConfig(BaseModel):
    """Configuration for the Redis job scheduler."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key: str = DEFAULT_REDIS_JOBS_KEY


class SchedulerConfig(BaseModel):
    """Scheduler configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    redis: RedisConfig = RedisConfig()


class EcrflowConfig(BaseModel):
    """Top-level configuration model."""

    scheduler: SchedulerConfig = SchedulerConfig()
    database_url: Optional[str] = None
    workflow_path: Optional[str] = None
    artifact_directory: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> EcrflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to ECRFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("ECRFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = EcrflowConfig(**data)
    else:
        config = EcrflowConfig()

    env_db_url = os.getenv("ECRFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_workflow = os.getenv("ECRFLOW_WORKFLOW")
    if env_workflow:
        config.workflow_path = env_workflow
    return config
