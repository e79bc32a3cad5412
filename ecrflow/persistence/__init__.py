"""Persistence layer for ecrflow subject records."""

from __future__ import annotations

import os
from typing import Optional

from ..config import EcrflowConfig, load_config
from .inmemory import InMemorySubjectRepository
from .models import SubjectRecord
from .repository import SubjectRepository
from .sqlite import SQLiteSubjectRepository

_repository_instance: SubjectRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[EcrflowConfig] = None
) -> SubjectRepository:
    """Factory function to obtain a subject repository.

    The repository backend is selected based on ``database_url`` which can be
    provided explicitly, via environment variable ``ECRFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("ECRFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repository_instance = InMemorySubjectRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteSubjectRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        from .postgres import PostgresSubjectRepository

        _repository_instance = PostgresSubjectRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "SubjectRecord",
    "SubjectRepository",
    "SQLiteSubjectRepository",
    "InMemorySubjectRepository",
    "get_repository",
]
