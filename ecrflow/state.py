"""Load and save per-subject execution state."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from .contracts import ExecutionState
from .errors import SubjectNotFoundError, UnrecoverablePersistenceError
from .persistence import SubjectRecord, SubjectRepository

logger = logging.getLogger(__name__)


def serialize_state(state: ExecutionState) -> str:
    """Serialize ``state`` into the blob stored on the subject record."""
    try:
        return state.model_dump_json()
    except (TypeError, ValueError) as e:
        msg = "Unable to write execution state"
        logger.error(f"{msg}: {e}")
        raise UnrecoverablePersistenceError(msg) from e


def deserialize_state(blob: str | None) -> ExecutionState:
    """Rebuild an ``ExecutionState`` from a stored blob.

    An empty blob means the subject has not run any action yet.
    """
    if not blob:
        return ExecutionState()
    try:
        return ExecutionState.model_validate_json(blob)
    except (ValidationError, ValueError) as e:
        msg = "Unable to read execution state"
        logger.error(f"{msg}: {e}")
        raise UnrecoverablePersistenceError(msg) from e


class ExecutionStateStore:
    """Reads and writes ``ExecutionState`` through a subject repository.

    The store assumes a single writer per subject; callers serialize the
    load/execute/save cycle themselves.
    """

    def __init__(self, repository: SubjectRepository) -> None:
        self._repository = repository

    @property
    def repository(self) -> SubjectRepository:
        return self._repository

    async def load_subject(
        self, subject_id: str
    ) -> tuple[SubjectRecord, ExecutionState]:
        subject = await self._repository.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFoundError(f"Subject {subject_id} not found")
        return subject, deserialize_state(subject.status)

    async def load(self, subject_id: str) -> ExecutionState:
        _, state = await self.load_subject(subject_id)
        return state

    async def save(self, subject_id: str, state: ExecutionState) -> None:
        # Serialize fully before touching storage so a failure leaves the
        # previous blob in place.
        blob = serialize_state(state)
        await self._repository.update_status(subject_id, blob)
        logger.debug(f"Saved execution state for subject={subject_id}")
