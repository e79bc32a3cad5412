"""In-memory implementation of the subject repository."""

from __future__ import annotations

from typing import Dict

from ..errors import SubjectNotFoundError
from .models import SubjectRecord
from .repository import SubjectRepository


class InMemorySubjectRepository(SubjectRepository):
    """Store subject records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._subjects: Dict[str, SubjectRecord] = {}

    # ------------------------------------------------------------------
    async def create_subject(self, record: SubjectRecord) -> None:
        if record.subject_id in self._subjects:
            raise ValueError(f"Subject {record.subject_id} already exists")
        self._subjects[record.subject_id] = record.model_copy(deep=True)

    async def get_subject(self, subject_id: str) -> SubjectRecord | None:
        record = self._subjects.get(subject_id)
        return record.model_copy(deep=True) if record else None

    async def update_status(self, subject_id: str, status: str) -> None:
        record = self._subjects.get(subject_id)
        if record is None:
            raise SubjectNotFoundError(f"Subject {subject_id} not found")
        record.status = status

    async def update_clinical_data(
        self, subject_id: str, clinical_data: dict
    ) -> None:
        record = self._subjects.get(subject_id)
        if record is None:
            raise SubjectNotFoundError(f"Subject {subject_id} not found")
        record.clinical_data = clinical_data

    async def list_subjects(self) -> list[SubjectRecord]:
        return [r.model_copy(deep=True) for r in self._subjects.values()]
