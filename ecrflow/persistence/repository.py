"""Repository abstraction for subject record persistence."""

from __future__ import annotations

from typing import Protocol

from .models import SubjectRecord


class SubjectRepository(Protocol):
    """Protocol for subject record persistence backends."""

    async def create_subject(self, record: SubjectRecord) -> None:
        """Persist a new subject record."""

    async def get_subject(self, subject_id: str) -> SubjectRecord | None:
        """Retrieve the subject record by id."""

    async def update_status(self, subject_id: str, status: str) -> None:
        """Replace the serialized execution state in a single write."""

    async def update_clinical_data(
        self, subject_id: str, clinical_data: dict
    ) -> None:
        """Replace the cached clinical data for a subject."""

    async def list_subjects(self) -> list[SubjectRecord]:
        """Return all persisted subjects."""
