"""Data models for persisted subject records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class SubjectRecord(BaseModel):
    """One patient encounter launch that a workflow runs against.

    ``status`` carries the serialized ``ExecutionState`` and is treated as
    opaque by every repository. ``clinical_data`` caches source records by
    resource type.
    """

    subject_id: str
    patient_id: str
    encounter_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str = ""
    clinical_data: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
