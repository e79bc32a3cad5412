"""Interfaces to the data-fetch, report-build and artifact-storage collaborators.

Each collaborator returns a result object that distinguishes success, empty
and failure so the engine can branch on the outcome. The implementations here
are deliberately small; deployments plug in their own.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol

from pydantic import BaseModel, Field

from .constants import DEFAULT_ARTIFACT_EXTENSION
from .contracts import ActionType, TriggerMatchStatus
from .persistence import SubjectRecord

logger = logging.getLogger(__name__)


class ResultStatus(str, Enum):
    SUCCESS = "SUCCESS"
    EMPTY = "EMPTY"
    FAILURE = "FAILURE"


class FetchResult(BaseModel):
    """Records returned by a data fetch, grouped by resource type."""

    status: ResultStatus
    data: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "FetchResult":
        return cls(status=ResultStatus.FAILURE, error=error)


class Artifact(BaseModel):
    """A report document produced for a subject."""

    artifact_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    data: str
    extension: str = DEFAULT_ARTIFACT_EXTENSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ReportResult(BaseModel):
    status: ResultStatus
    artifact: Optional[Artifact] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ReportResult":
        return cls(status=ResultStatus.FAILURE, error=error)

    @property
    def produced(self) -> bool:
        return self.status == ResultStatus.SUCCESS and self.artifact is not None


class DataFetcher(Protocol):
    async def fetch_filtered_data(
        self, subject: SubjectRecord, required_types: Iterable[str]
    ) -> FetchResult:
        """Return the subject's records for ``required_types``."""


class ReportBuilder(Protocol):
    async def build_report(
        self, subject: SubjectRecord, trigger_match: TriggerMatchStatus
    ) -> ReportResult:
        """Assemble a report for ``subject``."""


class ArtifactWriter(Protocol):
    def write(
        self, subject: SubjectRecord, action_kind: ActionType, artifact: Artifact
    ) -> Optional[Path]:
        """Store a produced artifact."""


class CachedDataFetcher:
    """Serve records already cached on the subject record."""

    async def fetch_filtered_data(
        self, subject: SubjectRecord, required_types: Iterable[str]
    ) -> FetchResult:
        data = {
            resource_type: list(subject.clinical_data.get(resource_type, []))
            for resource_type in required_types
        }
        if not any(data.values()):
            return FetchResult(status=ResultStatus.EMPTY, data=data)
        return FetchResult(status=ResultStatus.SUCCESS, data=data)


class SummaryReportBuilder:
    """Build a minimal JSON summary naming the subject and matched codes."""

    async def build_report(
        self, subject: SubjectRecord, trigger_match: TriggerMatchStatus
    ) -> ReportResult:
        if not trigger_match.has_matches:
            return ReportResult(status=ResultStatus.EMPTY)
        artifact_id = str(uuid.uuid4())
        document = {
            "artifact_id": artifact_id,
            "patient_id": subject.patient_id,
            "encounter_id": subject.encounter_id,
            "matched_codes": sorted(trigger_match.matched_codes),
        }
        artifact = Artifact(
            artifact_id=artifact_id,
            data=json.dumps(document, sort_keys=True),
            extension="json",
        )
        return ReportResult(status=ResultStatus.SUCCESS, artifact=artifact)


class FileArtifactWriter:
    """Save produced artifacts to a directory, one file per artifact."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def file_name(
        self, subject: SubjectRecord, action_kind: ActionType, artifact: Artifact
    ) -> str:
        stamp = artifact.created_at.strftime("%H%M%S")
        return f"{subject.patient_id}_{action_kind.value}_{stamp}.{artifact.extension}"

    def write(
        self, subject: SubjectRecord, action_kind: ActionType, artifact: Artifact
    ) -> Optional[Path]:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / self.file_name(subject, action_kind, artifact)
        path.write_text(artifact.data)
        logger.info(f"Saved artifact {artifact.artifact_id} to {path}")
        return path
