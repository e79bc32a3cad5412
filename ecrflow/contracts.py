"""Core value types shared by the ecrflow engine."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from .constants import NEGATIVE_ARTIFACT_ID
from .errors import InvalidTransitionError

logger = logging.getLogger(__name__)

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(s|min|h|d|wk)\s*$")

_UNIT_SECONDS = {
    "s": 1,
    "min": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
    "wk": 7 * 24 * 60 * 60,
}


class WorkflowEvent(str, Enum):
    """Events that cause the engine to run an action."""

    SOF_LAUNCH = "SOF_LAUNCH"
    SUBSCRIPTION_NOTIFICATION = "SUBSCRIPTION_NOTIFICATION"
    INBOUND_EVENT = "INBOUND_EVENT"
    SCHEDULED_JOB = "SCHEDULED_JOB"
    DEPENDENCY_COMPLETED = "DEPENDENCY_COMPLETED"


class JobStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"


_JOB_STATUS_ORDER = {
    JobStatus.NOT_STARTED: 0,
    JobStatus.SCHEDULED: 1,
    JobStatus.COMPLETED: 2,
}


class ActionType(str, Enum):
    """Closed set of action variants understood by the engine."""

    MATCH_TRIGGER = "MATCH_TRIGGER"
    CREATE_EICR = "CREATE_EICR"
    CLOSE_OUT_EICR = "CLOSE_OUT_EICR"


class Relationship(str, Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"


class ActionOutcome(str, Enum):
    """Result of a single pass through an action's ECA protocol."""

    CONDITIONS_NOT_MET = "CONDITIONS_NOT_MET"
    WAITING = "WAITING"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    NO_OP = "NO_OP"


class Duration(BaseModel):
    """A length of time expressed as ``value`` and a unit code."""

    model_config = ConfigDict(frozen=True)

    value: float = Field(ge=0)
    unit: Literal["s", "min", "h", "d", "wk"] = "s"

    @model_validator(mode="before")
    @classmethod
    def _parse_compact(cls, data: Any) -> Any:
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return {"value": data, "unit": "s"}
        if isinstance(data, str):
            match = _DURATION_PATTERN.match(data)
            if not match:
                raise ValueError(f"Invalid duration: {data!r}")
            return {"value": float(match.group(1)), "unit": match.group(2)}
        return data

    def to_timedelta(self) -> timedelta:
        return timedelta(seconds=self.value * _UNIT_SECONDS[self.unit])

    def __str__(self) -> str:
        value = int(self.value) if float(self.value).is_integer() else self.value
        return f"{value}{self.unit}"


class TimingSchedule(BaseModel):
    """When the scheduler should fire an action, relative to a reference time."""

    model_config = ConfigDict(frozen=True)

    offset: Duration = Duration(value=0)
    max_repeat: int = Field(default=1, ge=1)
    period: Optional[Duration] = None


class RelatedAction(BaseModel):
    """Edge from one action to another in the action graph."""

    model_config = ConfigDict(frozen=True)

    target: str
    relationship: Relationship = Relationship.AFTER
    delay: Optional[Duration] = None


class TriggerMatchStatus(BaseModel):
    """Outcome of the most recent trigger-code match for a subject."""

    matched: bool = False
    matched_codes: Set[str] = Field(default_factory=set)

    @field_serializer("matched_codes")
    def _serialize_codes(self, codes: Set[str]) -> list[str]:
        return sorted(codes)

    @property
    def has_matches(self) -> bool:
        return self.matched and bool(self.matched_codes)


class ActionStatus(BaseModel):
    """Execution status of one action for one subject."""

    action_id: str
    job_status: JobStatus = JobStatus.NOT_STARTED
    completed: bool = False
    artifact_id: Optional[str] = None

    def _advance(self, new_status: JobStatus) -> None:
        if _JOB_STATUS_ORDER[new_status] <= _JOB_STATUS_ORDER[self.job_status]:
            raise InvalidTransitionError(
                f"Action {self.action_id} cannot move from "
                f"{self.job_status.value} to {new_status.value}"
            )
        self.job_status = new_status

    def mark_scheduled(self) -> None:
        self._advance(JobStatus.SCHEDULED)

    def mark_completed(self, artifact_id: Optional[str], produced: bool) -> None:
        """Move to ``COMPLETED``; ``produced`` is false for the negative marker."""
        self._advance(JobStatus.COMPLETED)
        self.completed = produced
        self.artifact_id = artifact_id if produced else NEGATIVE_ARTIFACT_ID

    @property
    def is_completed(self) -> bool:
        return self.job_status == JobStatus.COMPLETED


class ExecutionState(BaseModel):
    """Complete per-subject workflow state."""

    statuses: Dict[str, ActionStatus] = Field(default_factory=dict)
    trigger_match: TriggerMatchStatus = Field(default_factory=TriggerMatchStatus)

    def status_for(self, action_id: str) -> ActionStatus:
        """Return the status for ``action_id`` without recording it.

        An action that has never run reads as ``NOT_STARTED``.
        """
        existing = self.statuses.get(action_id)
        if existing is not None:
            return existing
        return ActionStatus(action_id=action_id)

    def ensure_status(self, action_id: str) -> ActionStatus:
        """Return the recorded status for ``action_id``, creating it if needed."""
        if action_id not in self.statuses:
            logger.debug(f"Recording NOT_STARTED status for action {action_id}")
            self.statuses[action_id] = ActionStatus(action_id=action_id)
        return self.statuses[action_id]

    def job_status(self, action_id: str) -> JobStatus:
        return self.status_for(action_id).job_status

    def has_completed(self, action_id: str) -> bool:
        return self.status_for(action_id).is_completed


class ScheduledJob(BaseModel):
    """A request to re-run one action for one subject at a future time."""

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    subject_id: str
    action_id: str
    action_kind: ActionType
    fire_at: datetime
    attempt: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "ScheduledJob":
        return cls.model_validate_json(data)
