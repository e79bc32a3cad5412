"""Shared fixtures for ecrflow tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ecrflow.actions import ActionContext, ActionRegistry
from ecrflow.collaborators import (
    Artifact,
    CachedDataFetcher,
    ReportResult,
    ResultStatus,
)
from ecrflow.contracts import TriggerMatchStatus
from ecrflow.persistence import InMemorySubjectRepository, SubjectRecord
from ecrflow.scheduling import InMemoryScheduler

COVID_CODE = "http://snomed.info/sct|840539006"
OTHER_CODE = "http://snomed.info/sct|38341003"

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingReportBuilder:
    """Report builder that counts calls and can be told to fail."""

    def __init__(self, fail: bool = False) -> None:
        self.calls: list[TriggerMatchStatus] = []
        self.fail = fail

    async def build_report(self, subject, trigger_match):
        self.calls.append(trigger_match)
        if self.fail:
            raise RuntimeError("document service unavailable")
        return ReportResult(
            status=ResultStatus.SUCCESS,
            artifact=Artifact(artifact_id=f"eicr-{len(self.calls)}", data="<doc/>"),
        )


class FailingFetcher:
    async def fetch_filtered_data(self, subject, required_types):
        raise ConnectionError("source record system unreachable")


def condition_record(code: str) -> dict:
    system, value = code.split("|")
    return {
        "resourceType": "Condition",
        "code": {"coding": [{"system": system, "code": value}]},
    }


def make_subject(
    subject_id: str = "enc-1", codes: tuple[str, ...] = (COVID_CODE,)
) -> SubjectRecord:
    return SubjectRecord(
        subject_id=subject_id,
        patient_id="patient-1",
        encounter_id="encounter-1",
        start_date=START,
        clinical_data={"Condition": [condition_record(c) for c in codes]},
    )


WORKFLOW = {
    "trigger": {"resource_types": ["Condition"], "codes": [COVID_CODE]},
    "actions": [
        {"id": "match-trigger", "kind": "MATCH_TRIGGER"},
        {
            "id": "create-eicr",
            "kind": "CREATE_EICR",
            "conditions": [{"kind": "TRIGGER_CODES"}],
            "related_actions": [{"target": "match-trigger", "relationship": "AFTER"}],
            "timing": [{"offset": "1h"}],
        },
        {
            "id": "close-out-eicr",
            "kind": "CLOSE_OUT_EICR",
            "related_actions": [
                {"target": "create-eicr", "relationship": "AFTER", "delay": "10s"}
            ],
        },
    ],
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> ActionRegistry:
    return ActionRegistry.from_dict(WORKFLOW)


@pytest.fixture
def scheduler(clock) -> InMemoryScheduler:
    return InMemoryScheduler(clock=clock)


@pytest.fixture
def report_builder() -> RecordingReportBuilder:
    return RecordingReportBuilder()


@pytest.fixture
def context(registry, scheduler, report_builder) -> ActionContext:
    return ActionContext(
        trigger=registry.trigger,
        scheduler=scheduler,
        fetcher=CachedDataFetcher(),
        report_builder=report_builder,
    )


@pytest.fixture
def repository() -> InMemorySubjectRepository:
    return InMemorySubjectRepository()
