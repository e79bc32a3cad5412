"""Example running the bundled workflow against an in-memory subject.

Run from the repository root:

    python guides/local_workflow_example.py
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from ecrflow import (
    ScheduledJobWorker,
    SubjectRecord,
    WorkflowEngine,
    WorkflowEvent,
    load_workflow,
)
from ecrflow.collaborators import CachedDataFetcher, SummaryReportBuilder
from ecrflow.persistence import InMemorySubjectRepository
from ecrflow.scheduling import InMemoryScheduler


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now


async def main():
    logging.basicConfig(level=logging.INFO)
    clock = ManualClock()
    scheduler = InMemoryScheduler(clock=clock)
    engine = WorkflowEngine(
        registry=load_workflow("workflow.yaml"),
        repository=InMemorySubjectRepository(),
        scheduler=scheduler,
        fetcher=CachedDataFetcher(),
        report_builder=SummaryReportBuilder(),
    )
    await engine.register_subject(
        SubjectRecord(
            subject_id="enc-123",
            patient_id="patient-9",
            start_date=clock.now,
            clinical_data={
                "Condition": [
                    {
                        "resourceType": "Condition",
                        "code": {
                            "coding": [
                                {"system": "http://snomed.info/sct", "code": "840539006"}
                            ]
                        },
                    }
                ]
            },
        )
    )

    print(await engine.handle_event("enc-123", WorkflowEvent.SOF_LAUNCH))

    # Jump past the create and close-out timers
    worker = ScheduledJobWorker(engine, scheduler)
    for hours in (1, 72):
        clock.now += timedelta(hours=hours)
        await worker.run_due_jobs()

    state = await engine.load_state("enc-123")
    for action_id, status in state.statuses.items():
        print(action_id, status.job_status.value, status.artifact_id)


if __name__ == "__main__":
    asyncio.run(main())
