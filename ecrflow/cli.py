"""Command line interface for running ecrflow workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from ecrflow import (
    ScheduledJobWorker,
    SubjectRecord,
    WorkflowEvent,
    create_engine,
    get_repository,
    load_config,
    load_workflow,
)
from ecrflow.config import EcrflowConfig
from ecrflow.engine import WorkflowEngine
from ecrflow.errors import ConfigurationError, EcrflowError, WorkflowDefinitionError
from ecrflow.persistence import InMemorySubjectRepository
from ecrflow.scheduling import InMemoryScheduler
from ecrflow.state import deserialize_state

app = typer.Typer(help="CLI for ecrflow case reporting workflows")

# Command groups
subject_app = typer.Typer(help="Commands for managing subjects")
workflow_app = typer.Typer(help="Commands for inspecting workflow definitions")

app.add_typer(subject_app, name="subject")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """ecrflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@subject_app.command("register")
def subject_register(record_path: Path) -> None:
    """
    Register a subject record from a JSON file.

    The file holds the subject fields (subject_id, patient_id, encounter_id,
    start_date, end_date) and optionally ``clinical_data`` keyed by resource
    type.

    Example:
        ecrflow subject register ./encounter-123.json
    """
    try:
        record = SubjectRecord.model_validate_json(record_path.read_text())
    except (OSError, ValidationError) as exc:
        typer.secho(f"Unable to read subject record: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    repo = get_repository()
    try:
        asyncio.run(repo.create_subject(record))
    except ValueError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Registered subject {record.subject_id}")


@subject_app.command("list")
def subject_list() -> None:
    """
    List all subjects with the job status of each recorded action.

    Example:
        ecrflow subject list
        # Output: enc-123    patient-9    create-eicr=SCHEDULED
    """
    repo = get_repository()
    subjects = asyncio.run(repo.list_subjects())
    if not subjects:
        typer.echo("No subjects found")
        return
    for subject in subjects:
        try:
            state = deserialize_state(subject.status)
        except EcrflowError:
            typer.echo(f"{subject.subject_id}\t{subject.patient_id}\t<unreadable state>")
            continue
        statuses = ", ".join(
            f"{action_id}={status.job_status.value}"
            for action_id, status in state.statuses.items()
        )
        typer.echo(f"{subject.subject_id}\t{subject.patient_id}\t{statuses}")


@subject_app.command("show")
def subject_show(subject_id: str) -> None:
    """
    Show the execution state of a single subject.

    Example:
        ecrflow subject show enc-123
        # Output: Subject enc-123 (patient patient-9)
        #         Trigger match: True [http://snomed.info/sct|840539006]
        #         - match-trigger: COMPLETED
        #         - create-eicr: COMPLETED artifact=5b1f...
    """
    repo = get_repository()
    subject = asyncio.run(repo.get_subject(subject_id))
    if subject is None:
        typer.echo("Subject not found")
        raise typer.Exit(code=1)
    typer.echo(f"Subject {subject.subject_id} (patient {subject.patient_id})")
    try:
        state = deserialize_state(subject.status)
    except EcrflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    match = state.trigger_match
    typer.echo(f"Trigger match: {match.matched} {sorted(match.matched_codes)}")
    for action_id, status in state.statuses.items():
        typer.echo(
            f"- {action_id}: {status.job_status.value}"
            + (f" artifact={status.artifact_id}" if status.artifact_id else "")
        )


def _build_engine(config: EcrflowConfig) -> WorkflowEngine:
    """Create the engine, refusing setups that would lose scheduled jobs.

    Each CLI command is its own process, so an in-memory scheduler forgets
    its jobs on exit while a persistent store keeps the SCHEDULED status.
    """
    engine = create_engine(config)
    if isinstance(engine.scheduler, InMemoryScheduler) and not isinstance(
        engine.store.repository, InMemorySubjectRepository
    ):
        raise ConfigurationError(
            "The inmemory scheduler cannot be used with a persistent database; "
            "set scheduler.backend to redis"
        )
    return engine


@app.command("run")
def run(
    subject_id: str,
    action: Optional[str] = typer.Option(None, help="Run only this action"),
    event: WorkflowEvent = typer.Option(
        WorkflowEvent.INBOUND_EVENT, help="Triggering event"
    ),
) -> None:
    """
    Run the workflow (or a single action) for a subject.

    Example:
        ecrflow run enc-123
        ecrflow run enc-123 --action close-out-eicr --event SCHEDULED_JOB
    """
    try:
        engine = _build_engine(load_config())
        if action:
            outcomes = {
                action: asyncio.run(engine.run_action(subject_id, action, event))
            }
        else:
            outcomes = asyncio.run(engine.handle_event(subject_id, event))
    except (EcrflowError, KeyError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    for action_id, outcome in outcomes.items():
        typer.echo(f"{action_id}\t{outcome.value}")


@app.command("worker")
def worker(lifespan: Optional[float] = None) -> None:
    """
    Run a worker that fires scheduled jobs back into the engine.

    Example:
        ecrflow worker
        ecrflow worker --lifespan 300
    """
    config = load_config()
    try:
        engine = _build_engine(config)
    except EcrflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    job_worker = ScheduledJobWorker(
        engine, engine.scheduler, poll_interval=config.scheduler.poll_interval
    )
    typer.echo("Starting scheduled job worker")
    asyncio.run(job_worker.start(lifespan=lifespan))


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """Check that a workflow definition file forms a valid action graph."""
    try:
        registry = load_workflow(path)
    except (OSError, WorkflowDefinitionError) as exc:
        typer.secho(f"Invalid workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Workflow valid: {len(registry)} actions")


@workflow_app.command("show")
def workflow_show(path: Path) -> None:
    """
    Print actions in execution order with their edges and timing.

    Example:
        ecrflow workflow show ./workflow.yaml
        # Output: create-eicr (CREATE_EICR)
        #           AFTER match-trigger
        #           timing: {"offset": {"value": 1.0, "unit": "h"}, ...}
    """
    try:
        registry = load_workflow(path)
    except (OSError, WorkflowDefinitionError) as exc:
        typer.secho(f"Invalid workflow: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Trigger codes: {', '.join(sorted(registry.trigger.codes)) or '(none)'}")
    for action in registry.topological_order():
        typer.echo(f"{action.action_id} ({action.kind.value})")
        for edge in action.related_actions:
            delay = f" delay={edge.delay}" if edge.delay else ""
            typer.echo(f"  {edge.relationship.value} {edge.target}{delay}")
        for timing in action.timing:
            typer.echo(f"  timing: {json.dumps(timing.model_dump(mode='json'))}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
