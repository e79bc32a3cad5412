"""Completion bodies for each action kind.

Every kind shares the ECA protocol in ``base``; they differ only in what
happens once the action is allowed to complete.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Dict

from ..contracts import ActionType, ExecutionState
from ..persistence import SubjectRecord

if TYPE_CHECKING:
    from .base import Action, ActionContext

logger = logging.getLogger(__name__)

Finalizer = Callable[
    ["Action", SubjectRecord, ExecutionState, "ActionContext"], Awaitable[None]
]


async def complete_match_trigger(
    action: "Action",
    subject: SubjectRecord,
    state: ExecutionState,
    context: "ActionContext",
) -> None:
    """Record the trigger-code match; ``completed`` mirrors the match."""
    match = await context.recheck_trigger(subject)
    state.trigger_match = match
    state.ensure_status(action.action_id).mark_completed(
        None, produced=match.has_matches
    )


async def complete_not_applicable(
    action: "Action",
    subject: SubjectRecord,
    state: ExecutionState,
    context: "ActionContext",
) -> None:
    """Close the action with the negative artifact marker."""
    state.trigger_match = await context.recheck_trigger(subject)
    state.ensure_status(action.action_id).mark_completed(None, produced=False)


async def complete_report(
    action: "Action",
    subject: SubjectRecord,
    state: ExecutionState,
    context: "ActionContext",
) -> None:
    """Re-check trigger codes, then build the report if they still match."""
    match = await context.recheck_trigger(subject)
    state.trigger_match = match
    status = state.ensure_status(action.action_id)

    if not match.has_matches:
        logger.info(
            f"Trigger codes did not match, {action.kind.value} will not produce a report"
        )
        status.mark_completed(None, produced=False)
        return

    result = await context.build_report(subject, match)
    if not result.produced:
        logger.warning(
            f"No report produced by {action.action_id} for subject="
            f"{subject.subject_id} ({result.status.value}: {result.error})"
        )
        status.mark_completed(None, produced=False)
        return

    artifact = result.artifact
    status.mark_completed(artifact.artifact_id, produced=True)
    context.write_artifact(subject, action.kind, artifact)


FINALIZERS: Dict[ActionType, Finalizer] = {
    ActionType.MATCH_TRIGGER: complete_match_trigger,
    ActionType.CREATE_EICR: complete_report,
    ActionType.CLOSE_OUT_EICR: complete_report,
}
