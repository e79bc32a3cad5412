"""ecrflow: Event-Condition-Action engine for electronic case reporting."""

from .actions import Action, ActionContext, ActionRegistry, load_workflow
from .config import EcrflowConfig, load_config
from .contracts import (
    ActionOutcome,
    ActionStatus,
    ActionType,
    Duration,
    ExecutionState,
    JobStatus,
    RelatedAction,
    Relationship,
    ScheduledJob,
    TimingSchedule,
    TriggerMatchStatus,
    WorkflowEvent,
)
from .engine import WorkflowEngine, create_engine
from .persistence import SubjectRecord, get_repository
from .scheduling import get_scheduler
from .state import ExecutionStateStore
from .worker import ScheduledJobWorker

__version__ = "0.1.0"
__all__ = [
    "Action",
    "ActionContext",
    "ActionOutcome",
    "ActionRegistry",
    "ActionStatus",
    "ActionType",
    "Duration",
    "EcrflowConfig",
    "ExecutionState",
    "ExecutionStateStore",
    "JobStatus",
    "RelatedAction",
    "Relationship",
    "ScheduledJob",
    "ScheduledJobWorker",
    "SubjectRecord",
    "TimingSchedule",
    "TriggerMatchStatus",
    "WorkflowEngine",
    "WorkflowEvent",
    "create_engine",
    "get_repository",
    "get_scheduler",
    "load_config",
    "load_workflow",
]
