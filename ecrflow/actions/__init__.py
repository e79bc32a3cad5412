"""Action definitions and the action registry."""

from __future__ import annotations

from .base import Action, ActionContext, ActionResult
from .kinds import FINALIZERS
from .registry import ActionRegistry, load_workflow

__all__ = [
    "Action",
    "ActionContext",
    "ActionResult",
    "ActionRegistry",
    "FINALIZERS",
    "load_workflow",
]
