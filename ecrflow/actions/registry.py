"""Read-only registry of the actions that make up a workflow."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional

import yaml
from pydantic import ValidationError

from ..errors import WorkflowDefinitionError
from ..matching import TriggerDefinition
from .base import Action

logger = logging.getLogger(__name__)


class ActionRegistry:
    """Immutable action graph, validated once when it is built.

    Validation rejects duplicate ids, edges to unknown actions, edges from an
    action to itself and cycles among ``AFTER`` edges.
    """

    def __init__(
        self,
        actions: Iterable[Action],
        trigger: Optional[TriggerDefinition] = None,
    ) -> None:
        by_id: dict[str, Action] = {}
        for action in actions:
            if action.action_id in by_id:
                raise WorkflowDefinitionError(
                    f"Duplicate action id: {action.action_id}"
                )
            by_id[action.action_id] = action

        for action in by_id.values():
            for edge in action.related_actions:
                if edge.target == action.action_id:
                    raise WorkflowDefinitionError(
                        f"Action {action.action_id} cannot relate to itself"
                    )
                if edge.target not in by_id:
                    raise WorkflowDefinitionError(
                        f"Action {action.action_id} relates to unknown action {edge.target}"
                    )

        self._actions: Mapping[str, Action] = MappingProxyType(by_id)
        self._trigger = trigger or TriggerDefinition()
        self._order = self._sort(by_id)
        dependents: dict[str, list[Action]] = {action_id: [] for action_id in by_id}
        for action in self._order:
            for target in action.after_targets():
                dependents[target].append(action)
        self._dependents = MappingProxyType(
            {key: tuple(value) for key, value in dependents.items()}
        )

    @staticmethod
    def _sort(by_id: Mapping[str, Action]) -> tuple[Action, ...]:
        """Order actions so each comes after every ``AFTER`` target.

        Ties keep definition order.
        """
        remaining = {
            action_id: set(action.after_targets()) for action_id, action in by_id.items()
        }
        ready = deque(a for a, deps in remaining.items() if not deps)
        order: list[Action] = []
        while ready:
            action_id = ready.popleft()
            order.append(by_id[action_id])
            del remaining[action_id]
            for other_id in by_id:
                deps = remaining.get(other_id)
                if deps and action_id in deps:
                    deps.discard(action_id)
                    if not deps:
                        ready.append(other_id)
        if remaining:
            raise WorkflowDefinitionError(
                f"Cycle among AFTER relationships: {', '.join(sorted(remaining))}"
            )
        return tuple(order)

    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActionRegistry":
        """Build a registry from a parsed workflow definition."""
        if not isinstance(data, Mapping):
            raise WorkflowDefinitionError("Workflow definition must be a mapping")
        try:
            trigger = TriggerDefinition(**(data.get("trigger") or {}))
            actions = [Action.model_validate(item) for item in data.get("actions") or []]
        except (ValidationError, TypeError) as e:
            raise WorkflowDefinitionError(f"Invalid workflow definition: {e}") from e
        return cls(actions, trigger)

    @property
    def trigger(self) -> TriggerDefinition:
        return self._trigger

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(self._actions)

    def get(self, action_id: str) -> Action:
        try:
            return self._actions[action_id]
        except KeyError:
            raise KeyError(f"Unknown action: {action_id}") from None

    def topological_order(self) -> tuple[Action, ...]:
        return self._order

    def dependents_of(self, action_id: str) -> tuple[Action, ...]:
        """Actions with an ``AFTER`` edge pointing at ``action_id``."""
        self.get(action_id)
        return self._dependents[action_id]

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._actions

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions.values())

    def __len__(self) -> int:
        return len(self._actions)


def load_workflow(path: str | Path) -> ActionRegistry:
    """Load and validate a workflow definition from a YAML file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise WorkflowDefinitionError(f"Unable to parse {path}: {e}") from e
    registry = ActionRegistry.from_dict(data)
    logger.info(f"Loaded {len(registry)} actions from {path}")
    return registry
