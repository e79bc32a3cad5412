"""Trigger-code matching and action condition evaluation.

Codes are compared as ``system|code`` strings by exact equality. Records are
FHIR-shaped dictionaries; codes are read from ``code``,
``valueCodeableConcept`` and ``reasonCode`` elements, each of which may be a
CodeableConcept or a list of them.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .contracts import TriggerMatchStatus

logger = logging.getLogger(__name__)

CODED_ELEMENTS = ("code", "valueCodeableConcept", "reasonCode")

ClinicalData = Mapping[str, Sequence[Mapping[str, Any]]]


class ConditionKind(str, Enum):
    TRIGGER_CODES = "TRIGGER_CODES"
    RESOURCE_PRESENT = "RESOURCE_PRESENT"


class TriggerDefinition(BaseModel):
    """Value set of reportable trigger codes and where to look for them."""

    model_config = ConfigDict(frozen=True)

    resource_types: tuple[str, ...] = ("Condition", "Observation")
    codes: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("codes")
    @classmethod
    def _check_codes(cls, codes: frozenset[str]) -> frozenset[str]:
        for code in codes:
            if "|" not in code:
                raise ValueError(f"Trigger code must be 'system|code': {code!r}")
        return codes


class Condition(BaseModel):
    """Predicate an action requires before it does any work."""

    model_config = ConfigDict(frozen=True)

    kind: ConditionKind
    resource_types: tuple[str, ...] = ()
    codes: frozenset[str] = Field(default_factory=frozenset)

    def required_types(self, trigger: TriggerDefinition) -> set[str]:
        if self.resource_types:
            return set(self.resource_types)
        if self.kind == ConditionKind.TRIGGER_CODES:
            return set(trigger.resource_types)
        return set()


def _iter_concepts(element: Any) -> Iterator[Mapping[str, Any]]:
    if isinstance(element, Mapping):
        yield element
    elif isinstance(element, list):
        for item in element:
            if isinstance(item, Mapping):
                yield item


def extract_codes(record: Mapping[str, Any]) -> set[str]:
    """Return every ``system|code`` pair found on ``record``."""
    found: set[str] = set()
    for element_name in CODED_ELEMENTS:
        for concept in _iter_concepts(record.get(element_name)):
            for coding in concept.get("coding", []) or []:
                system = coding.get("system")
                code = coding.get("code")
                if system and code:
                    found.add(f"{system}|{code}")
    return found


def _records_of(data: ClinicalData, resource_types: Iterable[str]) -> Iterator[Mapping[str, Any]]:
    for resource_type in resource_types:
        yield from data.get(resource_type, ())


def match_codes(
    data: ClinicalData, resource_types: Iterable[str], codes: Iterable[str]
) -> TriggerMatchStatus:
    """Match ``codes`` against every record of the given types."""
    wanted = set(codes)
    matched: set[str] = set()
    if wanted:
        for record in _records_of(data, resource_types):
            matched |= extract_codes(record) & wanted
    return TriggerMatchStatus(matched=bool(matched), matched_codes=matched)


def match_trigger_codes(
    data: ClinicalData, trigger: TriggerDefinition
) -> TriggerMatchStatus:
    status = match_codes(data, trigger.resource_types, trigger.codes)
    logger.info(
        f"Trigger match: matched={status.matched} codes={sorted(status.matched_codes)}"
    )
    return status


def evaluate_condition(
    condition: Condition, data: ClinicalData, trigger: TriggerDefinition
) -> bool:
    types = condition.required_types(trigger)
    if condition.kind == ConditionKind.RESOURCE_PRESENT:
        return any(True for _ in _records_of(data, types))
    codes = condition.codes or trigger.codes
    return match_codes(data, types, codes).matched


def evaluate_conditions(
    conditions: Sequence[Condition],
    data: ClinicalData,
    trigger: TriggerDefinition,
) -> bool:
    """True when every condition holds; an empty list always holds."""
    for condition in conditions:
        if not evaluate_condition(condition, data, trigger):
            logger.debug(f"Condition {condition.kind.value} not met")
            return False
    return True


def required_types(
    conditions: Sequence[Condition], trigger: TriggerDefinition
) -> set[str]:
    types: set[str] = set()
    for condition in conditions:
        types |= condition.required_types(trigger)
    return types

