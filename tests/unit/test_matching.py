import pytest
from pydantic import ValidationError

from ecrflow.matching import (
    Condition,
    ConditionKind,
    TriggerDefinition,
    evaluate_conditions,
    extract_codes,
    match_trigger_codes,
    required_types,
)

from conftest import COVID_CODE, OTHER_CODE, condition_record

LOINC_CODE = "http://loinc.org|94500-6"


def _observation(code: str) -> dict:
    system, value = code.split("|")
    return {
        "resourceType": "Observation",
        "code": {"coding": [{"system": "http://loinc.org", "code": "1-1"}]},
        "valueCodeableConcept": {"coding": [{"system": system, "code": value}]},
    }


def test_extract_codes_reads_every_coded_element():
    record = {
        "code": {"coding": [{"system": "a", "code": "1"}]},
        "valueCodeableConcept": {"coding": [{"system": "b", "code": "2"}]},
        "reasonCode": [
            {"coding": [{"system": "c", "code": "3"}, {"code": "no-system"}]}
        ],
    }
    assert extract_codes(record) == {"a|1", "b|2", "c|3"}
    assert extract_codes({"resourceType": "Condition"}) == set()


def test_match_trigger_codes():
    trigger = TriggerDefinition(
        resource_types=("Condition", "Observation"), codes={COVID_CODE, LOINC_CODE}
    )
    data = {
        "Condition": [condition_record(COVID_CODE), condition_record(OTHER_CODE)],
        "Observation": [_observation(LOINC_CODE)],
    }

    match = match_trigger_codes(data, trigger)

    assert match.matched is True
    assert match.matched_codes == {COVID_CODE, LOINC_CODE}


def test_match_ignores_untracked_resource_types():
    trigger = TriggerDefinition(resource_types=("Condition",), codes={LOINC_CODE})
    match = match_trigger_codes({"Observation": [_observation(LOINC_CODE)]}, trigger)
    assert match.matched is False
    assert match.matched_codes == set()


def test_trigger_codes_must_name_a_system():
    with pytest.raises(ValidationError):
        TriggerDefinition(codes={"840539006"})


def test_conditions():
    trigger = TriggerDefinition(resource_types=("Condition",), codes={COVID_CODE})
    data = {"Condition": [condition_record(COVID_CODE)]}
    trigger_codes = Condition(kind=ConditionKind.TRIGGER_CODES)
    other_codes = Condition(kind=ConditionKind.TRIGGER_CODES, codes={OTHER_CODE})
    has_observation = Condition(
        kind=ConditionKind.RESOURCE_PRESENT, resource_types=("Observation",)
    )

    assert evaluate_conditions([], {}, trigger) is True
    assert evaluate_conditions([trigger_codes], data, trigger) is True
    assert evaluate_conditions([trigger_codes, other_codes], data, trigger) is False
    assert evaluate_conditions([has_observation], data, trigger) is False
    assert evaluate_conditions(
        [has_observation], {"Observation": [_observation(LOINC_CODE)]}, trigger
    ) is True


def test_required_types():
    trigger = TriggerDefinition(resource_types=("Condition",), codes={COVID_CODE})
    conditions = [
        Condition(kind=ConditionKind.TRIGGER_CODES),
        Condition(kind=ConditionKind.RESOURCE_PRESENT, resource_types=("Encounter",)),
    ]
    assert required_types(conditions, trigger) == {"Condition", "Encounter"}
    assert required_types([], trigger) == set()
