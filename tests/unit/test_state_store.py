import pytest

from ecrflow.contracts import ExecutionState, JobStatus, TriggerMatchStatus
from ecrflow.errors import SubjectNotFoundError, UnrecoverablePersistenceError
from ecrflow.state import ExecutionStateStore, deserialize_state, serialize_state

from conftest import COVID_CODE, OTHER_CODE, make_subject


def _sample_state() -> ExecutionState:
    state = ExecutionState(
        trigger_match=TriggerMatchStatus(
            matched=True, matched_codes={OTHER_CODE, COVID_CODE}
        )
    )
    state.ensure_status("match-trigger").mark_completed(None, produced=True)
    state.ensure_status("create-eicr").mark_scheduled()
    state.ensure_status("close-out-eicr")
    return state


def _state_with(*entries) -> ExecutionState:
    state = ExecutionState()
    for action_id, mark in entries:
        status = state.ensure_status(action_id)
        if mark == "scheduled":
            status.mark_scheduled()
        elif mark == "completed":
            status.mark_completed("eicr-1", produced=True)
        elif mark == "negative":
            status.mark_completed(None, produced=False)
    return state


ROUND_TRIP_STATES = {
    "sample": _sample_state(),
    "empty": ExecutionState(),
    "every-job-status": _state_with(
        ("a", "not-started"), ("b", "scheduled"), ("c", "completed")
    ),
    "negative-completion": _state_with(("create-eicr", "negative")),
    "unmatched-trigger": ExecutionState(
        trigger_match=TriggerMatchStatus(matched=False)
    ),
    "non-ascii-ids": _state_with(("créer-eicr", "completed"), ("報告", "scheduled")),
}


@pytest.mark.parametrize(
    "state", list(ROUND_TRIP_STATES.values()), ids=list(ROUND_TRIP_STATES)
)
def test_round_trip_is_byte_identical(state):
    blob = serialize_state(state)
    restored = deserialize_state(blob)
    assert restored == state
    assert serialize_state(restored) == blob


def test_empty_blob_is_fresh_state():
    assert deserialize_state("") == ExecutionState()
    assert deserialize_state(None) == ExecutionState()


@pytest.mark.parametrize("blob", ["{not json", '{"statuses": {"x": {"job_status": "DONE"}}}'])
def test_corrupt_blob_raises(blob):
    with pytest.raises(UnrecoverablePersistenceError):
        deserialize_state(blob)


@pytest.mark.asyncio
async def test_store_save_and_load(repository):
    await repository.create_subject(make_subject())
    store = ExecutionStateStore(repository)

    assert await store.load("enc-1") == ExecutionState()
    await store.save("enc-1", _sample_state())

    state = await store.load("enc-1")
    assert state.job_status("create-eicr") == JobStatus.SCHEDULED
    assert state.trigger_match.matched_codes == {COVID_CODE, OTHER_CODE}

    subject, _ = await store.load_subject("enc-1")
    assert subject.patient_id == "patient-1"


@pytest.mark.asyncio
async def test_store_missing_subject(repository):
    store = ExecutionStateStore(repository)
    with pytest.raises(SubjectNotFoundError):
        await store.load("missing")
    with pytest.raises(SubjectNotFoundError):
        await store.save("missing", ExecutionState())


@pytest.mark.asyncio
async def test_corrupt_stored_state_surfaces(repository):
    await repository.create_subject(make_subject())
    await repository.update_status("enc-1", "garbage")
    store = ExecutionStateStore(repository)

    with pytest.raises(UnrecoverablePersistenceError):
        await store.load("enc-1")
