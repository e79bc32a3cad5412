"""Scheduler tests."""

import uuid
from datetime import datetime, timedelta

import pytest

from ecrflow.contracts import ActionType, Duration, TimingSchedule
from ecrflow.scheduling.inmemory import InMemoryScheduler

from conftest import START


@pytest.mark.asyncio
async def test_duration_fires_relative_to_now(scheduler, clock):
    clock.advance(30)
    jobs = await scheduler.schedule_job(
        "enc-1", "close-out-eicr", ActionType.CLOSE_OUT_EICR, Duration.model_validate("10s")
    )

    assert len(jobs) == 1
    assert jobs[0].fire_at == START + timedelta(seconds=40)
    assert jobs[0].subject_id == "enc-1"
    assert jobs[0].action_kind == ActionType.CLOSE_OUT_EICR


@pytest.mark.asyncio
async def test_timing_uses_reference_time(scheduler):
    timing = TimingSchedule(offset=Duration.model_validate("2h"))
    jobs = await scheduler.schedule_job(
        "enc-1", "create-eicr", ActionType.CREATE_EICR, timing, START - timedelta(hours=1)
    )
    assert [j.fire_at for j in jobs] == [START + timedelta(hours=1)]


@pytest.mark.asyncio
async def test_timing_in_the_past_fires_now(scheduler):
    timing = TimingSchedule(offset=Duration.model_validate("1h"))
    jobs = await scheduler.schedule_job(
        "enc-1", "create-eicr", ActionType.CREATE_EICR, timing, START - timedelta(days=1)
    )
    assert [j.fire_at for j in jobs] == [START]


@pytest.mark.asyncio
async def test_timing_repeats(scheduler):
    timing = TimingSchedule(
        offset=Duration.model_validate("1h"),
        max_repeat=3,
        period=Duration.model_validate("1d"),
    )
    jobs = await scheduler.schedule_job(
        "enc-1", "create-eicr", ActionType.CREATE_EICR, timing
    )
    first = START + timedelta(hours=1)
    assert [j.fire_at for j in jobs] == [
        first,
        first + timedelta(days=1),
        first + timedelta(days=2),
    ]
    assert len({j.job_id for j in jobs}) == 3


def test_naive_reference_time_is_utc(scheduler):
    naive = datetime(2024, 3, 1, 10, 0)
    times = scheduler.compute_fire_times(TimingSchedule(), naive)
    assert times == [START + timedelta(hours=1)]


@pytest.mark.asyncio
async def test_due_jobs_claims_each_job_once(scheduler, clock):
    await scheduler.schedule_job(
        "enc-1", "a", ActionType.CREATE_EICR, Duration.model_validate("10s")
    )
    await scheduler.schedule_job(
        "enc-1", "b", ActionType.CLOSE_OUT_EICR, Duration.model_validate("20s")
    )

    assert await scheduler.due_jobs() == []

    clock.advance(10)
    due = await scheduler.due_jobs()
    assert [j.action_id for j in due] == ["a"]
    assert await scheduler.due_jobs() == []

    pending = await scheduler.pending_jobs()
    assert [j.action_id for j in pending] == ["b"]

    due = await scheduler.due_jobs(now=START + timedelta(minutes=1))
    assert [j.action_id for j in due] == ["b"]
    assert await scheduler.pending_jobs() == []


@pytest.mark.asyncio
async def test_requeue_and_release_return_claimed_jobs(scheduler, clock):
    await scheduler.schedule_job(
        "enc-1", "a", ActionType.CREATE_EICR, Duration.model_validate("10s")
    )
    await scheduler.schedule_job(
        "enc-1", "b", ActionType.CLOSE_OUT_EICR, Duration.model_validate("10s")
    )
    clock.advance(10)
    first, second = await scheduler.due_jobs()

    retry = await scheduler.requeue(first, timedelta(seconds=4))
    await scheduler.release([second])

    assert retry.job_id == first.job_id
    assert retry.attempt == 1
    assert retry.fire_at == START + timedelta(seconds=14)
    pending = await scheduler.pending_jobs()
    assert [(j.action_id, j.attempt) for j in pending] == [("b", 0), ("a", 1)]
    assert [j.action_id for j in await scheduler.due_jobs()] == ["b"]


@pytest.mark.asyncio
async def test_pending_jobs_sorted_by_fire_time():
    scheduler = InMemoryScheduler(clock=lambda: START)
    for seconds, action_id in [(30, "late"), (5, "early"), (15, "middle")]:
        await scheduler.schedule_job(
            "enc-1", action_id, ActionType.CREATE_EICR, Duration(value=seconds)
        )
    pending = await scheduler.pending_jobs()
    assert [j.action_id for j in pending] == ["early", "middle", "late"]


@pytest.mark.asyncio
async def test_redis_scheduler_round_trip(clock):
    """Exercise the Redis scheduler when a server is reachable."""
    try:
        from ecrflow.scheduling.redis import RedisScheduler

        scheduler = RedisScheduler(key=f"ecrflow:test:{uuid.uuid4()}", clock=clock)
        await scheduler.connect()
    except Exception:
        pytest.skip("Redis server not available")

    try:
        await scheduler.schedule_job(
            "enc-1", "close-out-eicr", ActionType.CLOSE_OUT_EICR, Duration(value=10)
        )
        assert await scheduler.due_jobs() == []
        assert len(await scheduler.pending_jobs()) == 1

        clock.advance(10)
        due = await scheduler.due_jobs()
        assert [j.action_id for j in due] == ["close-out-eicr"]
        assert due[0].fire_at == START + timedelta(seconds=10)
        assert await scheduler.due_jobs() == []
    finally:
        await scheduler._redis.delete(scheduler.key)
        await scheduler.disconnect()


def test_redis_scheduler_defaults():
    from ecrflow.scheduling.redis import RedisScheduler

    scheduler = RedisScheduler()
    assert scheduler.host == "localhost"
    assert scheduler.port == 6379
    assert scheduler.key == "ecrflow:jobs"
