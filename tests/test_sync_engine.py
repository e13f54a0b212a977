import asyncio
import logging
from dataclasses import replace

import pytest
from sqlalchemy.exc import OperationalError

from focus_coach.models import (
    Collection,
    DailyTask,
    EntityType,
    Goal,
    Insert,
    Patch,
    RecurrenceType,
    RecurringTask,
    Remove,
)
from focus_coach.services.auth import Identity
from focus_coach.services.local_store import SYNC_STATE_KEY
from focus_coach.services.sync_engine import SyncEngine, SyncState

from conftest import FAST_SYNC


def _task_insert(day: int) -> Insert:
    return Insert(key=f"2024-03-{day:02d}", record=DailyTask(text=f"Focus {day}"))


async def _enabled(engine: SyncEngine) -> SyncEngine:
    await engine.initialize(periodic=False)
    engine.enable_sync()
    # Let the drain scheduled by enable_sync run against the empty queue.
    await asyncio.sleep(0.01)
    return engine


@pytest.mark.asyncio
async def test_enqueue_is_ignored_while_sync_disabled(sync_engine, queue):
    await sync_engine.initialize(periodic=False)

    assert sync_engine.enqueue(Collection.DAILY_TASKS, _task_insert(1)) is None
    assert queue.count() == 0
    await sync_engine.dispose()


@pytest.mark.asyncio
async def test_drain_pushes_operations_and_clears_queue(sync_engine, queue, remote):
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(2))

    report = await engine.drain()

    assert report.processed == 2
    assert queue.count() == 0
    rows = remote.collection(Collection.DAILY_TASKS).rows
    assert rows["2024-03-01"]["text"] == "Focus 1"
    state = engine.state
    assert state.pending_operations == 0
    assert state.last_sync_time is not None
    assert state.status == "synced"
    await engine.dispose()


@pytest.mark.asyncio
async def test_failed_update_commits_on_third_pass(sync_engine, queue, remote):
    gym = RecurringTask(
        id="r-gym", text="Gym", recurrence_type=RecurrenceType.WEEKLY, weekly_days=[1, 3, 5]
    )
    recurring = remote.collection(Collection.RECURRING_TASKS)
    recurring.rows["r-gym"] = gym.model_dump(mode="json")
    recurring.fail_next = 2

    engine = await _enabled(sync_engine)
    op = engine.enqueue(Collection.RECURRING_TASKS, Patch(key="r-gym", fields={"text": "Gym 6am"}))

    await engine.drain()
    assert queue.get(op.operation_id).retry_count == 1
    await engine.drain()
    assert queue.get(op.operation_id).retry_count == 2
    await engine.drain()

    assert queue.count() == 0
    assert engine.state.pending_operations == 0
    assert recurring.rows["r-gym"]["text"] == "Gym 6am"
    await engine.dispose()


@pytest.mark.asyncio
async def test_operation_abandoned_after_retry_ceiling(sync_engine, queue, remote):
    remote.collection(Collection.QUOTES).fail_next = 10
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.QUOTES, Remove(key="2024-03-01"))

    reports = [await engine.drain() for _ in range(3)]

    assert [r.failed for r in reports] == [1, 1, 1]
    assert reports[-1].abandoned == 1
    assert queue.count() == 0
    assert len(remote.collection(Collection.QUOTES).calls) == 3
    await engine.dispose()


@pytest.mark.asyncio
async def test_going_offline_mid_drain_keeps_remaining_operations(
    sync_engine, queue, remote, network
):
    tasks = remote.collection(Collection.DAILY_TASKS)

    def drop_after_first_batch(op, key):
        if len(tasks.calls) == FAST_SYNC.batch_size:
            network.set_online(False)

    tasks.on_call = drop_after_first_batch
    engine = await _enabled(sync_engine)
    for day in range(1, 14):
        engine.enqueue(Collection.DAILY_TASKS, _task_insert(day))
    remaining_ids = [op.operation_id for op in queue.pending()][FAST_SYNC.batch_size :]

    report = await engine.drain()

    assert report.interrupted is True
    assert report.processed == FAST_SYNC.batch_size
    state = engine.state
    assert state.is_syncing is False
    assert state.is_online is False
    assert state.status == "offline"
    assert state.last_sync_time is not None
    left = queue.pending()
    assert [op.operation_id for op in left] == remaining_ids
    assert all(op.retry_count == 0 for op in left)
    await engine.dispose()


@pytest.mark.asyncio
async def test_manual_sync_while_syncing_is_a_noop(sync_engine, queue, remote):
    tasks = remote.collection(Collection.DAILY_TASKS)
    tasks.gate = asyncio.Event()
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(2))

    running = asyncio.ensure_future(engine.drain())
    await asyncio.sleep(0.01)
    assert engine.state.is_syncing is True
    before = engine.state

    report = await engine.manual_sync()

    assert report.processed == 0
    assert queue.count() == 2
    assert engine.state == before

    tasks.gate.set()
    await running
    assert queue.count() == 0
    await engine.dispose()


@pytest.mark.asyncio
async def test_writes_within_debounce_window_coalesce(sync_engine, queue, monkeypatch):
    engine = await _enabled(sync_engine)
    calls = []
    original = engine.drain

    async def counting_drain():
        calls.append(1)
        return await original()

    monkeypatch.setattr(engine, "drain", counting_drain)

    for day in range(1, 8):
        engine.enqueue(Collection.DAILY_TASKS, _task_insert(day))
    await asyncio.sleep(FAST_SYNC.debounce_sec * 4)

    assert len(calls) == 1
    assert queue.count() == 0
    await engine.dispose()


@pytest.mark.asyncio
async def test_reconnect_triggers_drain(sync_engine, queue, network):
    network.set_online(False)
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))

    await asyncio.sleep(FAST_SYNC.debounce_sec * 2)
    assert queue.count() == 1
    assert engine.state.status == "offline"

    network.set_online(True)
    await asyncio.sleep(FAST_SYNC.reconnect_delay_sec + 0.05)

    assert queue.count() == 0
    assert engine.state.status == "synced"
    await engine.dispose()


@pytest.mark.asyncio
async def test_no_drain_without_identity(sync_engine, queue, identity):
    engine = await _enabled(sync_engine)
    identity.sign_out()
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))

    report = await engine.drain()

    assert report.processed == 0
    assert queue.count() == 1
    await engine.dispose()


@pytest.mark.asyncio
async def test_systemic_failure_sets_error_and_keeps_queue(sync_engine, queue, monkeypatch):
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(queue, "pending", broken)
    await engine.drain()

    state = engine.state
    assert state.has_error is True
    assert "disk I/O error" in state.error_message
    assert state.is_syncing is False
    assert state.status == "error"
    assert queue.count() == 1

    monkeypatch.undo()
    await engine.manual_sync()
    assert engine.state.has_error is False
    assert queue.count() == 0
    await engine.dispose()


@pytest.mark.asyncio
async def test_first_create_writes_mapping_and_later_ops_use_it(sync_engine, mappings, remote):
    engine = await _enabled(sync_engine)
    goal = Goal(id=4, text="Learn Spanish")
    engine.enqueue(Collection.GOALS, Insert(key="4", record=goal), local_id=4)
    await engine.drain()

    remote_id = mappings.get_remote_id(4, EntityType.GOAL)
    goals = remote.collection(Collection.GOALS)
    assert remote_id in goals.rows
    assert goals.rows[remote_id]["text"] == "Learn Spanish"

    engine.enqueue(Collection.GOALS, Patch(key="4", fields={"progress": 30}), local_id=4)
    engine.enqueue(Collection.GOALS, Remove(key="4"), local_id=4)
    await engine.drain()

    assert goals.calls[-2:] == [("update", remote_id), ("delete", remote_id)]
    assert remote_id not in goals.rows
    await engine.dispose()


@pytest.mark.asyncio
async def test_unmapped_goal_patch_fails_and_delete_is_noop(sync_engine, queue, remote):
    engine = await _enabled(sync_engine)
    patch = engine.enqueue(Collection.GOALS, Patch(key="8", fields={"progress": 50}), local_id=8)
    engine.enqueue(Collection.GOALS, Remove(key="9"), local_id=9)

    report = await engine.drain()

    assert report.processed == 1
    assert report.failed == 1
    assert [op.operation_id for op in queue.pending()] == [patch.operation_id]
    assert remote.collection(Collection.GOALS).calls == []
    await engine.dispose()


@pytest.mark.asyncio
async def test_state_is_persisted_without_transient_fields(sync_engine, kv):
    states = []
    engine = await _enabled(sync_engine)
    unsubscribe = engine.changes.subscribe(states.append)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))
    unsubscribe()
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(2))

    stored = kv.get(SYNC_STATE_KEY)
    assert stored["sync_enabled"] is True
    assert stored["pending_operations"] == 2
    assert "is_online" not in stored and "is_syncing" not in stored
    assert len(states) == 1
    assert SyncState.from_persisted(stored).pending_operations == 2
    await engine.dispose()


@pytest.mark.asyncio
async def test_initialize_restores_state_and_drains_leftovers(
    queue, kv, mappings, remote, identity, network
):
    first = SyncEngine(queue, kv, mappings, remote, identity, network, settings=FAST_SYNC)
    await first.initialize(periodic=False)
    first.enable_sync()
    first.enqueue(Collection.DAILY_TASKS, _task_insert(1))
    await first.dispose()
    assert queue.count() == 1

    second = SyncEngine(queue, kv, mappings, remote, identity, network, settings=FAST_SYNC)
    await second.initialize(periodic=False)
    assert second.state.sync_enabled is True
    assert second.state.pending_operations == 1
    await asyncio.sleep(0.05)

    assert queue.count() == 0
    await second.dispose()


@pytest.mark.asyncio
async def test_disable_sync_stops_queueing_and_clear_queue_empties(sync_engine, queue, kv):
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))

    engine.disable_sync()
    assert engine.enqueue(Collection.DAILY_TASKS, _task_insert(2)) is None
    assert kv.get(SYNC_STATE_KEY)["sync_enabled"] is False
    await asyncio.sleep(FAST_SYNC.debounce_sec * 2)
    assert queue.count() == 1

    engine.clear_queue()
    assert queue.count() == 0
    assert engine.state.pending_operations == 0
    await engine.dispose()


@pytest.mark.asyncio
async def test_sign_in_triggers_drain(sync_engine, queue, identity):
    engine = await _enabled(sync_engine)
    identity.sign_out()
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))
    await asyncio.sleep(FAST_SYNC.debounce_sec * 2)
    assert queue.count() == 1

    identity.sign_in(Identity(user_id="user-1"))
    await asyncio.sleep(0.02)

    assert queue.count() == 0
    await engine.dispose()


@pytest.mark.asyncio
async def test_dispose_lets_running_drain_finish(sync_engine, queue, remote):
    tasks = remote.collection(Collection.DAILY_TASKS)
    tasks.gate = asyncio.Event()
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))
    await asyncio.sleep(FAST_SYNC.debounce_sec * 2)
    assert engine.state.is_syncing is True

    asyncio.get_running_loop().call_later(0.02, tasks.gate.set)
    await engine.dispose()

    assert queue.count() == 0
    assert engine.state.is_syncing is False
    assert engine.state.pending_operations == 0

    # Nothing new starts once the engine is shut down.
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(2))
    await asyncio.sleep(FAST_SYNC.debounce_sec * 2)
    assert queue.count() == 1
    assert tasks.calls == [("insert", "2024-03-01")]


@pytest.mark.asyncio
async def test_wait_idle_returns_report_of_running_drain(sync_engine, remote):
    tasks = remote.collection(Collection.DAILY_TASKS)
    tasks.gate = asyncio.Event()
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(2))
    await asyncio.sleep(FAST_SYNC.debounce_sec * 2)

    asyncio.get_running_loop().call_later(0.01, tasks.gate.set)
    report = await engine.wait_idle()

    assert report.processed == 2
    assert (await engine.wait_idle()).processed == 0
    await engine.dispose()


@pytest.mark.asyncio
async def test_periodic_pass_recovers_after_queue_read_failure(
    queue, kv, mappings, remote, identity, network, monkeypatch
):
    queue.enqueue(Collection.DAILY_TASKS, _task_insert(1))
    kv.set(SYNC_STATE_KEY, {"sync_enabled": True})
    real_pending = queue.pending
    failures = []

    def flaky(*args, **kwargs):
        if not failures:
            failures.append(True)
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return real_pending(*args, **kwargs)

    monkeypatch.setattr(queue, "pending", flaky)
    settings = replace(FAST_SYNC, periodic_interval_sec=0.03)
    engine = SyncEngine(queue, kv, mappings, remote, identity, network, settings=settings)
    await engine.initialize()
    await asyncio.sleep(0.01)

    assert engine.state.has_error is True
    assert "database is locked" in engine.state.error_message
    assert queue.count() == 1

    await asyncio.sleep(0.1)

    assert queue.count() == 0
    assert engine.state.has_error is False
    await engine.dispose()


@pytest.mark.asyncio
async def test_crashed_drain_task_is_logged(sync_engine, queue, monkeypatch, caplog):
    engine = await _enabled(sync_engine)
    engine.enqueue(Collection.DAILY_TASKS, _task_insert(1))

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(queue, "count", broken)
    with caplog.at_level(logging.ERROR, logger="focus_coach.sync"):
        await asyncio.sleep(FAST_SYNC.debounce_sec * 2)

    assert any("Drain task crashed" in record.getMessage() for record in caplog.records)
    monkeypatch.undo()
    await engine.dispose()
