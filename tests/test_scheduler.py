"""Tests for the background sync scheduler."""

import asyncio
import time

import pytest

from bansync.engine import SyncEngine, SyncState
from bansync.scheduler import SyncScheduler
from tests.conftest import remote_rows, seed_remote


async def _until(condition, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


class TestSchedulerLifecycle:
    """Test start/stop of the scheduler task."""

    @pytest.mark.asyncio
    async def test_runs_cycles_until_stopped(self, store, host, engine):
        host.ban("1", "a", "r1")
        scheduler = SyncScheduler(engine, push_delay=0.05)

        await scheduler.start()
        await _until(lambda: engine.cycles_completed >= 2)
        await scheduler.stop()

        assert scheduler.running is False
        assert scheduler.task.cancelled() or scheduler.task.done()
        assert engine.has_open_handle is False
        assert engine.state is SyncState.IDLE
        assert remote_rows(store) == {("1", "a", "r1")}

    @pytest.mark.asyncio
    async def test_start_twice_keeps_single_task(self, engine):
        scheduler = SyncScheduler(engine, push_delay=0.05)

        await scheduler.start()
        task = scheduler.task
        await scheduler.start()

        assert scheduler.task is task
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, engine):
        scheduler = SyncScheduler(engine)
        await scheduler.stop()
        assert scheduler.task is None


class TestSchedulerTrigger:
    """Test cutting the inter-cycle wait short."""

    @pytest.mark.asyncio
    async def test_trigger_starts_next_cycle(self, store, host, engine):
        scheduler = SyncScheduler(engine, push_delay=60)

        await scheduler.start()
        await _until(lambda: engine.cycles_completed == 1)

        host.ban("3", "c", "aimbot")
        scheduler.trigger()
        await _until(lambda: engine.cycles_completed == 2)
        await scheduler.stop()

        assert remote_rows(store) == {("3", "c", "aimbot")}

    def test_trigger_before_start_is_ignored(self, engine):
        SyncScheduler(engine).trigger()


class TestSchedulerResponsiveness:
    """Test that slow store round trips stay off the event loop."""

    @pytest.mark.asyncio
    async def test_slow_connect_does_not_block_loop(self, store, engine, monkeypatch):
        real_connect = store.connect

        def slow_connect():
            time.sleep(0.5)
            return real_connect()

        monkeypatch.setattr(store, "connect", slow_connect)
        scheduler = SyncScheduler(engine, push_delay=60)

        await scheduler.start()
        await asyncio.sleep(0.05)
        started = time.monotonic()
        await asyncio.sleep(0.01)
        elapsed = time.monotonic() - started

        await _until(lambda: engine.cycles_completed == 1)
        await scheduler.stop()

        assert elapsed < 0.2

    @pytest.mark.asyncio
    async def test_stop_waits_for_running_phase(self, store, engine, monkeypatch):
        real_connect = store.connect

        def slow_connect():
            time.sleep(0.3)
            return real_connect()

        monkeypatch.setattr(store, "connect", slow_connect)
        scheduler = SyncScheduler(engine, push_delay=60)

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert engine.has_open_handle is False
        assert engine.state is SyncState.IDLE
        assert store.connections_opened == store.connections_closed


class TestSchedulerHalt:
    """Test the loop exiting after a fatal error."""

    @pytest.mark.asyncio
    async def test_halt_outside_loop_ends_wait(self, engine):
        scheduler = SyncScheduler(engine, push_delay=60)

        await scheduler.start()
        await _until(lambda: engine.cycles_completed == 1)
        engine.fail_closed(RuntimeError("table dropped"))
        await asyncio.wait_for(scheduler.task, timeout=2.0)

        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_fatal_error_stops_loop(self, store, host):
        seed_remote(store, [])
        with store.connection() as handle:
            handle.execute("INSERT INTO userbans (UserId, Name, Reason) VALUES ('', 'ghost', 'r')")
            handle.commit()
        engine = SyncEngine(store, host)
        scheduler = SyncScheduler(engine, push_delay=0.05)

        await scheduler.start()
        await asyncio.wait_for(scheduler.task, timeout=2.0)

        assert engine.halted is True
        assert scheduler.running is False
        assert engine.has_open_handle is False
