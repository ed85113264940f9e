"""
Tests for the POS sync scheduler and its task guards.
"""

import asyncio

import pytest

from modules.pos_sync.enums.pos_sync_enums import QueueStatus, SyncTaskType
from modules.pos_sync.exceptions.pos_sync_exceptions import SyncAlreadyRunningError
from modules.pos_sync.models.sync_models import OrderQueueEntry
from modules.pos_sync.services.order_queue_service import OrderQueueService
from modules.pos_sync.tasks.sync_scheduler import POSSyncScheduler, TaskGuard


@pytest.fixture
def scheduler(session_factory, token_manager, fake_pos):
    return POSSyncScheduler(
        session_factory=session_factory,
        token_manager=token_manager,
        adapter_factory=fake_pos.adapter_factory,
        order_interval_seconds=60,
        menu_interval_minutes=30,
    )


class TestTaskGuard:
    def test_acquire_is_exclusive(self):
        guard = TaskGuard(SyncTaskType.ORDER_SYNC)

        assert guard.try_acquire() is True
        assert guard.try_acquire() is False
        guard.release()
        assert guard.try_acquire() is True
        assert guard.last_run_at is not None


class TestNonOverlap:
    @pytest.mark.asyncio
    async def test_manual_trigger_rejected_while_running(self, scheduler):
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_order_sync():
            started.set()
            await release.wait()
            return {"processed": 0}

        scheduler._run_order_sync = slow_order_sync

        run_a = asyncio.create_task(scheduler.trigger_order_sync())
        await started.wait()

        assert scheduler.get_scheduler_status()["order_sync"]["processing"] is True
        with pytest.raises(SyncAlreadyRunningError):
            await scheduler.trigger_order_sync()

        release.set()
        assert await run_a == {"processed": 0}
        assert scheduler.get_scheduler_status()["order_sync"]["processing"] is False

    @pytest.mark.asyncio
    async def test_tick_skipped_while_running(self, scheduler):
        release = asyncio.Event()
        started = asyncio.Event()
        calls = []

        async def slow_menu_sync(scheduled=False):
            calls.append(scheduled)
            started.set()
            await release.wait()

        scheduler._run_menu_sync = slow_menu_sync

        run_a = asyncio.create_task(scheduler.trigger_menu_sync())
        await started.wait()

        await scheduler._menu_sync_tick()
        assert calls == [False]

        release.set()
        await run_a
        await scheduler._menu_sync_tick()
        assert calls == [False, True]

    @pytest.mark.asyncio
    async def test_task_types_do_not_block_each_other(self, scheduler):
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_menu_sync(scheduled=False):
            started.set()
            await release.wait()

        async def quick_order_sync():
            return "done"

        scheduler._run_menu_sync = slow_menu_sync
        scheduler._run_order_sync = quick_order_sync

        menu_run = asyncio.create_task(scheduler.trigger_menu_sync())
        await started.wait()

        assert await scheduler.trigger_order_sync() == "done"

        release.set()
        await menu_run

    @pytest.mark.asyncio
    async def test_tick_failure_is_recorded_not_raised(self, scheduler):
        async def broken():
            raise RuntimeError("database unavailable")

        scheduler._run_order_sync = broken

        await scheduler._order_sync_tick()

        status = scheduler.get_scheduler_status()["order_sync"]
        assert status["processing"] is False
        assert status["last_error"] == "database unavailable"


class TestStatusAndLifecycle:
    def test_status_shape_before_start(self, scheduler):
        status = scheduler.get_scheduler_status()

        assert set(status) == {"order_sync", "menu_sync"}
        assert status["order_sync"]["running"] is False
        assert status["order_sync"]["interval"] == 60
        assert status["menu_sync"]["interval"] == 1800
        assert status["menu_sync"]["processing"] is False

    @pytest.mark.asyncio
    async def test_start_registers_non_overlapping_jobs(self, scheduler):
        scheduler.start()
        try:
            assert scheduler.get_scheduler_status()["order_sync"]["running"] is True
            for job_id in (scheduler.order_job_id, scheduler.menu_job_id):
                job = scheduler.scheduler.get_job(job_id)
                assert job is not None
                assert job.max_instances == 1
                assert job.coalesce is True
        finally:
            scheduler.stop()

        assert scheduler.get_scheduler_status()["menu_sync"]["running"] is False


class TestTriggerEndToEnd:
    @pytest.mark.asyncio
    async def test_trigger_order_sync_drains_queue(
        self, db_session, pos_config, scheduler, make_payload
    ):
        entry = OrderQueueService(db_session).enqueue(make_payload("E-1"))

        result = await scheduler.trigger_order_sync()

        assert result.processed == 1
        assert result.succeeded == 1
        db_session.expire_all()
        assert db_session.get(OrderQueueEntry, entry.id).status == QueueStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_trigger_menu_sync_returns_run_summary(self, db_session, pos_config, scheduler):
        result = await scheduler.trigger_menu_sync()

        assert result.total == 1
        assert result.succeeded == 1
        assert scheduler.guards[SyncTaskType.MENU_SYNC].last_result is result
