# backend/modules/pos_sync/tasks/sync_scheduler.py

"""
Background scheduling for POS synchronization.

Two interval jobs run on an APScheduler ``AsyncIOScheduler``: the order queue
drain and the menu pull. Each task type owns a ``TaskGuard`` so at most one
run of a type is in flight; timer ticks that find the guard held are skipped
and manual triggers are rejected.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.database import SessionLocal
from ..adapters.iiko_adapter import IikoAdapter
from ..enums.pos_sync_enums import SyncTaskType
from ..exceptions.pos_sync_exceptions import SyncAlreadyRunningError
from ..services.menu_sync_service import MenuSyncService
from ..services.order_queue_service import OrderQueueService
from ..services.token_manager import TokenManager, token_manager as default_token_manager

logger = logging.getLogger(__name__)


class TaskGuard:
    """In-process mutual exclusion and bookkeeping for one task type"""

    def __init__(self, task_type: SyncTaskType):
        self.task_type = task_type
        self.running = False
        self.last_run_at: Optional[datetime] = None
        self.last_result: Any = None
        self.last_error: Optional[str] = None

    def try_acquire(self) -> bool:
        if self.running:
            return False
        self.running = True
        return True

    def release(self):
        self.running = False
        self.last_run_at = datetime.utcnow()


class POSSyncScheduler:
    """Manages the scheduled POS order and menu sync tasks"""

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        token_manager: Optional[TokenManager] = None,
        adapter_factory: Callable[[str], IikoAdapter] = IikoAdapter,
        order_interval_seconds: Optional[int] = None,
        menu_interval_minutes: Optional[int] = None,
    ):
        self.scheduler = AsyncIOScheduler()
        self.session_factory = session_factory
        self.token_manager = token_manager or default_token_manager
        self.adapter_factory = adapter_factory
        self.order_interval_seconds = (
            order_interval_seconds or settings.POS_ORDER_SYNC_INTERVAL_SECONDS
        )
        self.menu_interval_minutes = (
            menu_interval_minutes or settings.POS_MENU_SYNC_INTERVAL_MINUTES
        )
        self.order_job_id = "pos_order_sync"
        self.menu_job_id = "pos_menu_sync"
        self.guards: Dict[SyncTaskType, TaskGuard] = {
            SyncTaskType.ORDER_SYNC: TaskGuard(SyncTaskType.ORDER_SYNC),
            SyncTaskType.MENU_SYNC: TaskGuard(SyncTaskType.MENU_SYNC),
        }
        self.is_running = False

    def start(self):
        """Start the scheduler with both sync jobs"""
        if self.is_running:
            logger.warning("POS sync scheduler already running")
            return

        try:
            self.scheduler.add_job(
                func=self._order_sync_tick,
                trigger=IntervalTrigger(seconds=self.order_interval_seconds),
                id=self.order_job_id,
                name=f"POS Order Sync (every {self.order_interval_seconds}s)",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self.scheduler.add_job(
                func=self._menu_sync_tick,
                trigger=IntervalTrigger(minutes=self.menu_interval_minutes),
                id=self.menu_job_id,
                name=f"POS Menu Sync (every {self.menu_interval_minutes} minutes)",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )

            self.scheduler.start()
            self.is_running = True
            logger.info("POS sync scheduler started successfully")

        except Exception as e:
            logger.critical(f"Failed to start POS sync scheduler: {e}", exc_info=True)
            raise

    def stop(self):
        """Stop the scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
        except RuntimeError as e:
            logger.warning(f"Scheduler already stopped: {e}")
        self.is_running = False
        logger.info("POS sync scheduler stopped")

    async def _run_guarded(
        self,
        task_type: SyncTaskType,
        body: Callable[[], Awaitable[Any]],
        manual: bool,
    ) -> Any:
        guard = self.guards[task_type]
        if not guard.try_acquire():
            if manual:
                raise SyncAlreadyRunningError(f"{task_type.value} is already running")
            logger.info(f"Previous {task_type.value} run still in progress, skipping tick")
            return None

        try:
            result = await body()
            guard.last_result = result
            guard.last_error = None
            return result
        except Exception as e:
            guard.last_error = str(e)
            if manual:
                raise
            # Swallowed so the job stays scheduled
            logger.critical(f"Unexpected {task_type.value} failure: {e}", exc_info=True)
            return None
        finally:
            guard.release()

    async def _run_order_sync(self):
        db = self.session_factory()
        try:
            service = OrderQueueService(
                db, token_manager=self.token_manager, adapter_factory=self.adapter_factory
            )
            return await service.process_order_queue()
        finally:
            db.close()

    async def _run_menu_sync(self, scheduled: bool = False):
        db = self.session_factory()
        try:
            service = MenuSyncService(
                db, token_manager=self.token_manager, adapter_factory=self.adapter_factory
            )
            return await service.sync_all_menus(scheduled=scheduled)
        finally:
            db.close()

    async def _order_sync_tick(self):
        await self._run_guarded(SyncTaskType.ORDER_SYNC, self._run_order_sync, manual=False)

    async def _menu_sync_tick(self):
        await self._run_guarded(
            SyncTaskType.MENU_SYNC,
            lambda: self._run_menu_sync(scheduled=True),
            manual=False,
        )

    async def trigger_order_sync(self):
        """Drain one batch now; raises SyncAlreadyRunningError if a run is in flight"""
        return await self._run_guarded(
            SyncTaskType.ORDER_SYNC, self._run_order_sync, manual=True
        )

    async def trigger_menu_sync(self):
        """Sync every active configuration now, ignoring per-config intervals"""
        return await self._run_guarded(
            SyncTaskType.MENU_SYNC,
            lambda: self._run_menu_sync(scheduled=False),
            manual=True,
        )

    def get_scheduler_status(self) -> Dict[str, Dict[str, Any]]:
        order_guard = self.guards[SyncTaskType.ORDER_SYNC]
        menu_guard = self.guards[SyncTaskType.MENU_SYNC]
        return {
            SyncTaskType.ORDER_SYNC.value: {
                "running": self.is_running,
                "interval": self.order_interval_seconds,
                "processing": order_guard.running,
                "last_run_at": order_guard.last_run_at,
                "last_error": order_guard.last_error,
            },
            SyncTaskType.MENU_SYNC.value: {
                "running": self.is_running,
                "interval": self.menu_interval_minutes * 60,
                "processing": menu_guard.running,
                "last_run_at": menu_guard.last_run_at,
                "last_error": menu_guard.last_error,
            },
        }


# Global scheduler instance
pos_sync_scheduler = POSSyncScheduler()


def start_pos_sync_scheduler():
    """Start the POS sync scheduler unless disabled by configuration"""
    if not settings.POS_SCHEDULER_ENABLED:
        logger.info("POS sync scheduler disabled by configuration")
        return
    pos_sync_scheduler.start()


def stop_pos_sync_scheduler():
    pos_sync_scheduler.stop()
