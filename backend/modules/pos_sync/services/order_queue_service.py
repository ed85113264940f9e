# backend/modules/pos_sync/services/order_queue_service.py

"""
Outbound order queue.

Entries move ``pending -> processing -> completed | pending (retry) | failed``.
Claiming uses a per-row compare-and-set so concurrent claimers never share an
entry. Failures back off exponentially through ``next_attempt_at`` and end in
``failed`` once the retry budget is spent. An entry stuck in ``processing``
longer than ``POS_ORDER_PROCESSING_LEASE_SECONDS`` (its worker died mid-push)
is claimable again; the reclaim does not consume a retry.

Changes are committed before every await so coroutines sharing the session
never observe each other's half-written state.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from core.config import settings
from ..adapters.iiko_adapter import IikoAdapter
from ..enums.pos_sync_enums import QueueStatus, OrderSyncStatus, POSCreationStatus
from ..exceptions.pos_sync_exceptions import (
    POSSyncError,
    ConfigurationError,
    NetworkError,
    ValidationError,
    CapacityError,
)
from ..models.sync_models import OrderQueueEntry, OrderSyncRecord
from ..schemas.payload_schemas import OrderPayload
from ..schemas.pos_sync_schemas import OrderSyncRunResult
from .config_service import POSConfigService
from .token_manager import TokenManager, token_manager as default_token_manager

logger = logging.getLogger(__name__)


def compute_backoff(retry_count: int) -> timedelta:
    """Delay before the next attempt after ``retry_count`` failures"""
    base = settings.POS_SYNC_RETRY_BASE_DELAY_SECONDS
    delay = base * (2 ** max(retry_count - 1, 0))
    return timedelta(seconds=min(delay, settings.POS_SYNC_RETRY_MAX_DELAY_SECONDS))


class OrderQueueService:
    def __init__(
        self,
        db: Session,
        token_manager: Optional[TokenManager] = None,
        adapter_factory: Callable[[str], IikoAdapter] = IikoAdapter,
    ):
        self.db = db
        self.token_manager = token_manager or default_token_manager
        self.adapter_factory = adapter_factory
        self.config_service = POSConfigService(db)

    # Enqueue

    def enqueue(
        self,
        payload: Union[OrderPayload, Dict[str, Any]],
        priority: int = 0,
        max_retries: Optional[int] = None,
    ) -> OrderQueueEntry:
        """
        Persist an order for pushing to the POS.

        An order that already has a pending or processing entry is not
        queued twice; the existing entry is returned.
        """
        if not isinstance(payload, OrderPayload):
            try:
                payload = OrderPayload.model_validate(payload)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid order payload: {e}")

        max_retries = max_retries if max_retries is not None else settings.POS_ORDER_MAX_RETRIES
        if max_retries < 1:
            raise ValidationError("max_retries must be at least 1")

        existing = (
            self.db.query(OrderQueueEntry)
            .filter(
                OrderQueueEntry.order_number == payload.order_number,
                OrderQueueEntry.status.in_([QueueStatus.PENDING, QueueStatus.PROCESSING]),
            )
            .first()
        )
        if existing:
            logger.info(f"Order {payload.order_number} already queued as entry {existing.id}")
            return existing

        entry = OrderQueueEntry(
            order_id=payload.order_id,
            order_number=payload.order_number,
            store_id=payload.store_id,
            order_data=payload.model_dump_json(),
            status=QueueStatus.PENDING,
            priority=priority,
            retry_count=0,
            max_retries=max_retries,
            idempotency_key=str(uuid.uuid4()),
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)

        logger.info(
            f"Queued order {entry.order_number} for POS sync (entry {entry.id}, priority {priority})"
        )
        return entry

    # Claiming

    def _claimable(self, now: datetime):
        stale_before = now - timedelta(seconds=settings.POS_ORDER_PROCESSING_LEASE_SECONDS)
        return or_(
            and_(
                OrderQueueEntry.status == QueueStatus.PENDING,
                or_(
                    OrderQueueEntry.next_attempt_at.is_(None),
                    OrderQueueEntry.next_attempt_at <= now,
                ),
            ),
            # Claimed by a worker that died before resolving the entry
            and_(
                OrderQueueEntry.status == QueueStatus.PROCESSING,
                OrderQueueEntry.processed_at <= stale_before,
            ),
        )

    def _candidate_ids(self, limit: int, now: datetime) -> List[int]:
        query = (
            self.db.query(OrderQueueEntry.id)
            .filter(self._claimable(now))
            .order_by(
                OrderQueueEntry.priority.desc(),
                OrderQueueEntry.created_at.asc(),
                OrderQueueEntry.id.asc(),
            )
            .limit(limit)
        )
        if self.db.get_bind().dialect.name == "postgresql":
            query = query.with_for_update(skip_locked=True)
        return [row.id for row in query.all()]

    def _compare_and_set(self, entry_id: int, now: datetime) -> bool:
        updated = (
            self.db.query(OrderQueueEntry)
            .filter(
                OrderQueueEntry.id == entry_id,
                self._claimable(now),
            )
            .update(
                {
                    OrderQueueEntry.status: QueueStatus.PROCESSING,
                    OrderQueueEntry.processed_at: now,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def claim_batch(
        self, limit: Optional[int] = None, now: Optional[datetime] = None
    ) -> List[OrderQueueEntry]:
        """Atomically move up to ``limit`` due or stale entries to processing"""
        limit = limit or settings.POS_ORDER_SYNC_BATCH_SIZE
        now = now or datetime.utcnow()

        claimed = [
            entry_id
            for entry_id in self._candidate_ids(limit, now)
            if self._compare_and_set(entry_id, now)
        ]
        self.db.commit()

        if not claimed:
            return []

        entries = (
            self.db.query(OrderQueueEntry)
            .filter(OrderQueueEntry.id.in_(claimed))
            .order_by(
                OrderQueueEntry.priority.desc(),
                OrderQueueEntry.created_at.asc(),
                OrderQueueEntry.id.asc(),
            )
            .all()
        )
        logger.debug(f"Claimed {len(entries)} queue entries")
        return entries

    # Processing

    def _get_or_create_record(self, entry: OrderQueueEntry) -> OrderSyncRecord:
        record = (
            self.db.query(OrderSyncRecord)
            .filter(OrderSyncRecord.order_number == entry.order_number)
            .first()
        )
        if record is None:
            record = OrderSyncRecord(
                order_id=entry.order_id,
                order_number=entry.order_number,
                sync_status=OrderSyncStatus.PENDING,
                sync_attempts=0,
            )
            self.db.add(record)
            self.db.commit()
        return record

    async def process_entry(self, entry: OrderQueueEntry) -> QueueStatus:
        """
        Push one claimed entry to the POS and resolve its state.

        Never raises: every failure is recorded on the entry and its sync
        record. Returns the status the entry ended in.
        """
        config_id = None
        try:
            record = self._get_or_create_record(entry)

            if record.sync_status == OrderSyncStatus.SUCCESS:
                # Already accepted by the POS on an earlier attempt
                logger.info(
                    f"Order {entry.order_number} already synced as "
                    f"{record.external_order_id}, completing entry {entry.id}"
                )
                return self._mark_completed(entry, record, datetime.utcnow(), None)

            try:
                payload = OrderPayload.model_validate_json(entry.order_data)
            except PydanticValidationError as e:
                raise ValidationError(f"Stored order payload is invalid: {e}")

            config = self.config_service.get_active_by_store(entry.store_id)
            if config is None:
                raise ConfigurationError(
                    f"No active POS configuration for store {entry.store_id}"
                )
            config_id = config.id
            organization_id = config.organization_id
            terminal_group_id = config.terminal_group_id
            api_url = config.api_url

            record.sync_status = OrderSyncStatus.SYNCING
            record.sync_attempts = (record.sync_attempts or 0) + 1
            record.last_sync_at = datetime.utcnow()
            self.db.commit()

            token = await self.token_manager.get_token(self.db, config_id)
            adapter = self.adapter_factory(api_url)
            response = await adapter.create_delivery(
                token, organization_id, terminal_group_id, payload, entry.idempotency_key
            )

            info = response.order_info
            if info.creation_status == POSCreationStatus.ERROR.value:
                error_info = info.error_info
                message = error_info.message if error_info and error_info.message else "unknown error"
                code = error_info.code if error_info and error_info.code else None
                raise ValidationError(f"POS rejected order: {message}", error_code=code)

            return self._mark_completed(entry, record, datetime.utcnow(), info)

        except NetworkError as e:
            if e.status_code == 401 and config_id is not None:
                self.token_manager.invalidate(self.db, config_id)
            return self._handle_failure(entry, e)
        except POSSyncError as e:
            return self._handle_failure(entry, e)
        except Exception as e:
            logger.error(
                f"Unexpected error syncing order {entry.order_number}: {e}", exc_info=True
            )
            self.db.rollback()
            return self._handle_failure(entry, POSSyncError(f"Unexpected error: {e}"))

    def _mark_completed(self, entry, record, now, info) -> QueueStatus:
        entry.status = QueueStatus.COMPLETED
        entry.completed_at = now
        entry.next_attempt_at = None
        entry.error_message = None

        record.sync_status = OrderSyncStatus.SUCCESS
        record.last_sync_at = now
        record.error_code = None
        record.error_message = None
        if info is not None:
            record.external_order_id = info.id
            record.external_number = info.external_number or entry.order_number

        self.db.commit()
        logger.info(f"Order {entry.order_number} synced to POS ({record.external_order_id})")
        return QueueStatus.COMPLETED

    def _handle_failure(self, entry: OrderQueueEntry, error: POSSyncError) -> QueueStatus:
        now = datetime.utcnow()
        record = self._get_or_create_record(entry)

        entry.retry_count = min((entry.retry_count or 0) + 1, entry.max_retries)
        record.last_sync_at = now

        if entry.retry_count >= entry.max_retries:
            exhausted = CapacityError(
                f"Retry budget exhausted after {entry.retry_count} attempts: {error.message}"
            )
            entry.status = QueueStatus.FAILED
            entry.error_message = exhausted.message
            entry.next_attempt_at = None
            record.sync_status = OrderSyncStatus.FAILED
            record.error_code = exhausted.error_code
            record.error_message = exhausted.message
            self.db.commit()

            logger.error(
                f"Order {entry.order_number} failed permanently after "
                f"{entry.retry_count} attempts: {error.message}"
            )
            return QueueStatus.FAILED

        entry.status = QueueStatus.PENDING
        entry.error_message = error.message
        entry.next_attempt_at = now + compute_backoff(entry.retry_count)
        record.sync_status = OrderSyncStatus.PENDING
        record.error_code = error.error_code
        record.error_message = error.message
        self.db.commit()

        logger.warning(
            f"Order {entry.order_number} sync failed "
            f"(attempt {entry.retry_count}/{entry.max_retries}), "
            f"retrying after {entry.next_attempt_at}: {error.message}"
        )
        return QueueStatus.PENDING

    async def process_order_queue(self) -> OrderSyncRunResult:
        """Claim one batch and push it with bounded concurrency"""
        entries = self.claim_batch(settings.POS_ORDER_SYNC_BATCH_SIZE)
        result = OrderSyncRunResult()
        if not entries:
            return result

        semaphore = asyncio.Semaphore(settings.POS_ORDER_SYNC_CONCURRENCY)

        async def run(entry: OrderQueueEntry):
            async with semaphore:
                return entry, await self.process_entry(entry)

        outcomes = await asyncio.gather(*(run(entry) for entry in entries))

        for entry, status in outcomes:
            result.processed += 1
            if status == QueueStatus.COMPLETED:
                result.succeeded += 1
                continue
            if status == QueueStatus.FAILED:
                result.failed += 1
            else:
                result.retried += 1
            result.errors.append(f"{entry.order_number}: {entry.error_message}")

        logger.info(
            f"Order queue run: {result.processed} processed, {result.succeeded} succeeded, "
            f"{result.retried} retried, {result.failed} failed"
        )
        return result

    # Admin visibility

    def list_entries(
        self, status: Optional[QueueStatus] = None, limit: int = 50
    ) -> List[OrderQueueEntry]:
        query = self.db.query(OrderQueueEntry)
        if status is not None:
            query = query.filter(OrderQueueEntry.status == status)
        return query.order_by(OrderQueueEntry.id.desc()).limit(limit).all()

    def get_queue_stats(self) -> Dict[str, int]:
        stats = {status.value: 0 for status in QueueStatus}
        rows = (
            self.db.query(OrderQueueEntry.status, func.count(OrderQueueEntry.id))
            .group_by(OrderQueueEntry.status)
            .all()
        )
        for status, count in rows:
            key = status.value if isinstance(status, QueueStatus) else str(status)
            stats[key] = count
        return stats
