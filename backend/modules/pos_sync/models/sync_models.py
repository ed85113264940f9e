# backend/modules/pos_sync/models/sync_models.py

"""
Queue and audit models for POS synchronization.

Queue entries are never deleted; they end in ``completed`` or ``failed`` and
stay behind as the audit trail of outbound pushes.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Numeric,
    Enum as SQLEnum, Index, UniqueConstraint, CheckConstraint
)

from core.database import Base
from core.mixins import TimestampMixin, StoreScopedMixin
from ..enums.pos_sync_enums import QueueStatus, OrderSyncStatus, MenuSyncStatus


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class OrderQueueEntry(Base, TimestampMixin, StoreScopedMixin):
    """Durable work item for pushing one local order to the POS"""
    __tablename__ = "pos_order_queue"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, nullable=False, index=True)
    order_number = Column(String(64), nullable=False, index=True)

    # Versioned OrderPayload serialized as JSON
    order_data = Column(Text, nullable=False)

    status = Column(
        SQLEnum(QueueStatus, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=QueueStatus.PENDING,
        index=True,
    )
    priority = Column(Integer, nullable=False, default=0)

    # Retry bookkeeping
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    next_attempt_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    # Sent to the POS as the order id so a repeated push maps to the same order
    idempotency_key = Column(String(36), nullable=False, unique=True)

    processed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_pos_order_queue_claim", "status", "priority", "created_at"),
        CheckConstraint("retry_count <= max_retries", name="ck_pos_order_queue_retry_budget"),
    )

    def __repr__(self):
        return f"<OrderQueueEntry(id={self.id}, order='{self.order_number}', status='{self.status}')>"


class OrderSyncRecord(Base, TimestampMixin):
    """One record per order number, updated across push attempts"""
    __tablename__ = "pos_order_sync_records"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, nullable=False, index=True)
    order_number = Column(String(64), nullable=False)

    external_order_id = Column(String(64), nullable=True, index=True)
    external_number = Column(String(64), nullable=True)

    sync_status = Column(
        SQLEnum(OrderSyncStatus, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=OrderSyncStatus.PENDING,
        index=True,
    )
    sync_attempts = Column(Integer, nullable=False, default=0)
    last_sync_at = Column(DateTime, nullable=True)

    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_pos_order_sync_order_number"),
    )


class MenuSyncRecord(Base, TimestampMixin, StoreScopedMixin):
    """Last known state of one POS product (or one sync run) per configuration"""
    __tablename__ = "pos_menu_sync_records"

    id = Column(Integer, primary_key=True, index=True)
    config_id = Column(Integer, nullable=False, index=True)

    external_product_id = Column(String(64), nullable=False)
    external_product_name = Column(String(255), nullable=False)
    external_category_id = Column(String(64), nullable=True)
    external_category_name = Column(String(255), nullable=True)

    local_product_id = Column(Integer, nullable=True)

    # JSON snapshot of the POS product, or run statistics for the marker row
    product_data = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    is_in_stop_list = Column(Boolean, nullable=False, default=False)

    last_sync_at = Column(DateTime, nullable=False)
    sync_status = Column(
        SQLEnum(MenuSyncStatus, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=MenuSyncStatus.SUCCESS,
    )

    __table_args__ = (
        UniqueConstraint("config_id", "external_product_id", name="uq_pos_menu_sync_config_product"),
    )
