from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.sql import func


class TimestampMixin:
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(),
                        onupdate=func.now(), nullable=False)


class StoreScopedMixin:
    """Mixin for rows that belong to a single store (nullable = all stores)"""
    store_id = Column(Integer, nullable=True, index=True)
