# backend/modules/pos_sync/models/pos_config_models.py

"""
POS integration profiles and category mappings.

One configuration per store holds the POS credentials, identifiers and the
cached bearer token; category mappings route POS catalog groups onto local
menu categories.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Index, UniqueConstraint
)

from core.config import settings
from core.database import Base
from core.mixins import TimestampMixin, StoreScopedMixin


class POSConfiguration(Base, TimestampMixin, StoreScopedMixin):
    """POS integration profile for a store"""
    __tablename__ = "pos_configurations"

    id = Column(Integer, primary_key=True, index=True)
    config_name = Column(String(200), nullable=False)

    # API access
    api_url = Column(String(500), nullable=False, default=settings.POS_DEFAULT_API_URL)
    api_login = Column(String(255), nullable=False)

    # Organization / terminal routing
    organization_id = Column(String(64), nullable=False)
    organization_name = Column(String(255), nullable=True)
    terminal_group_id = Column(String(64), nullable=True)
    terminal_group_name = Column(String(255), nullable=True)

    # Menu sync cadence
    auto_sync_menu = Column(Boolean, nullable=False, default=True)
    sync_interval_minutes = Column(Integer, nullable=False, default=30)
    menu_revision = Column(Integer, nullable=True)
    last_menu_sync_at = Column(DateTime, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Cached bearer token, owned by the token manager
    access_token = Column(String(1024), nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_pos_configurations_store_active", "store_id", "is_active"),
    )

    def __repr__(self):
        return f"<POSConfiguration(id={self.id}, name='{self.config_name}', store_id={self.store_id})>"


class CategoryMapping(Base, TimestampMixin, StoreScopedMixin):
    """Maps an external POS product group onto a local menu category"""
    __tablename__ = "pos_category_mappings"

    id = Column(Integer, primary_key=True, index=True)
    external_group_id = Column(String(64), nullable=False, index=True)
    external_group_name = Column(String(255), nullable=True)
    local_category_id = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("external_group_id", "store_id", name="uq_pos_category_mapping_group_store"),
    )

    def __repr__(self):
        return f"<CategoryMapping(group='{self.external_group_id}', category={self.local_category_id})>"
