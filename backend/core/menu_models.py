# backend/core/menu_models.py

from sqlalchemy import (Column, Integer, String, ForeignKey, DateTime,
                        Numeric, Text, Boolean, Index)
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin, StoreScopedMixin


class MenuCategory(Base, TimestampMixin, StoreScopedMixin):
    """Local menu categories that POS groups are mapped onto"""
    __tablename__ = "menu_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime, nullable=True)  # Soft delete

    # Relationships
    menu_items = relationship("MenuItem", back_populates="category")

    def __repr__(self):
        return f"<MenuCategory(id={self.id}, name='{self.name}')>"


class MenuItem(Base, TimestampMixin, StoreScopedMixin):
    """Sellable products in the local store"""
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("menu_categories.id"), nullable=False)
    sku = Column(String(100), nullable=True, index=True)

    # Localized content
    name = Column(String(200), nullable=False, index=True)
    name_en = Column(String(200), nullable=True)
    name_ru = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    description_ru = Column(Text, nullable=True)

    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)

    # Status and availability
    is_active = Column(Boolean, nullable=False, default=True)
    is_available = Column(Boolean, nullable=False, default=True)

    # Identifier of the product in the external POS catalog
    external_product_id = Column(String(64), nullable=True, index=True)

    display_order = Column(Integer, nullable=False, default=0)
    deleted_at = Column(DateTime, nullable=True)  # Soft delete

    category = relationship("MenuCategory", back_populates="menu_items")

    __table_args__ = (
        Index("ix_menu_items_external_store", "external_product_id", "store_id"),
    )

    def __repr__(self):
        return f"<MenuItem(id={self.id}, name='{self.name}', price={self.price})>"
