# backend/modules/pos_sync/schemas/payload_schemas.py

"""
Versioned payload shapes exchanged with the POS.

``OrderPayload`` is what the order subsystem hands to the queue and what the
queue worker reads back from ``order_data``. ``NomenclatureResponse`` is the
parsed catalog feed consumed by menu sync.
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal


ORDER_PAYLOAD_VERSION = 1


class OrderCustomer(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1, max_length=40)


class OrderLineItem(BaseModel):
    external_product_id: str = Field(..., min_length=1, max_length=64)
    name: Optional[str] = None
    quantity: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)
    comment: Optional[str] = None


class OrderPayload(BaseModel):
    """Order as queued for the POS, schema version 1"""

    schema_version: int = ORDER_PAYLOAD_VERSION
    order_id: int
    order_number: str = Field(..., min_length=1, max_length=64)
    store_id: Optional[int] = None
    customer: OrderCustomer
    items: List[OrderLineItem] = Field(..., min_length=1)
    notes: Optional[str] = None
    delivery_address: Optional[str] = None
    scheduled_at: Optional[datetime] = None

    @field_validator("schema_version")
    def check_version(cls, v):
        if v != ORDER_PAYLOAD_VERSION:
            raise ValueError(f"Unsupported order payload version: {v}")
        return v


# Nomenclature (catalog feed)


class NomenclatureGroup(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    parent_group: Optional[str] = Field(None, alias="parentGroup")
    is_deleted: bool = Field(False, alias="isDeleted")


class NomenclatureProduct(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    description: Optional[str] = None
    full_name_english: Optional[str] = Field(None, alias="fullNameEnglish")
    code: Optional[str] = None
    parent_group: Optional[str] = Field(None, alias="parentGroup")
    price: Decimal
    is_deleted: bool = Field(False, alias="isDeleted")
    is_included_in_menu: bool = Field(True, alias="isIncludedInMenu")

    @model_validator(mode="before")
    @classmethod
    def resolve_price(cls, data: Any) -> Any:
        # Catalog feeds carry the price either flat or in the first size price
        if isinstance(data, dict) and data.get("price") is None:
            size_prices = data.get("sizePrices")
            if isinstance(size_prices, list) and size_prices and isinstance(size_prices[0], dict):
                price_info = size_prices[0].get("price")
                if isinstance(price_info, dict) and price_info.get("currentPrice") is not None:
                    data = {**data, "price": price_info["currentPrice"]}
        return data

    @property
    def is_sellable(self) -> bool:
        return not self.is_deleted and self.is_included_in_menu


class NomenclatureResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    revision: Optional[int] = None
    groups: List[NomenclatureGroup] = []
    # Raw entries, validated one by one during reconciliation
    products: List[Any] = []

    def group_names(self) -> Dict[str, str]:
        return {group.id: group.name for group in self.groups}

    def product_entries(self) -> List[Any]:
        """Raw product entries that are neither deleted nor hidden from the menu"""
        return [
            entry
            for entry in self.products
            if not (
                isinstance(entry, dict)
                and (entry.get("isDeleted") is True or entry.get("isIncludedInMenu") is False)
            )
        ]


# Order push response


class POSErrorInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: Optional[str] = None
    message: Optional[str] = None


class POSOrderInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    external_number: Optional[str] = Field(None, alias="externalNumber")
    creation_status: Optional[str] = Field(None, alias="creationStatus")
    error_info: Optional[POSErrorInfo] = Field(None, alias="errorInfo")


class POSDeliveryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    correlation_id: Optional[str] = Field(None, alias="correlationId")
    order_info: POSOrderInfo = Field(..., alias="orderInfo")


class POSAuthResult(BaseModel):
    token: str
    expires_at: datetime
