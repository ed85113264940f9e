# backend/modules/pos_sync/schemas/pos_sync_schemas.py

"""
Pydantic schemas for the POS sync admin API.

Defines request/response models for configurations, category mappings,
the order queue and manual sync triggers.
"""

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import List, Optional, Dict, Any
from datetime import datetime
from urllib.parse import urlparse

from core.config import settings
from ..enums.pos_sync_enums import QueueStatus
from .payload_schemas import OrderPayload


def validate_api_url(value: str) -> str:
    """Require a well-formed http(s) URL and strip the trailing slash"""
    value = (value or "").strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("api_url must be a valid http(s) URL")
    return value.rstrip("/")


def _require_text(value: Optional[str], field_name: str) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError(f"{field_name} must not be empty")
    return value


# Configuration schemas


class POSConfigBase(BaseModel):
    config_name: str = Field(..., min_length=1, max_length=200)
    store_id: Optional[int] = None
    api_url: str = Field(settings.POS_DEFAULT_API_URL, max_length=500)
    api_login: str = Field(..., max_length=255)
    organization_id: str = Field(..., max_length=64)
    organization_name: Optional[str] = Field(None, max_length=255)
    terminal_group_id: Optional[str] = Field(None, max_length=64)
    terminal_group_name: Optional[str] = Field(None, max_length=255)
    auto_sync_menu: bool = True
    sync_interval_minutes: int = Field(30, ge=1, le=1440)
    is_active: bool = True

    @field_validator("api_url")
    def check_api_url(cls, v):
        return validate_api_url(v)

    @field_validator("api_login")
    def check_api_login(cls, v):
        return _require_text(v, "api_login")

    @field_validator("organization_id")
    def check_organization_id(cls, v):
        return _require_text(v, "organization_id")


class POSConfigCreate(POSConfigBase):
    pass


class POSConfigUpdate(BaseModel):
    """Partial update; omitted fields are left untouched"""

    config_name: Optional[str] = Field(None, min_length=1, max_length=200)
    store_id: Optional[int] = None
    api_url: Optional[str] = Field(None, max_length=500)
    api_login: Optional[str] = Field(None, max_length=255)
    organization_id: Optional[str] = Field(None, max_length=64)
    organization_name: Optional[str] = Field(None, max_length=255)
    terminal_group_id: Optional[str] = Field(None, max_length=64)
    terminal_group_name: Optional[str] = Field(None, max_length=255)
    auto_sync_menu: Optional[bool] = None
    sync_interval_minutes: Optional[int] = Field(None, ge=1, le=1440)
    is_active: Optional[bool] = None

    @field_validator("api_url")
    def check_api_url(cls, v):
        if v is None:
            return v
        return validate_api_url(v)

    @field_validator("api_login")
    def check_api_login(cls, v):
        return _require_text(v, "api_login")

    @field_validator("organization_id")
    def check_organization_id(cls, v):
        return _require_text(v, "organization_id")


class POSConfigOut(BaseModel):
    id: int
    config_name: str
    store_id: Optional[int] = None
    api_url: str
    api_login: str
    organization_id: str
    organization_name: Optional[str] = None
    terminal_group_id: Optional[str] = None
    terminal_group_name: Optional[str] = None
    auto_sync_menu: bool
    sync_interval_minutes: int
    is_active: bool
    menu_revision: Optional[int] = None
    last_menu_sync_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConnectionTestRequest(BaseModel):
    api_url: str = Field(settings.POS_DEFAULT_API_URL, max_length=500)
    api_login: str = Field(..., max_length=255)

    @field_validator("api_url")
    def check_api_url(cls, v):
        return validate_api_url(v)

    @field_validator("api_login")
    def check_api_login(cls, v):
        return _require_text(v, "api_login")


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str


class OrganizationOut(BaseModel):
    id: str
    name: str


class TerminalGroupOut(BaseModel):
    id: str
    name: str
    organization_id: Optional[str] = None


# Category mapping schemas


class CategoryMappingCreate(BaseModel):
    external_group_id: str = Field(..., max_length=64)
    external_group_name: Optional[str] = Field(None, max_length=255)
    local_category_id: int = Field(..., ge=1)
    store_id: Optional[int] = None

    @field_validator("external_group_id")
    def check_group_id(cls, v):
        return _require_text(v, "external_group_id")


class CategoryMappingUpdate(BaseModel):
    external_group_name: Optional[str] = Field(None, max_length=255)
    local_category_id: Optional[int] = Field(None, ge=1)


class CategoryMappingOut(BaseModel):
    id: int
    external_group_id: str
    external_group_name: Optional[str] = None
    local_category_id: int
    store_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Queue schemas


class EnqueueOrderRequest(BaseModel):
    payload: OrderPayload
    priority: int = Field(0, ge=-100, le=100)


class EnqueueOrderResponse(BaseModel):
    queue_id: int
    order_number: str
    status: QueueStatus
    idempotency_key: str


class OrderQueueEntryOut(BaseModel):
    id: int
    order_id: int
    order_number: str
    store_id: Optional[int] = None
    status: QueueStatus
    priority: int
    retry_count: int
    max_retries: int
    error_message: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    idempotency_key: str
    created_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class QueueOverviewResponse(BaseModel):
    stats: Dict[str, int]
    entries: List[OrderQueueEntryOut]


# Sync result schemas


class OrderSyncRunResult(BaseModel):
    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    errors: List[str] = []


class MenuSyncResult(BaseModel):
    config_id: int
    store_name: str
    success: bool
    revision: Optional[int] = None
    created: int = 0
    updated: int = 0
    unmapped: int = 0
    errors: int = 0
    stop_listed: int = 0
    error_message: Optional[str] = None


class MenuSyncRunResult(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    results: List[MenuSyncResult] = []


class SchedulerTaskStatus(BaseModel):
    running: bool
    interval: int
    processing: bool
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None


class SchedulerStatusResponse(BaseModel):
    order_sync: SchedulerTaskStatus
    menu_sync: SchedulerTaskStatus
