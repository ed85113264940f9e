# backend/modules/pos_sync/routes/pos_sync_routes.py

"""
Admin API for the POS sync engine.

Every endpoint requires the admin role. Input is validated before any call
goes out to the POS; domain errors are translated into API errors here.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import require_admin, User
from core.database import get_db
from core.exceptions import (
    APIError,
    NotFoundError,
    ValidationError as APIValidationError,
    ConflictError,
    UpstreamError,
)
from ..adapters.iiko_adapter import IikoAdapter
from ..enums.pos_sync_enums import QueueStatus
from ..exceptions.pos_sync_exceptions import (
    POSSyncError,
    ConfigurationError,
    ValidationError,
    MappingConflictError,
    SyncAlreadyRunningError,
)
from ..schemas.pos_sync_schemas import (
    POSConfigCreate,
    POSConfigUpdate,
    POSConfigOut,
    ConnectionTestRequest,
    ConnectionTestResponse,
    OrganizationOut,
    TerminalGroupOut,
    CategoryMappingCreate,
    CategoryMappingUpdate,
    CategoryMappingOut,
    EnqueueOrderRequest,
    EnqueueOrderResponse,
    QueueOverviewResponse,
    OrderSyncRunResult,
    MenuSyncRunResult,
    SchedulerStatusResponse,
)
from ..services.config_service import POSConfigService
from ..services.category_mapping_service import CategoryMappingService
from ..services.order_queue_service import OrderQueueService
from ..services.token_manager import TokenManager, token_manager
from ..tasks.sync_scheduler import POSSyncScheduler, pos_sync_scheduler

router = APIRouter(prefix="/pos-sync", tags=["POS Sync"])

logger = logging.getLogger(__name__)


def get_token_manager() -> TokenManager:
    return token_manager


def get_adapter_factory():
    return IikoAdapter


def get_scheduler() -> POSSyncScheduler:
    return pos_sync_scheduler


def _to_api_error(error: POSSyncError) -> APIError:
    if isinstance(error, SyncAlreadyRunningError):
        return ConflictError(detail=error.message, error_code=error.error_code)
    if isinstance(error, MappingConflictError):
        return ConflictError(detail=error.message, error_code=error.error_code)
    if isinstance(error, (ValidationError, ConfigurationError)):
        return APIValidationError(detail=error.message, error_code=error.error_code)
    return UpstreamError(detail=error.message, error_code=error.error_code)


# Configurations


@router.get("/configs", response_model=List[POSConfigOut])
async def list_configs(
    active_only: bool = Query(False),
    store_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """List POS configurations"""
    return POSConfigService(db).list_configs(active_only=active_only, store_id=store_id)


@router.post("/configs", response_model=POSConfigOut, status_code=status.HTTP_201_CREATED)
async def create_config(
    config_data: POSConfigCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Create a POS configuration"""
    try:
        config = POSConfigService(db).create_config(config_data)
    except POSSyncError as e:
        raise _to_api_error(e)

    logger.info(
        f"POS configuration {config.id} created by {current_user.username}",
        extra={"user_id": current_user.id, "config_id": config.id},
    )
    return config


@router.post("/configs/test-connection", response_model=ConnectionTestResponse)
async def test_connection(
    request: ConnectionTestRequest,
    current_user: User = Depends(require_admin),
    adapter_factory=Depends(get_adapter_factory),
):
    """Check a URL and login against the POS auth endpoint; nothing is persisted"""
    adapter = adapter_factory(request.api_url)
    connected = await adapter.test_connection(request.api_login)
    return ConnectionTestResponse(
        success=connected,
        message="Connection successful" if connected else "Authentication failed",
    )


@router.get("/configs/{config_id}", response_model=POSConfigOut)
async def get_config(
    config_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    config = POSConfigService(db).get_config(config_id)
    if not config:
        raise NotFoundError(f"POS configuration {config_id} not found")
    return config


@router.patch("/configs/{config_id}", response_model=POSConfigOut)
async def update_config(
    config_id: int,
    config_data: POSConfigUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Partially update a POS configuration"""
    try:
        config = POSConfigService(db).update_config(config_id, config_data)
    except POSSyncError as e:
        raise _to_api_error(e)
    if not config:
        raise NotFoundError(f"POS configuration {config_id} not found")

    logger.info(
        f"POS configuration {config_id} updated by {current_user.username}",
        extra={"user_id": current_user.id, "config_id": config_id},
    )
    return config


@router.delete("/configs/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_config(
    config_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    if not POSConfigService(db).delete_config(config_id):
        raise NotFoundError(f"POS configuration {config_id} not found")

    logger.info(
        f"POS configuration {config_id} deleted by {current_user.username}",
        extra={"user_id": current_user.id, "config_id": config_id},
    )


@router.get("/configs/{config_id}/organizations", response_model=List[OrganizationOut])
async def list_organizations(
    config_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
    tokens: TokenManager = Depends(get_token_manager),
    adapter_factory=Depends(get_adapter_factory),
):
    """Organizations visible to the configuration's login"""
    config = POSConfigService(db).get_config(config_id)
    if not config:
        raise NotFoundError(f"POS configuration {config_id} not found")

    try:
        token = await tokens.get_token(db, config_id)
        return await adapter_factory(config.api_url).get_organizations(token)
    except POSSyncError as e:
        logger.warning(f"Failed to list organizations for configuration {config_id}: {e.message}")
        raise _to_api_error(e)


@router.get("/configs/{config_id}/terminal-groups", response_model=List[TerminalGroupOut])
async def list_terminal_groups(
    config_id: int,
    organization_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
    tokens: TokenManager = Depends(get_token_manager),
    adapter_factory=Depends(get_adapter_factory),
):
    """Terminal groups of the configuration's organization (or the one given)"""
    config = POSConfigService(db).get_config(config_id)
    if not config:
        raise NotFoundError(f"POS configuration {config_id} not found")

    try:
        token = await tokens.get_token(db, config_id)
        return await adapter_factory(config.api_url).get_terminal_groups(
            token, organization_id or config.organization_id
        )
    except POSSyncError as e:
        logger.warning(f"Failed to list terminal groups for configuration {config_id}: {e.message}")
        raise _to_api_error(e)


# Category mappings


@router.get("/category-mappings", response_model=List[CategoryMappingOut])
async def list_category_mappings(
    store_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return CategoryMappingService(db).list_mappings(store_id=store_id)


@router.post(
    "/category-mappings",
    response_model=CategoryMappingOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_category_mapping(
    mapping_data: CategoryMappingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    try:
        return CategoryMappingService(db).create_mapping(mapping_data)
    except POSSyncError as e:
        raise _to_api_error(e)


@router.get("/category-mappings/{mapping_id}", response_model=CategoryMappingOut)
async def get_category_mapping(
    mapping_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    mapping = CategoryMappingService(db).get_mapping(mapping_id)
    if not mapping:
        raise NotFoundError(f"Category mapping {mapping_id} not found")
    return mapping


@router.patch("/category-mappings/{mapping_id}", response_model=CategoryMappingOut)
async def update_category_mapping(
    mapping_id: int,
    mapping_data: CategoryMappingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    try:
        mapping = CategoryMappingService(db).update_mapping(mapping_id, mapping_data)
    except POSSyncError as e:
        raise _to_api_error(e)
    if not mapping:
        raise NotFoundError(f"Category mapping {mapping_id} not found")
    return mapping


@router.delete("/category-mappings/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category_mapping(
    mapping_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    if not CategoryMappingService(db).delete_mapping(mapping_id):
        raise NotFoundError(f"Category mapping {mapping_id} not found")


# Order queue


@router.post(
    "/orders/enqueue",
    response_model=EnqueueOrderResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_order(
    request: EnqueueOrderRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Queue an order for pushing to the POS"""
    try:
        entry = OrderQueueService(db).enqueue(request.payload, priority=request.priority)
    except POSSyncError as e:
        raise _to_api_error(e)

    return EnqueueOrderResponse(
        queue_id=entry.id,
        order_number=entry.order_number,
        status=entry.status,
        idempotency_key=entry.idempotency_key,
    )


@router.get("/queue", response_model=QueueOverviewResponse)
async def get_queue(
    status_filter: Optional[QueueStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """Queue counts by status plus the most recent entries"""
    service = OrderQueueService(db)
    return QueueOverviewResponse(
        stats=service.get_queue_stats(),
        entries=service.list_entries(status=status_filter, limit=limit),
    )


# Sync triggers and status


@router.post("/sync/orders", response_model=OrderSyncRunResult)
async def trigger_order_sync(
    current_user: User = Depends(require_admin),
    scheduler: POSSyncScheduler = Depends(get_scheduler),
):
    """Drain one batch of the order queue now"""
    logger.info(
        f"Manual order sync triggered by {current_user.username}",
        extra={"user_id": current_user.id},
    )
    try:
        return await scheduler.trigger_order_sync()
    except POSSyncError as e:
        raise _to_api_error(e)


@router.post("/sync/menu", response_model=MenuSyncRunResult)
async def trigger_menu_sync(
    current_user: User = Depends(require_admin),
    scheduler: POSSyncScheduler = Depends(get_scheduler),
):
    """Pull the menu for every active configuration now"""
    logger.info(
        f"Manual menu sync triggered by {current_user.username}",
        extra={"user_id": current_user.id},
    )
    try:
        return await scheduler.trigger_menu_sync()
    except POSSyncError as e:
        raise _to_api_error(e)


@router.get("/scheduler/status", response_model=SchedulerStatusResponse)
async def get_scheduler_status(
    current_user: User = Depends(require_admin),
    scheduler: POSSyncScheduler = Depends(get_scheduler),
):
    return scheduler.get_scheduler_status()
