# backend/modules/pos_sync/__init__.py

"""
POS synchronization engine: outbound order queue and inbound menu sync.
"""

from .routes.pos_sync_routes import router as pos_sync_router
from .models.pos_config_models import POSConfiguration, CategoryMapping
from .models.sync_models import OrderQueueEntry, OrderSyncRecord, MenuSyncRecord
from .tasks.sync_scheduler import POSSyncScheduler, pos_sync_scheduler

# Export main router
router = pos_sync_router

__all__ = [
    "router",
    "POSConfiguration",
    "CategoryMapping",
    "OrderQueueEntry",
    "OrderSyncRecord",
    "MenuSyncRecord",
    "POSSyncScheduler",
    "pos_sync_scheduler",
]
