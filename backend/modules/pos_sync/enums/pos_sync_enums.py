from enum import Enum


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class OrderSyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    FAILED = "failed"


class MenuSyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    UNMAPPED = "unmapped"  # No category mapping for the POS group
    ERROR = "error"


class SyncTaskType(str, Enum):
    ORDER_SYNC = "order_sync"
    MENU_SYNC = "menu_sync"


class POSCreationStatus(str, Enum):
    SUCCESS = "Success"
    IN_PROGRESS = "InProgress"
    ERROR = "Error"


# Sentinel external id of the per-run menu sync marker record
MENU_SYNC_RUN_MARKER = "__SYNC_RUN__"
