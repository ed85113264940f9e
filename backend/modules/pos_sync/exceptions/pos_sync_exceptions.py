# backend/modules/pos_sync/exceptions/pos_sync_exceptions.py

"""
Domain errors raised by the POS sync engine.

These never cross the HTTP boundary directly: background workers record them
on queue entries and sync records, and the admin routes translate them into
API errors.
"""

from enum import Enum
from typing import Optional


class POSSyncErrorCode(str, Enum):
    """Error codes stored on sync records for operator visibility"""

    CONFIGURATION = "POS_CONFIG"
    AUTH = "POS_AUTH"
    NETWORK = "POS_NETWORK"
    VALIDATION = "POS_VALIDATION"
    CAPACITY = "POS_RETRY_EXHAUSTED"
    ALREADY_RUNNING = "POS_SYNC_RUNNING"


class POSSyncError(Exception):
    """Base class for POS sync failures"""

    default_code = POSSyncErrorCode.CONFIGURATION

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code.value


class ConfigurationError(POSSyncError):
    """Missing or invalid POS configuration"""

    default_code = POSSyncErrorCode.CONFIGURATION


class AuthError(POSSyncError):
    """Token fetch or refresh against the POS failed"""

    default_code = POSSyncErrorCode.AUTH


class NetworkError(POSSyncError):
    """POS unreachable, timed out, or answered with a non-2xx status"""

    default_code = POSSyncErrorCode.NETWORK

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.status_code = status_code


class ValidationError(POSSyncError):
    """Malformed payload from either side of the integration"""

    default_code = POSSyncErrorCode.VALIDATION


class CapacityError(POSSyncError):
    """Retry budget exhausted"""

    default_code = POSSyncErrorCode.CAPACITY


class SyncAlreadyRunningError(POSSyncError):
    """A sync task of the same type is already in flight"""

    default_code = POSSyncErrorCode.ALREADY_RUNNING


class MappingConflictError(ValidationError):
    """A category mapping already exists for the group and store"""
