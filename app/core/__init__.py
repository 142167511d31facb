"""
Core module exports.
"""
from .enums import (
    ResourceType,
    ScheduleFrequency,
    ScheduleRunStatus,
    SyncStage,
    SyncStatus,
    SyncType,
)

from .exceptions import (
    BaseServiceError,
    ConnectionNotFoundError,
    PlatformServiceError,
    ScheduleNotFoundError,
    ShopifyAPIError,
    ShopifyUserError,
    TokenDecryptionError,
    ValidationError,
)
