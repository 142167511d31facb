from .store_connection import StoreConnection
from .resource_mapping import ResourceMapping
from .unmapped_reference import UnmappedReference
from .sync_log import SyncLog
from .sync_schedule import SyncSchedule

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'StoreConnection',
    'ResourceMapping',
    'UnmappedReference',
    'SyncLog',
    'SyncSchedule',
]
