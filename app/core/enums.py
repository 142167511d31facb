"""
Shared enums and constants used across the application.
"""

from enum import Enum


class SyncType(str, Enum):
    """Resource families that can be synced from production to staging"""
    METAFIELD_DEFINITIONS = "metafield_definitions"
    METAOBJECT_DEFINITIONS = "metaobject_definitions"
    PRODUCTS = "products"
    COLLECTIONS = "collections"
    LOCATIONS = "locations"
    NAVIGATION = "navigation"
    PAGES = "pages"
    FILES = "files"
    MARKETS = "markets"
    SEARCH_DISCOVERY = "search_discovery"

    @property
    def runs_in_background(self) -> bool:
        return self in BACKGROUND_SYNC_TYPES


# Large catalogues; the interactive path detaches these and returns a log id
BACKGROUND_SYNC_TYPES = frozenset({
    SyncType.PRODUCTS,
    SyncType.COLLECTIONS,
    SyncType.FILES,
    SyncType.SEARCH_DISCOVERY,
})


class SyncStatus(str, Enum):
    """Run record status values"""
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    PARTIALLY_SUCCESSFUL = "partially_successful"
    FAILED = "failed"


class ScheduleRunStatus(str, Enum):
    """Outcome of a full scheduled batch"""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class ScheduleFrequency(str, Enum):
    DAILY = "daily"
    EVERY_6H = "every_6h"
    EVERY_12H = "every_12h"
    WEEKLY = "weekly"


class ResourceType(str, Enum):
    """Internal resource-type vocabulary of the mapping store"""
    PRODUCT = "product"
    VARIANT = "variant"
    COLLECTION = "collection"
    MARKET = "market"
    LOCATION = "location"
    PAGE = "page"
    FILE = "file"
    METAOBJECT = "metaobject"
    METAOBJECT_DEFINITION = "metaobject_definition"
    METAFIELD_DEFINITION = "metafield_definition"
    NAVIGATION = "navigation"
    INVENTORY_ITEM = "inventory_item"
    INVENTORY_LEVEL = "inventory_level"


class SyncStage(str, Enum):
    """Progress stages reported while a sync runs"""
    FETCHING = "fetching"
    FETCHING_STAGING = "fetching_staging"
    PROCESSING = "processing"
    SECOND_PASS = "second_pass"
    COMPLETE = "complete"
