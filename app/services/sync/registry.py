# app/services/sync/registry.py
from typing import Dict, Type

from app.core.enums import SyncType
from app.services.sync.base import ResourceSync, SyncContext
from app.services.sync.collections import CollectionSync
from app.services.sync.files import FileSync
from app.services.sync.locations import LocationSync
from app.services.sync.markets import MarketSync
from app.services.sync.metafields import MetafieldDefinitionSync
from app.services.sync.metaobjects import MetaobjectDefinitionSync
from app.services.sync.navigation import NavigationSync
from app.services.sync.pages import PageSync
from app.services.sync.products import ProductSync
from app.services.sync.search_discovery import SearchDiscoverySync

SYNC_MODULES: Dict[SyncType, Type[ResourceSync]] = {
    SyncType.METAFIELD_DEFINITIONS: MetafieldDefinitionSync,
    SyncType.METAOBJECT_DEFINITIONS: MetaobjectDefinitionSync,
    SyncType.PRODUCTS: ProductSync,
    SyncType.COLLECTIONS: CollectionSync,
    SyncType.LOCATIONS: LocationSync,
    SyncType.NAVIGATION: NavigationSync,
    SyncType.PAGES: PageSync,
    SyncType.FILES: FileSync,
    SyncType.MARKETS: MarketSync,
    SyncType.SEARCH_DISCOVERY: SearchDiscoverySync,
}


def build_sync(sync_type: SyncType, ctx: SyncContext) -> ResourceSync:
    return SYNC_MODULES[SyncType(sync_type)](ctx)
