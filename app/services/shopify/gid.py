# app/services/shopify/gid.py
"""Helpers for Shopify global ids ("gid://shopify/Product/123").

All functions are total: malformed or non-string input yields None/False/[]
rather than raising.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional

# Whole-value form: scheme://namespace/Type/123
_GID_PATTERN = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*)://([^/\s]+)/([A-Za-z][A-Za-z0-9_]*)/(\d+)$")

# Embedded form used when scanning free text / JSON values
EMBEDDED_GID_PATTERN = re.compile(r"gid://shopify/([A-Za-z]+)/(\d+)")

_TYPE_MAP = {
    "Product": "product",
    "ProductVariant": "variant",
    "Collection": "collection",
    "Market": "market",
    "Location": "location",
    "Page": "page",
    "MediaImage": "file",
    "GenericFile": "file",
    "Video": "file",
    "Metaobject": "metaobject",
    "MetaobjectDefinition": "metaobject_definition",
    "MetafieldDefinition": "metafield_definition",
    "Menu": "navigation",
    "InventoryItem": "inventory_item",
    "InventoryLevel": "inventory_level",
}


def parse_gid(gid) -> Optional[Dict[str, str]]:
    """Return {"type": ..., "id": ...} or None for anything that is not a GID."""
    if not isinstance(gid, str):
        return None
    match = _GID_PATTERN.match(gid.strip())
    if not match:
        return None
    return {"type": match.group(3), "id": match.group(4)}


def extract_id(gid) -> Optional[str]:
    parsed = parse_gid(gid)
    return parsed["id"] if parsed else None


def extract_type(gid) -> Optional[str]:
    parsed = parse_gid(gid)
    return parsed["type"] if parsed else None


def normalize_type(raw_type) -> Optional[str]:
    """Map a wire type name ("ProductVariant") to the mapping-store vocabulary ("variant")."""
    if not isinstance(raw_type, str) or not raw_type:
        return None
    return _TYPE_MAP.get(raw_type, raw_type.lower())


def build_gid(raw_type: str, resource_id, namespace: str = "shopify") -> str:
    return f"gid://{namespace}/{raw_type}/{resource_id}"


def contains_gids(value) -> bool:
    if not isinstance(value, str):
        return False
    return EMBEDDED_GID_PATTERN.search(value) is not None


def extract_gids(value) -> List[str]:
    """All embedded GIDs in order, duplicates preserved."""
    if not isinstance(value, str):
        return []
    return [match.group(0) for match in EMBEDDED_GID_PATTERN.finditer(value)]
