# app/services/sync/metafield_values.py
"""Translating and writing owner metafields (products, collections, markets)."""

import logging
from typing import Any, Dict, List

from app.core.exceptions import ShopifyServiceError
from app.services.shopify.client import check_user_errors
from app.services.sync.base import SyncContext

logger = logging.getLogger(__name__)

# metafieldsSet accepts at most 25 metafields per call
METAFIELDS_SET_BATCH_SIZE = 25

METAFIELDS_FRAGMENT = """
metafields(first: 100) {
  nodes {
    namespace
    key
    type
    value
  }
}
"""

METAFIELDS_SET_MUTATION = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields {
      id
      namespace
      key
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""


def metafield_nodes(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    metafields = node.get("metafields") or {}
    if isinstance(metafields, list):
        return metafields
    return metafields.get("nodes") or [edge["node"] for edge in metafields.get("edges") or []]


async def sync_owner_metafields(
    ctx: SyncContext,
    owner_gid: str,
    metafields: List[Dict[str, Any]],
    owner_context: str,
    sync_type: str,
) -> Dict[str, Any]:
    """
    Translate production references in `metafields` and write all of them to the
    staging owner. Unmapped references are written untranslated.

    Returns {"written", "translated", "unmapped", "errors"}; user and API errors
    from Shopify are collected rather than raised, so the owner itself stays
    counted once by the caller.
    """
    result = {"written": 0, "translated": 0, "unmapped": 0, "errors": []}
    writable = [m for m in metafields if m.get("value") not in (None, "")]
    if not writable:
        return result

    translation = await ctx.translator.translate_metafields(ctx.connection.id, writable, owner_context, sync_type)
    result["translated"] = translation["stats"]["translated"]
    result["unmapped"] = translation["stats"]["unmapped"]

    inputs = [
        {
            "ownerId": owner_gid,
            "namespace": m["namespace"],
            "key": m["key"],
            "type": m["type"],
            "value": m["value"],
        }
        for m in translation["metafields"]
    ]

    for start in range(0, len(inputs), METAFIELDS_SET_BATCH_SIZE):
        batch = inputs[start:start + METAFIELDS_SET_BATCH_SIZE]
        try:
            data = await ctx.staging.execute(METAFIELDS_SET_MUTATION, {"metafields": batch})
            payload = check_user_errors(data.get("metafieldsSet"), "metafieldsSet")
            result["written"] += len(payload.get("metafields") or batch)
        except ShopifyServiceError as e:
            logger.warning(f"metafieldsSet rejected metafields for {owner_context}: {str(e)}")
            result["errors"].append(f"{owner_context} metafields: {str(e)}")

    return result
