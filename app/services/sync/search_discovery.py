# app/services/sync/search_discovery.py
"""
Search & Discovery product recommendations.

The app stores related and complementary products as list.product_reference
metafields in a reserved namespace on each product. They are copied onto the
mapped staging product through the reference translator. Lists keep their
length: products that are not in staging yet keep their production GID and are
recorded as unmapped.
"""

import logging
from typing import Any, Dict, List

from app.core.enums import ResourceType, SyncType
from app.services.shopify.gid import extract_id
from app.services.sync.base import ResourceSync, new_summary
from app.services.sync.metafield_values import sync_owner_metafields

logger = logging.getLogger(__name__)

RECOMMENDATION_NAMESPACE = "shopify--discovery--product_recommendation"
RECOMMENDATION_TYPE = "list.product_reference"

RECOMMENDATION_METAFIELDS_QUERY = f"""
query GetRecommendationMetafields($first: Int!, $after: String) {{
  products(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      metafields(first: 20, namespace: "{RECOMMENDATION_NAMESPACE}") {{
        nodes {{
          namespace
          key
          type
          value
        }}
      }}
    }}
    pageInfo {{
      hasNextPage
      endCursor
    }}
  }}
}}
"""


class SearchDiscoverySync(ResourceSync):
    sync_type = SyncType.SEARCH_DISCOVERY
    resource_type = ResourceType.PRODUCT.value
    label = "products with recommendations"

    def new_summary(self) -> Dict[str, Any]:
        return new_summary(
            metafields_processed=0,
            metafields_updated=0,
            metafields_skipped=0,
            unmapped_references=0,
        )

    async def fetch_production(self) -> List[Dict[str, Any]]:
        products = await self.ctx.production.fetch_all(RECOMMENDATION_METAFIELDS_QUERY, ["products"], page_size=100)
        return [p for p in products if (p.get("metafields") or {}).get("nodes")]

    async def process_item(self, product: Dict[str, Any]) -> None:
        handle = product["handle"]
        mapping = await self.ctx.mappings.get_mapping(
            self.connection_id, ResourceType.PRODUCT.value, extract_id(product["id"])
        )
        metafields = product["metafields"]["nodes"]
        if mapping is None:
            self.summary["metafields_skipped"] += len(metafields)
            self.record_skipped(handle, "product is not synced to staging yet")
            return

        self.summary["metafields_processed"] += len(metafields)
        recommendations = [m for m in metafields if m.get("type") == RECOMMENDATION_TYPE]
        self.summary["metafields_skipped"] += len(metafields) - len(recommendations)
        if not recommendations:
            self.record_skipped(handle, "no recommendation metafields to write")
            return

        outcome = await sync_owner_metafields(
            self.ctx, mapping.staging_gid, recommendations, f"product:{handle}", self.sync_type.value
        )
        self.summary["metafields_updated"] += outcome["written"]
        self.summary["unmapped_references"] += outcome["unmapped"]
        if outcome["errors"] and not outcome["written"]:
            self.record_failure(handle, "; ".join(outcome["errors"]))
            return

        for error in outcome["errors"]:
            self.summary["errors"].append(error)
            self.log.add(error, success=False, error=error)
        self.record_updated(handle, f"Updated {outcome['written']} recommendation metafield(s) on {handle}")
