# app/services/sync/collections.py
"""
Collections, matched by handle.

Before the collections themselves, the COLLECTION metafield definitions are
synced so collection metafields have somewhere to land. After each collection
is written its metafields are translated and set, and manual collections get
their products attached by looking up staging products with the same handles.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from app.core.enums import ResourceType, SyncType
from app.services.sync.base import ResourceSync, new_summary
from app.services.sync.metafield_values import METAFIELDS_FRAGMENT, metafield_nodes, sync_owner_metafields
from app.services.sync.metafields import MetafieldDefinitionSync

logger = logging.getLogger(__name__)

HANDLE_LOOKUP_CHUNK = 50

COLLECTIONS_QUERY = f"""
query GetCollections($first: Int!, $after: String) {{
  collections(first: $first, after: $after) {{
    nodes {{
      id
      title
      handle
      descriptionHtml
      templateSuffix
      sortOrder
      seo {{
        title
        description
      }}
      image {{
        url
        altText
      }}
      ruleSet {{
        appliedDisjunctively
        rules {{
          column
          relation
          condition
        }}
      }}
      {METAFIELDS_FRAGMENT}
    }}
    pageInfo {{
      hasNextPage
      endCursor
    }}
  }}
}}
"""

STAGING_COLLECTIONS_QUERY = """
query GetStagingCollections($first: Int!, $after: String) {
  collections(first: $first, after: $after) {
    nodes {
      id
      handle
      title
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

COLLECTION_PRODUCTS_QUERY = """
query GetCollectionProducts($id: ID!, $first: Int!, $after: String) {
  collection(id: $id) {
    products(first: $first, after: $after) {
      nodes {
        id
        handle
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""

PRODUCTS_BY_HANDLE_QUERY = """
query ProductsByHandle($query: String!, $first: Int!) {
  products(first: $first, query: $query) {
    nodes {
      id
      handle
    }
  }
}
"""

COLLECTION_CREATE_MUTATION = """
mutation collectionCreate($input: CollectionInput!) {
  collectionCreate(input: $input) {
    collection {
      id
      handle
      title
    }
    userErrors {
      field
      message
    }
  }
}
"""

COLLECTION_UPDATE_MUTATION = """
mutation collectionUpdate($input: CollectionInput!) {
  collectionUpdate(input: $input) {
    collection {
      id
      handle
      title
    }
    userErrors {
      field
      message
    }
  }
}
"""

COLLECTION_ADD_PRODUCTS_MUTATION = """
mutation collectionAddProducts($id: ID!, $productIds: [ID!]!) {
  collectionAddProducts(id: $id, productIds: $productIds) {
    collection {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""


def build_collection_input(collection: Dict[str, Any]) -> Dict[str, Any]:
    collection_input = {
        "title": collection.get("title"),
        "handle": collection.get("handle"),
        "descriptionHtml": collection.get("descriptionHtml") or "",
    }
    if collection.get("templateSuffix"):
        collection_input["templateSuffix"] = collection["templateSuffix"]
    if collection.get("sortOrder"):
        collection_input["sortOrder"] = collection["sortOrder"]

    seo = collection.get("seo") or {}
    if seo.get("title") or seo.get("description"):
        collection_input["seo"] = {"title": seo.get("title"), "description": seo.get("description")}

    image = collection.get("image")
    if image and image.get("url"):
        collection_input["image"] = {"src": image["url"], "altText": image.get("altText")}

    rule_set = collection.get("ruleSet")
    if rule_set and rule_set.get("rules"):
        collection_input["ruleSet"] = {
            "appliedDisjunctively": bool(rule_set.get("appliedDisjunctively")),
            "rules": [
                {"column": r["column"], "relation": r["relation"], "condition": r["condition"]}
                for r in rule_set["rules"]
            ],
        }
    return collection_input


def handle_search_query(handles: List[str]) -> str:
    return " OR ".join(f"handle:{handle}" for handle in handles)


class CollectionSync(ResourceSync):
    sync_type = SyncType.COLLECTIONS
    resource_type = ResourceType.COLLECTION.value
    label = "collections"

    def new_summary(self) -> Dict[str, Any]:
        return new_summary(products_added=0, metafields_set=0, unmapped_references=0, metafield_definitions=None)

    async def sync_metafield_definitions(self) -> None:
        definition_sync = MetafieldDefinitionSync(replace(self.ctx, on_progress=None), owner_types=["COLLECTION"])
        result = await definition_sync.run()
        s = result["summary"]
        self.summary["metafield_definitions"] = {
            "created": s["created"], "existing": s["existing"], "skipped": s["skipped"], "failed": s["failed"],
        }
        self.log.add(
            f"Collection metafield definitions: {s['created']} created, {s['existing']} existing, "
            f"{s['failed']} failed",
            success=result["success"],
        )

    async def fetch_production(self) -> List[Dict[str, Any]]:
        await self.sync_metafield_definitions()
        return await self.ctx.production.fetch_all(COLLECTIONS_QUERY, ["collections"], page_size=50)

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        staging_collections = await self.ctx.staging.fetch_all(
            STAGING_COLLECTIONS_QUERY, ["collections"], page_size=250
        )
        self.staging_by_handle = {c["handle"]: c for c in staging_collections}
        self.log.add(f"Found {len(staging_collections)} collections in staging")
        return items

    async def find_staging_products(self, handles: List[str]) -> Dict[str, str]:
        """Map product handle -> staging product GID for the handles that exist in staging."""
        found: Dict[str, str] = {}
        for start in range(0, len(handles), HANDLE_LOOKUP_CHUNK):
            chunk = handles[start:start + HANDLE_LOOKUP_CHUNK]
            data = await self.ctx.staging.execute(
                PRODUCTS_BY_HANDLE_QUERY, {"query": handle_search_query(chunk), "first": len(chunk)}
            )
            wanted = set(chunk)
            for node in (data.get("products") or {}).get("nodes") or []:
                if node["handle"] in wanted:
                    found[node["handle"]] = node["id"]
        return found

    async def add_products(self, collection: Dict[str, Any], staging_id: str, is_new: bool) -> None:
        production_products = await self.ctx.production.fetch_all(
            COLLECTION_PRODUCTS_QUERY, ["collection", "products"], {"id": collection["id"]}, page_size=250
        )
        if not production_products:
            return

        already_in = set()
        if not is_new:
            staging_products = await self.ctx.staging.fetch_all(
                COLLECTION_PRODUCTS_QUERY, ["collection", "products"], {"id": staging_id}, page_size=250
            )
            already_in = {p["handle"] for p in staging_products}

        handles = [p["handle"] for p in production_products if p["handle"] not in already_in]
        if not handles:
            return

        staging_products = await self.find_staging_products(handles)
        missing = len(handles) - len(staging_products)
        if missing:
            self.log.add(f"{missing} product(s) of {collection['title']} are not in staging yet")
        if not staging_products:
            return

        await self.mutate(
            COLLECTION_ADD_PRODUCTS_MUTATION,
            {"id": staging_id, "productIds": list(staging_products.values())},
            "collectionAddProducts",
        )
        self.summary["products_added"] += len(staging_products)
        self.log.add(f"Added {len(staging_products)} product(s) to {collection['title']}", success=True)

    async def process_item(self, collection: Dict[str, Any]) -> None:
        handle = collection["handle"]
        title = collection["title"]
        collection_input = build_collection_input(collection)
        existing: Optional[Dict[str, Any]] = self.staging_by_handle.get(handle)

        if existing:
            payload = await self.mutate(
                COLLECTION_UPDATE_MUTATION, {"input": {"id": existing["id"], **collection_input}}, "collectionUpdate"
            )
            staging_collection = payload.get("collection") or existing
            self.record_updated(title, f"Updated collection: {title}")
        else:
            payload = await self.mutate(COLLECTION_CREATE_MUTATION, {"input": collection_input}, "collectionCreate")
            staging_collection = payload["collection"]
            self.staging_by_handle[handle] = staging_collection
            self.record_created(title, f"Created collection: {title}")

        await self.save_mapping(collection, staging_collection, "handle", handle, title=title)

        metafields = metafield_nodes(collection)
        if metafields:
            outcome = await sync_owner_metafields(
                self.ctx, staging_collection["id"], metafields, f"collection:{handle}", self.sync_type.value
            )
            self.summary["metafields_set"] += outcome["written"]
            self.summary["unmapped_references"] += outcome["unmapped"]
            for error in outcome["errors"]:
                self.summary["errors"].append(error)
                self.log.add(error, success=False, error=error)

        # Smart collections select their own products
        if not collection.get("ruleSet"):
            try:
                await self.add_products(collection, staging_collection["id"], is_new=existing is None)
            except Exception as e:
                logger.exception(f"Could not add products to collection {handle}")
                error = f"{title} products: {str(e)}"
                self.summary["errors"].append(error)
                self.log.add(error, success=False, error=error)
