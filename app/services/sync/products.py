# app/services/sync/products.py
"""
Products, matched by handle.

A lean sync: core product fields, options, variant prices and SKUs, and product
metafields. Media and inventory stay out of scope. Every variant gets a mapping
of its own (matched by SKU, or by title when the variant has no SKU) so that
variant references inside metafields can be translated.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from app.core.enums import ResourceType, SyncType
from app.core.exceptions import ShopifyServiceError
from app.services.sync.base import ResourceSync, new_summary
from app.services.sync.metafield_values import METAFIELDS_FRAGMENT, metafield_nodes, sync_owner_metafields

logger = logging.getLogger(__name__)

DEFAULT_OPTION = ("Title", "Default Title")

_VARIANT_FIELDS = """
  id
  title
  sku
  price
  compareAtPrice
  barcode
  taxable
  selectedOptions {
    name
    value
  }
"""

PRODUCTS_QUERY = f"""
query GetProducts($first: Int!, $after: String) {{
  products(first: $first, after: $after) {{
    nodes {{
      id
      title
      handle
      descriptionHtml
      vendor
      productType
      status
      tags
      templateSuffix
      seo {{
        title
        description
      }}
      options {{
        name
        values
      }}
      variants(first: 100) {{
        nodes {{
          {_VARIANT_FIELDS}
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

STAGING_PRODUCTS_QUERY = f"""
query GetStagingProducts($first: Int!, $after: String) {{
  products(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      variants(first: 100) {{
        nodes {{
          {_VARIANT_FIELDS}
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

PRODUCT_CREATE_MUTATION = f"""
mutation productCreate($product: ProductCreateInput!) {{
  productCreate(product: $product) {{
    product {{
      id
      handle
      title
      variants(first: 1) {{
        nodes {{
          {_VARIANT_FIELDS}
        }}
      }}
    }}
    userErrors {{
      field
      message
    }}
  }}
}}
"""

PRODUCT_UPDATE_MUTATION = """
mutation productUpdate($product: ProductUpdateInput!) {
  productUpdate(product: $product) {
    product {
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

VARIANTS_BULK_CREATE_MUTATION = f"""
mutation productVariantsBulkCreate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {{
  productVariantsBulkCreate(productId: $productId, variants: $variants, strategy: REMOVE_STANDALONE_VARIANT) {{
    productVariants {{
      {_VARIANT_FIELDS}
    }}
    userErrors {{
      field
      message
      code
    }}
  }}
}}
"""

VARIANTS_BULK_UPDATE_MUTATION = f"""
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {{
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {{
    productVariants {{
      {_VARIANT_FIELDS}
    }}
    userErrors {{
      field
      message
      code
    }}
  }}
}}
"""


def option_key(variant: Dict[str, Any]) -> Tuple[Tuple[str, str], ...]:
    return tuple(sorted((o["name"], o["value"]) for o in variant.get("selectedOptions") or []))


def has_only_default_variant(product: Dict[str, Any]) -> bool:
    options = product.get("options") or []
    return len(options) == 1 and (options[0]["name"], (options[0].get("values") or [None])[0]) == DEFAULT_OPTION


def build_product_input(product: Dict[str, Any]) -> Dict[str, Any]:
    product_input = {
        "title": product.get("title"),
        "handle": product.get("handle"),
        "descriptionHtml": product.get("descriptionHtml") or "",
        "vendor": product.get("vendor"),
        "productType": product.get("productType"),
        "status": product.get("status"),
        "tags": product.get("tags") or [],
    }
    if product.get("templateSuffix"):
        product_input["templateSuffix"] = product["templateSuffix"]
    seo = product.get("seo") or {}
    if seo.get("title") or seo.get("description"):
        product_input["seo"] = {"title": seo.get("title"), "description": seo.get("description")}
    return product_input


def build_variant_input(variant: Dict[str, Any], staging_id: Optional[str] = None) -> Dict[str, Any]:
    variant_input: Dict[str, Any] = {
        "price": variant.get("price"),
        "compareAtPrice": variant.get("compareAtPrice"),
        "barcode": variant.get("barcode"),
        "taxable": variant.get("taxable", True),
        "inventoryItem": {"sku": variant.get("sku") or None},
    }
    if staging_id:
        variant_input["id"] = staging_id
    else:
        variant_input["optionValues"] = [
            {"optionName": o["name"], "name": o["value"]} for o in variant.get("selectedOptions") or []
        ]
    return variant_input


class ProductSync(ResourceSync):
    sync_type = SyncType.PRODUCTS
    resource_type = ResourceType.PRODUCT.value
    label = "products"

    def new_summary(self) -> Dict[str, Any]:
        return new_summary(variants_mapped=0, metafields_set=0, unmapped_references=0)

    async def fetch_production(self) -> List[Dict[str, Any]]:
        return await self.ctx.production.fetch_all(PRODUCTS_QUERY, ["products"], page_size=50)

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        staging_products = await self.ctx.staging.fetch_all(STAGING_PRODUCTS_QUERY, ["products"], page_size=100)
        self.staging_by_handle = {p["handle"]: p for p in staging_products}
        self.log.add(f"Found {len(staging_products)} products in staging")
        return items

    async def process_item(self, product: Dict[str, Any]) -> None:
        handle, title = product["handle"], product["title"]
        product_input = build_product_input(product)
        variants = (product.get("variants") or {}).get("nodes") or []
        existing = self.staging_by_handle.get(handle)

        if existing:
            payload = await self.mutate(
                PRODUCT_UPDATE_MUTATION, {"product": {"id": existing["id"], **product_input}}, "productUpdate"
            )
            staging_product = payload.get("product") or existing
            self.record_updated(title, f"Updated product: {title}")
        else:
            if not has_only_default_variant(product):
                product_input["productOptions"] = [
                    {"name": o["name"], "values": [{"name": v} for v in o.get("values") or []]}
                    for o in product.get("options") or []
                ]
            payload = await self.mutate(PRODUCT_CREATE_MUTATION, {"product": product_input}, "productCreate")
            staging_product = payload["product"]
            self.staging_by_handle[handle] = staging_product
            self.record_created(title, f"Created product: {title}")

        await self.save_mapping(product, staging_product, "handle", handle, title=title)

        # The product is already counted; variant problems are reported against it
        try:
            if existing:
                staging_variants = await self.update_variants(
                    staging_product["id"], variants, (existing.get("variants") or {}).get("nodes") or []
                )
            else:
                staging_variants = await self.create_variants(product, staging_product, variants)
        except ShopifyServiceError as e:
            error = f"{title} variants: {str(e)}"
            self.summary["errors"].append(error)
            self.log.add(error, success=False, error=error)
        else:
            await self.map_variants(variants, staging_variants)

        metafields = metafield_nodes(product)
        if metafields:
            outcome = await sync_owner_metafields(
                self.ctx, staging_product["id"], metafields, f"product:{handle}", self.sync_type.value
            )
            self.summary["metafields_set"] += outcome["written"]
            self.summary["unmapped_references"] += outcome["unmapped"]
            for error in outcome["errors"]:
                self.summary["errors"].append(error)
                self.log.add(error, success=False, error=error)

    async def create_variants(
        self, product: Dict[str, Any], staging_product: Dict[str, Any], variants: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        default_variants = (staging_product.get("variants") or {}).get("nodes") or []
        if has_only_default_variant(product):
            # productCreate already made the single variant; copy price and SKU onto it
            if not variants or not default_variants:
                return default_variants
            return await self.update_variants(staging_product["id"], variants[:1], default_variants)

        if not variants:
            return default_variants
        payload = await self.mutate(VARIANTS_BULK_CREATE_MUTATION, {
            "productId": staging_product["id"],
            "variants": [build_variant_input(v) for v in variants],
        }, "productVariantsBulkCreate")
        return payload.get("productVariants") or []

    async def update_variants(
        self, staging_product_id: str, variants: List[Dict[str, Any]], staging_variants: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        staging_by_options = {option_key(v): v for v in staging_variants}
        updates = []
        for variant in variants:
            match = staging_by_options.get(option_key(variant))
            if match is None and len(variants) == 1 and len(staging_variants) == 1:
                match = staging_variants[0]
            if match:
                updates.append(build_variant_input(variant, match["id"]))
        if not updates:
            return staging_variants

        payload = await self.mutate(VARIANTS_BULK_UPDATE_MUTATION, {
            "productId": staging_product_id,
            "variants": updates,
        }, "productVariantsBulkUpdate")
        return payload.get("productVariants") or staging_variants

    async def map_variants(self, variants: List[Dict[str, Any]], staging_variants: List[Dict[str, Any]]) -> None:
        staging_by_options = {option_key(v): v for v in staging_variants}
        staging_by_sku = {v["sku"]: v for v in staging_variants if v.get("sku")}

        for variant in variants:
            sku = variant.get("sku")
            match = (staging_by_sku.get(sku) if sku else None) or staging_by_options.get(option_key(variant))
            if match is None and len(variants) == 1 and len(staging_variants) == 1:
                match = staging_variants[0]
            if match is None:
                self.log.add(f"No staging variant found for {variant.get('title')} ({sku or 'no SKU'})")
                continue
            await self.save_mapping(
                variant,
                match,
                "sku" if sku else "title",
                sku or variant.get("title"),
                title=variant.get("title"),
                metadata={"selectedOptions": variant.get("selectedOptions") or []},
                resource_type=ResourceType.VARIANT.value,
            )
            self.summary["variants_mapped"] += 1
