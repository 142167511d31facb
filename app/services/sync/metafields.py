# app/services/sync/metafields.py
"""
Metafield definitions for every owner type, matched by owner type, namespace
and key (key compared case-insensitively).

Definitions whose validations point at a metaobject definition that staging does
not have yet are handled in two passes. Reference-typed definitions cannot be
created without the validation, so they are skipped as a missing prerequisite.
Other types are created without the validation and updated in the second pass.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from app.core.enums import ResourceType, SyncStage, SyncType
from app.services.sync.base import ResourceSync, SyncContext, new_summary
from app.services.sync.metaobjects import references_metaobject_definition, translate_validations

logger = logging.getLogger(__name__)

METAFIELD_OWNER_TYPES = [
    "PRODUCT",
    "PRODUCTVARIANT",
    "COLLECTION",
    "CUSTOMER",
    "ORDER",
    "DRAFTORDER",
    "PAGE",
    "SHOP",
    "ARTICLE",
    "BLOG",
    "COMPANY",
    "COMPANYLOCATION",
    "LOCATION",
    "MARKET",
]

METAOBJECT_REFERENCE_TYPES = {"metaobject_reference", "list.metaobject_reference"}

SKIP_RESERVED = "reserved_namespace"
SKIP_FOREIGN_APP = "foreign_app_namespace"
SKIP_MISSING_PREREQUISITE = "missing_prerequisite"

METAFIELD_DEFINITIONS_QUERY = """
query GetMetafieldDefinitions($ownerType: MetafieldOwnerType!, $first: Int!, $after: String) {
  metafieldDefinitions(ownerType: $ownerType, first: $first, after: $after) {
    nodes {
      id
      name
      namespace
      key
      description
      ownerType
      pinnedPosition
      type { name }
      validations { name value }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

METAFIELD_DEFINITION_CREATE_MUTATION = """
mutation CreateMetafieldDefinition($definition: MetafieldDefinitionInput!) {
  metafieldDefinitionCreate(definition: $definition) {
    createdDefinition {
      id
      namespace
      key
      ownerType
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

METAFIELD_DEFINITION_UPDATE_MUTATION = """
mutation UpdateMetafieldDefinition($definition: MetafieldDefinitionUpdateInput!) {
  metafieldDefinitionUpdate(definition: $definition) {
    updatedDefinition {
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


def definition_key(owner_type: str, namespace: str, key: str) -> str:
    return f"{owner_type}:{namespace}.{key.lower()}"


def skip_reason(namespace: str) -> Optional[str]:
    """Namespaces staging cannot or should not receive definitions in."""
    if namespace == "shopify" or namespace.startswith("shopify--"):
        return SKIP_RESERVED
    # $app namespaces belong to the app holding the token; other apps' are off limits
    if namespace.startswith("app--"):
        return SKIP_FOREIGN_APP
    return None


class MetafieldDefinitionSync(ResourceSync):
    sync_type = SyncType.METAFIELD_DEFINITIONS
    resource_type = ResourceType.METAFIELD_DEFINITION.value
    label = "metafield definitions"

    PAGE_SIZE = 250

    def __init__(self, ctx: SyncContext, owner_types: Optional[Iterable[str]] = None):
        super().__init__(ctx)
        self.owner_types = list(owner_types or METAFIELD_OWNER_TYPES)
        self.deferred: List[Dict[str, Any]] = []

    def new_summary(self) -> Dict[str, Any]:
        return new_summary(
            existing=0,
            skip_reasons={SKIP_RESERVED: 0, SKIP_FOREIGN_APP: 0, SKIP_MISSING_PREREQUISITE: 0},
            second_pass={"updated": 0, "failed": 0},
        )

    def describe(self, item: Dict[str, Any]) -> str:
        return f"{item.get('ownerType')} {item.get('namespace')}.{item.get('key')}"

    async def _fetch_definitions(self, client) -> List[Dict[str, Any]]:
        definitions = []
        for owner_type in self.owner_types:
            definitions.extend(await client.fetch_all(
                METAFIELD_DEFINITIONS_QUERY,
                ["metafieldDefinitions"],
                {"ownerType": owner_type},
                page_size=self.PAGE_SIZE,
            ))
        return definitions

    async def fetch_production(self) -> List[Dict[str, Any]]:
        return await self._fetch_definitions(self.ctx.production)

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        staging_defs = await self._fetch_definitions(self.ctx.staging)
        self.staging_by_key = {
            definition_key(d["ownerType"], d["namespace"], d["key"]): d for d in staging_defs
        }
        self.log.add(f"Found {len(staging_defs)} metafield definitions in staging")
        return items

    def _skip(self, definition: Dict[str, Any], reason: str, message: str) -> None:
        self.summary["skip_reasons"][reason] += 1
        self.record_skipped(self.describe(definition), message)

    async def process_item(self, definition: Dict[str, Any]) -> None:
        namespace, key, owner_type = definition["namespace"], definition["key"], definition["ownerType"]
        label = self.describe(definition)
        match_value = f"{owner_type}:{namespace}.{key}"

        reason = skip_reason(namespace)
        if reason == SKIP_RESERVED:
            self._skip(definition, reason, "reserved Shopify namespace")
            return
        if reason == SKIP_FOREIGN_APP:
            self._skip(definition, reason, "namespace owned by another app")
            return

        existing = self.staging_by_key.get(definition_key(owner_type, namespace, key))
        if existing:
            self.summary["existing"] += 1
            self.record_skipped(label, "already exists in staging")
            await self.save_mapping(definition, existing, "namespace_key", match_value, title=definition.get("name"))
            return

        validations = definition.get("validations") or []
        deferred_validations = []
        if any(references_metaobject_definition(v) for v in validations):
            translated = await translate_validations(
                self.ctx, validations, self.sync_type.value, f"metafield_definition:{match_value}", log_unmapped=False
            )
            if translated is not None:
                validations = translated
            elif definition["type"]["name"] in METAOBJECT_REFERENCE_TYPES:
                self._skip(definition, SKIP_MISSING_PREREQUISITE, "referenced metaobject definition is not in staging yet")
                return
            else:
                deferred_validations = [v for v in validations if references_metaobject_definition(v)]
                validations = [v for v in validations if not references_metaobject_definition(v)]

        definition_input = {
            "name": definition.get("name") or key,
            "namespace": namespace,
            "key": key,
            "description": definition.get("description") or "",
            "type": definition["type"]["name"],
            "ownerType": owner_type,
            "validations": [{"name": v["name"], "value": v.get("value")} for v in validations],
        }
        if definition.get("pinnedPosition") is not None:
            definition_input["pin"] = True

        payload = await self.mutate(
            METAFIELD_DEFINITION_CREATE_MUTATION, {"definition": definition_input}, "metafieldDefinitionCreate"
        )
        created = payload["createdDefinition"]
        self.staging_by_key[definition_key(owner_type, namespace, key)] = created

        if deferred_validations:
            self.deferred.append({"definition": definition, "validations": definition.get("validations") or []})
            self.record_created(label, f"Created metafield definition: {label} (validations added in second pass)")
        else:
            self.record_created(label, f"Created metafield definition: {label}")
        await self.save_mapping(definition, created, "namespace_key", match_value, title=definition.get("name"))

    async def finalize(self) -> None:
        if not self.deferred:
            return
        self.log.add(f"Starting second pass to add metaobject validations to {len(self.deferred)} definition(s)")
        await self.report_progress(SyncStage.SECOND_PASS, "Adding metaobject validations...", 92)

        for entry in self.deferred:
            definition = entry["definition"]
            label = self.describe(definition)
            validations = await translate_validations(
                self.ctx, entry["validations"], self.sync_type.value, f"metafield_definition:{label}"
            )
            if validations is None:
                self.summary["second_pass"]["failed"] += 1
                error = f"{label}: referenced metaobject definition not found in staging"
                self.summary["errors"].append(error)
                self.log.add(error, success=False, error=error)
                continue

            try:
                await self.mutate(METAFIELD_DEFINITION_UPDATE_MUTATION, {"definition": {
                    "namespace": definition["namespace"],
                    "key": definition["key"],
                    "ownerType": definition["ownerType"],
                    "validations": validations,
                }}, "metafieldDefinitionUpdate")
                self.summary["second_pass"]["updated"] += 1
                self.log.add(f"Added metaobject validations to {label}", success=True)
            except Exception as e:
                logger.exception(f"Second pass failed for {label}")
                self.summary["second_pass"]["failed"] += 1
                self.summary["errors"].append(f"{label}: {str(e)}")
                self.log.add(f"Failed to add validations to {label}: {str(e)}", success=False, error=str(e))
