# app/services/sync/metaobjects.py
"""
Metaobject definitions, matched by type (case-insensitive).

Definitions can reference each other through metaobject_reference fields, so
creation happens in two passes: pass one creates each definition without the
reference fields it cannot resolve yet, pass two adds those fields once every
definition exists in staging.
"""

import logging
from typing import Any, Dict, List, Optional

from app.core.enums import ResourceType, SyncStage, SyncType
from app.services.shopify.gid import EMBEDDED_GID_PATTERN, extract_gids
from app.services.sync.base import ResourceSync, SyncContext, new_summary

logger = logging.getLogger(__name__)

RESERVED_TYPE_PREFIX = "shopify--"
METAOBJECT_DEFINITION_GID_PREFIX = "gid://shopify/MetaobjectDefinition"
REFERENCE_FIELD_TYPES = {"metaobject_reference", "list.metaobject_reference"}

METAOBJECT_DEFINITIONS_QUERY = """
query GetMetaobjectDefinitions($first: Int!, $after: String) {
  metaobjectDefinitions(first: $first, after: $after) {
    nodes {
      id
      type
      name
      description
      displayNameKey
      capabilities {
        publishable { enabled }
        translatable { enabled }
        renderable { enabled }
      }
      fieldDefinitions {
        key
        name
        description
        required
        type { name }
        validations { name value }
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

METAOBJECT_DEFINITION_TYPE_QUERY = """
query GetMetaobjectDefinitionType($id: ID!) {
  metaobjectDefinition(id: $id) {
    id
    type
  }
}
"""

METAOBJECT_DEFINITION_BY_TYPE_QUERY = """
query GetMetaobjectDefinitionByType($type: String!) {
  metaobjectDefinitionByType(type: $type) {
    id
    type
  }
}
"""

METAOBJECT_DEFINITION_CREATE_MUTATION = """
mutation CreateMetaobjectDefinition($definition: MetaobjectDefinitionCreateInput!) {
  metaobjectDefinitionCreate(definition: $definition) {
    metaobjectDefinition {
      id
      type
      name
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

METAOBJECT_DEFINITION_UPDATE_MUTATION = """
mutation UpdateMetaobjectDefinition($id: ID!, $definition: MetaobjectDefinitionUpdateInput!) {
  metaobjectDefinitionUpdate(id: $id, definition: $definition) {
    metaobjectDefinition {
      id
      type
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""


def references_metaobject_definition(validation: Dict[str, Any]) -> bool:
    return METAOBJECT_DEFINITION_GID_PREFIX in (validation.get("value") or "")


async def resolve_metaobject_definition(
    ctx: SyncContext, production_gid: str, sync_type: str, context: str, log_unmapped: bool = True
) -> Optional[str]:
    """
    Staging GID of the metaobject definition a production GID points at.

    Uses the mapping store first. On a miss, looks the definition up by type in
    both stores and records the mapping so later lookups hit.
    """
    mapping = await ctx.mappings.get_mapping_by_production_gid(ctx.connection.id, production_gid)
    if mapping:
        return mapping.staging_gid

    data = await ctx.production.execute(METAOBJECT_DEFINITION_TYPE_QUERY, {"id": production_gid})
    production_def = data.get("metaobjectDefinition")
    if production_def:
        data = await ctx.staging.execute(METAOBJECT_DEFINITION_BY_TYPE_QUERY, {"type": production_def["type"]})
        staging_def = data.get("metaobjectDefinitionByType")
        if staging_def:
            await ctx.mappings.save_mapping(ctx.connection.id, ResourceType.METAOBJECT_DEFINITION.value, {
                "production_gid": production_gid,
                "staging_gid": staging_def["id"],
                "match_key": "type",
                "match_value": production_def["type"],
                "title": production_def["type"],
            })
            return staging_def["id"]

    if log_unmapped:
        await ctx.mappings.log_unmapped_reference(ctx.connection.id, production_gid, context, sync_type)
    return None


async def translate_validations(
    ctx: SyncContext,
    validations: List[Dict[str, Any]],
    sync_type: str,
    context: str,
    log_unmapped: bool = True,
) -> Optional[List[Dict[str, Any]]]:
    """
    Validations with metaobject definition GIDs rewritten, or None if any is unresolved.

    Handles both single-GID values (metaobject_definition_id) and JSON lists of
    GIDs (metaobject_definition_ids).
    """
    translated = []
    for validation in validations or []:
        value = validation.get("value")
        if references_metaobject_definition(validation):
            replacements: Dict[str, str] = {}
            for production_gid in extract_gids(value):
                if not production_gid.startswith(METAOBJECT_DEFINITION_GID_PREFIX) or production_gid in replacements:
                    continue
                staging_gid = await resolve_metaobject_definition(ctx, production_gid, sync_type, context, log_unmapped)
                if not staging_gid:
                    return None
                replacements[production_gid] = staging_gid
            value = EMBEDDED_GID_PATTERN.sub(lambda m: replacements.get(m.group(0), m.group(0)), value)
        translated.append({"name": validation["name"], "value": value})
    return translated


def _field_input(field: Dict[str, Any], validations: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "key": field["key"],
        "name": field.get("name"),
        "description": field.get("description"),
        "required": bool(field.get("required")),
        "type": field["type"]["name"],
        "validations": validations,
    }


class MetaobjectDefinitionSync(ResourceSync):
    sync_type = SyncType.METAOBJECT_DEFINITIONS
    resource_type = ResourceType.METAOBJECT_DEFINITION.value
    label = "metaobject definitions"

    def __init__(self, ctx: SyncContext):
        super().__init__(ctx)
        self.deferred: List[Dict[str, Any]] = []

    def new_summary(self) -> Dict[str, Any]:
        return new_summary(existing=0, reserved=0, second_pass={"updated": 0, "failed": 0})

    def describe(self, item: Dict[str, Any]) -> str:
        return item.get("type", "definition")

    async def fetch_production(self) -> List[Dict[str, Any]]:
        return await self.ctx.production.fetch_all(
            METAOBJECT_DEFINITIONS_QUERY, ["metaobjectDefinitions"], page_size=50
        )

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        staging_defs = await self.ctx.staging.fetch_all(
            METAOBJECT_DEFINITIONS_QUERY, ["metaobjectDefinitions"], page_size=50
        )
        self.staging_by_type = {d["type"].lower(): d for d in staging_defs}
        self.log.add(f"Found {len(staging_defs)} metaobject definitions in staging")

        kept = [d for d in items if not d["type"].startswith(RESERVED_TYPE_PREFIX)]
        self.summary["reserved"] = len(items) - len(kept)
        if self.summary["reserved"]:
            self.log.add(f"Excluding {self.summary['reserved']} reserved metaobject definitions (shopify-- prefix)")
        return kept

    async def process_item(self, definition: Dict[str, Any]) -> None:
        definition_type = definition["type"]
        existing = self.staging_by_type.get(definition_type.lower())
        if existing:
            self.summary["existing"] += 1
            self.record_skipped(definition_type, "already exists in staging")
            await self.save_mapping(definition, existing, "type", definition_type, title=definition.get("name"))
            return

        context = f"metaobject_definition:{definition_type}"
        fields, deferred_fields = [], []
        for field in definition.get("fieldDefinitions") or []:
            if field["type"]["name"] in REFERENCE_FIELD_TYPES:
                validations = await translate_validations(
                    self.ctx, field.get("validations"), self.sync_type.value, context, log_unmapped=False
                )
                if validations is None:
                    deferred_fields.append(field)
                    continue
                fields.append(_field_input(field, validations))
            else:
                fields.append(_field_input(field, field.get("validations") or []))

        definition_input = {
            "type": definition_type,
            "name": definition.get("name"),
            "description": definition.get("description"),
            "fieldDefinitions": fields,
        }
        capabilities = {
            name: value for name, value in (definition.get("capabilities") or {}).items() if value is not None
        }
        if capabilities:
            definition_input["capabilities"] = capabilities
        if definition.get("displayNameKey") and any(f["key"] == definition["displayNameKey"] for f in fields):
            definition_input["displayNameKey"] = definition["displayNameKey"]

        payload = await self.mutate(
            METAOBJECT_DEFINITION_CREATE_MUTATION, {"definition": definition_input}, "metaobjectDefinitionCreate"
        )
        created = payload["metaobjectDefinition"]
        self.staging_by_type[definition_type.lower()] = created

        message = f"Created metaobject definition: {definition_type}"
        if deferred_fields:
            message += f" (without {len(deferred_fields)} reference field(s), added in second pass)"
            self.deferred.append({"definition": definition, "staging_id": created["id"], "fields": deferred_fields})
        self.record_created(definition_type, message)
        await self.save_mapping(definition, created, "type", definition_type, title=definition.get("name"))

    async def finalize(self) -> None:
        if not self.deferred:
            return
        await self.report_progress_second_pass()

        for entry in self.deferred:
            definition_type = entry["definition"]["type"]
            context = f"metaobject_definition:{definition_type}"
            creates, unresolved = [], []
            for field in entry["fields"]:
                validations = await translate_validations(self.ctx, field.get("validations"), self.sync_type.value, context)
                if validations is None:
                    unresolved.append(field["key"])
                else:
                    creates.append({"create": _field_input(field, validations)})

            if creates:
                try:
                    await self.mutate(
                        METAOBJECT_DEFINITION_UPDATE_MUTATION,
                        {"id": entry["staging_id"], "definition": {"fieldDefinitions": creates}},
                        "metaobjectDefinitionUpdate",
                    )
                    self.summary["second_pass"]["updated"] += 1
                    self.log.add(f"Added {len(creates)} reference field(s) to {definition_type}", success=True)
                except Exception as e:
                    logger.exception(f"Second pass failed for {definition_type}")
                    self.summary["second_pass"]["failed"] += 1
                    self.summary["errors"].append(f"{definition_type}: {str(e)}")
                    self.log.add(f"Failed to add reference fields to {definition_type}: {str(e)}", success=False, error=str(e))

            if unresolved:
                self.summary["second_pass"]["failed"] += 1
                error = f"{definition_type}: referenced definitions not found for field(s) {', '.join(unresolved)}"
                self.summary["errors"].append(error)
                self.log.add(error, success=False, error=error)

    async def report_progress_second_pass(self) -> None:
        self.log.add(f"Starting second pass to add reference fields to {len(self.deferred)} definition(s)")
        await self.report_progress(SyncStage.SECOND_PASS, "Adding metaobject reference fields...", 92)
