# app/services/gid_translator.py
"""
Rewrites production GIDs embedded in values to their staging equivalents.

Translation is best effort: mapped GIDs are replaced in place, unmapped ones
are left as the original production GID and recorded in the unmapped ledger.
No function here drops, nulls or shortens a value because of a missing mapping.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from app.services.resource_mapping import ResourceMappingService
from app.services.shopify.gid import (
    EMBEDDED_GID_PATTERN,
    contains_gids,
    extract_gids,
    normalize_type,
    parse_gid,
)

logger = logging.getLogger(__name__)

TEXT_TYPES = {
    "single_line_text_field",
    "multi_line_text_field",
    "rich_text_field",
    "url",
}

JSON_TYPES = {
    "json",
    "list.single_line_text_field",
    "list.multi_line_text_field",
    "list.url",
}

SINGLE_REFERENCE_TYPES = {
    "product_reference",
    "collection_reference",
    "variant_reference",
    "metaobject_reference",
    "mixed_reference",
    "page_reference",
    "file_reference",
    "resource_reference",
}


def _is_list_reference(metafield_type: str) -> bool:
    return metafield_type.startswith("list.") and metafield_type.endswith("_reference")


def _empty_stats() -> Dict[str, int]:
    return {"translated": 0, "unmapped": 0, "skipped": 0}


class GidTranslator:
    """Reference translator bound to one mapping store."""

    def __init__(self, mappings: ResourceMappingService):
        self.mappings = mappings

    async def translate_gid(
        self, connection_id: int, gid: str, context: str, sync_type: str
    ) -> Dict[str, Any]:
        """
        Resolve one GID. On a miss the reference is logged and staging_gid is None;
        the caller decides what to keep.
        """
        parsed = parse_gid(gid)
        if not parsed:
            return {"success": False, "staging_gid": None, "resource_type": None, "unmapped": False}

        resource_type = normalize_type(parsed["type"])
        mapping = await self.mappings.get_mapping(connection_id, resource_type, parsed["id"])
        if mapping:
            return {"success": True, "staging_gid": mapping.staging_gid, "resource_type": resource_type, "unmapped": False}

        await self.mappings.log_unmapped_reference(connection_id, gid, context, sync_type)
        return {"success": False, "staging_gid": None, "resource_type": resource_type, "unmapped": True}

    async def translate_gids_in_string(
        self, connection_id: int, value: Any, context: str, sync_type: str
    ) -> Dict[str, Any]:
        """Replace every mapped GID in a string, leaving unmapped GIDs untouched."""
        result = {
            "value": value,
            "original_value": value,
            "translated": 0,
            "unmapped": 0,
            "skipped": False,
            "partially_translated": False,
        }
        if not contains_gids(value):
            return result

        replacements: Dict[str, Optional[str]] = {}
        for gid in extract_gids(value):
            translation = await self.translate_gid(connection_id, gid, context, sync_type)
            if translation["success"]:
                replacements[gid] = translation["staging_gid"]
                result["translated"] += 1
            else:
                replacements.setdefault(gid, None)
                result["unmapped"] += 1

        # Single substitution pass so a staging GID is never re-translated
        result["value"] = EMBEDDED_GID_PATTERN.sub(
            lambda m: replacements.get(m.group(0)) or m.group(0), value
        )
        result["partially_translated"] = result["translated"] > 0 and result["unmapped"] > 0
        return result

    async def translate_gids_in_array(
        self, connection_id: int, values: List[Any], context: str, sync_type: str
    ) -> Dict[str, Any]:
        """Element-wise translation; the output always has the input's length."""
        translated_values = []
        totals = {"translated": 0, "unmapped": 0}

        for index, item in enumerate(values):
            item_context = f"{context}[{index}]"
            outcome = await self._translate_any(connection_id, item, item_context, sync_type)
            translated_values.append(outcome["value"])
            totals["translated"] += outcome["translated"]
            totals["unmapped"] += outcome["unmapped"]

        return {
            "value": translated_values,
            "translated": totals["translated"],
            "unmapped": totals["unmapped"],
            "partially_translated": totals["translated"] > 0 and totals["unmapped"] > 0,
        }

    async def translate_gids_in_object(
        self, connection_id: int, obj: Dict[str, Any], context: str, sync_type: str
    ) -> Dict[str, Any]:
        translated_obj = {}
        totals = {"translated": 0, "unmapped": 0}

        for key, item in obj.items():
            outcome = await self._translate_any(connection_id, item, f"{context}.{key}", sync_type)
            translated_obj[key] = outcome["value"]
            totals["translated"] += outcome["translated"]
            totals["unmapped"] += outcome["unmapped"]

        return {
            "value": translated_obj,
            "translated": totals["translated"],
            "unmapped": totals["unmapped"],
            "partially_translated": totals["translated"] > 0 and totals["unmapped"] > 0,
        }

    async def _translate_any(self, connection_id: int, value: Any, context: str, sync_type: str) -> Dict[str, Any]:
        if isinstance(value, str):
            return await self.translate_gids_in_string(connection_id, value, context, sync_type)
        if isinstance(value, list):
            return await self.translate_gids_in_array(connection_id, value, context, sync_type)
        if isinstance(value, dict):
            return await self.translate_gids_in_object(connection_id, value, context, sync_type)
        return {"value": value, "translated": 0, "unmapped": 0}

    async def translate_metafield_value(
        self,
        connection_id: int,
        metafield: Dict[str, Any],
        owner_context: str,
        sync_type: str,
    ) -> Dict[str, Any]:
        """
        Translate one metafield according to its declared type.

        Returns a copy of the metafield with a `translation_stats` entry. The
        value is never nulled: unmapped references keep their production GID
        and unparseable JSON is passed through with zeroed stats.
        """
        metafield_type = metafield.get("type") or ""
        value = metafield.get("value")
        context = f"{owner_context} metafield:{metafield.get('namespace')}.{metafield.get('key')}"
        translated = dict(metafield)
        stats = _empty_stats()

        if value is None or value == "":
            stats["skipped"] = 1
            translated["translation_stats"] = stats
            return translated

        try:
            if metafield_type in TEXT_TYPES:
                outcome = await self.translate_gids_in_string(connection_id, value, context, sync_type)
                translated["value"] = outcome["value"]

            elif metafield_type in JSON_TYPES:
                parsed = json.loads(value)
                outcome = await self._translate_any(connection_id, parsed, context, sync_type)
                if outcome["translated"]:
                    translated["value"] = json.dumps(outcome["value"])

            elif metafield_type in SINGLE_REFERENCE_TYPES:
                outcome = await self.translate_gids_in_string(connection_id, value, context, sync_type)
                translated["value"] = outcome["value"]

            elif _is_list_reference(metafield_type):
                parsed = json.loads(value)
                if not isinstance(parsed, list):
                    raise ValueError(f"expected a JSON array for {metafield_type}")
                outcome = await self.translate_gids_in_array(connection_id, parsed, context, sync_type)
                if outcome["translated"]:
                    translated["value"] = json.dumps(outcome["value"])

            else:
                stats["skipped"] = 1
                translated["translation_stats"] = stats
                return translated

        except (ValueError, TypeError) as e:
            logger.warning(f"Could not parse metafield value for {context}: {e}. Keeping original value.")
            translated["value"] = value
            translated["translation_stats"] = _empty_stats()
            return translated

        stats["translated"] = outcome["translated"]
        stats["unmapped"] = outcome["unmapped"]
        translated["translation_stats"] = stats
        return translated

    async def translate_metafields(
        self,
        connection_id: int,
        metafields: List[Dict[str, Any]],
        owner_context: str,
        sync_type: str,
    ) -> Dict[str, Any]:
        """Translate every metafield; all of them are returned regardless of outcome."""
        results = []
        stats = {"total": len(metafields), "translated": 0, "unmapped": 0, "skipped": 0}

        for metafield in metafields:
            translated = await self.translate_metafield_value(connection_id, metafield, owner_context, sync_type)
            item_stats = translated.get("translation_stats", {})
            stats["translated"] += item_stats.get("translated", 0)
            stats["unmapped"] += item_stats.get("unmapped", 0)
            stats["skipped"] += item_stats.get("skipped", 0)
            results.append(translated)

        if stats["unmapped"]:
            logger.warning(
                f"{stats['unmapped']} unmapped reference(s) in metafields of {owner_context}; "
                f"original production GIDs kept"
            )

        return {"metafields": results, "stats": stats}
