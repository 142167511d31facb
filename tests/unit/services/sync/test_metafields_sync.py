# Metafield definition sync unit tests
import pytest

from app.services.sync.metafields import (
    SKIP_FOREIGN_APP,
    SKIP_MISSING_PREREQUISITE,
    SKIP_RESERVED,
    MetafieldDefinitionSync,
    definition_key,
    skip_reason,
)
from tests.fakes import gid, page, payload


def definition(def_id, namespace, key, type_name="single_line_text_field", owner="PRODUCT", validations=None, **extra):
    node = {
        "id": gid("MetafieldDefinition", def_id),
        "name": key.title(),
        "namespace": namespace,
        "key": key,
        "description": "",
        "ownerType": owner,
        "pinnedPosition": None,
        "type": {"name": type_name},
        "validations": validations or [],
    }
    node.update(extra)
    return node


def by_owner(definitions):
    """Handler answering the per-owner-type definitions query."""
    return lambda v: page("metafieldDefinitions", [d for d in definitions if d["ownerType"] == v["ownerType"]])


def created_payload(staging_client):
    return lambda v: payload("metafieldDefinitionCreate", "createdDefinition", {
        "id": gid("MetafieldDefinition", staging_client.next_id()),
        "namespace": v["definition"]["namespace"],
        "key": v["definition"]["key"],
        "ownerType": v["definition"]["ownerType"],
    })


def test_skip_reason():
    assert skip_reason("shopify") == SKIP_RESERVED
    assert skip_reason("shopify--discovery--product_recommendation") == SKIP_RESERVED
    assert skip_reason("app--12345--reviews") == SKIP_FOREIGN_APP
    assert skip_reason("custom") is None


def test_definition_key_is_case_insensitive_on_key():
    assert definition_key("PRODUCT", "custom", "Fabric") == definition_key("PRODUCT", "custom", "fabric")


@pytest.mark.asyncio
async def test_creates_missing_and_classifies_skips(sync_context, production_client, staging_client, mapping_service):
    production_client.on("GetMetafieldDefinitions", by_owner([
        definition(1, "custom", "fabric", pinnedPosition=1),
        definition(2, "custom", "Care", owner="COLLECTION"),
        definition(3, "shopify", "color-pattern"),
        definition(4, "app--999--reviews", "rating"),
    ]))
    staging_client.on("GetMetafieldDefinitions", by_owner([
        definition(50, "custom", "care", owner="COLLECTION"),
    ]))
    staging_client.on("CreateMetafieldDefinition", created_payload(staging_client))

    result = await MetafieldDefinitionSync(sync_context, owner_types=["PRODUCT", "COLLECTION"]).run()

    summary = result["summary"]
    assert summary["total"] == 4
    assert summary["created"] == 1
    assert summary["existing"] == 1
    assert summary["skipped"] == 3
    assert summary["skip_reasons"] == {SKIP_RESERVED: 1, SKIP_FOREIGN_APP: 1, SKIP_MISSING_PREREQUISITE: 0}
    assert result["status"] == "success"

    created = staging_client.calls_to("CreateMetafieldDefinition")[0]["definition"]
    assert created["key"] == "fabric"
    assert created["pin"] is True

    assert await mapping_service.get_mappings_count(sync_context.connection.id, "metafield_definition") == 2
    existing = await mapping_service.get_mapping(sync_context.connection.id, "metafield_definition", "2")
    assert existing.staging_gid == gid("MetafieldDefinition", 50)
    assert existing.match_value == "COLLECTION:custom.Care"


@pytest.mark.asyncio
async def test_metaobject_validations(sync_context, production_client, staging_client, mapping_service, connection_row):
    await mapping_service.save_mapping(connection_row.id, "metaobject_definition", {
        "production_gid": gid("MetaobjectDefinition", 10),
        "staging_gid": gid("MetaobjectDefinition", 110),
        "match_key": "type",
        "match_value": "author",
    })
    mapped_validation = [{"name": "metaobject_definition_id", "value": gid("MetaobjectDefinition", 10)}]
    missing_validation = [{"name": "metaobject_definition_id", "value": gid("MetaobjectDefinition", 11)}]
    production_client.on("GetMetafieldDefinitions", by_owner([
        definition(1, "custom", "author", "metaobject_reference", validations=mapped_validation),
        definition(2, "custom", "editor", "metaobject_reference", validations=missing_validation),
        definition(3, "custom", "related", "list.mixed_reference", validations=missing_validation),
    ]))
    production_client.on("GetMetaobjectDefinitionType", {"metaobjectDefinition": {"id": gid("MetaobjectDefinition", 11), "type": "editor"}})
    staging_client.on("GetMetafieldDefinitions", by_owner([]))
    staging_client.on("GetMetaobjectDefinitionByType", {"metaobjectDefinitionByType": None})
    staging_client.on("CreateMetafieldDefinition", created_payload(staging_client))

    result = await MetafieldDefinitionSync(sync_context, owner_types=["PRODUCT"]).run()

    summary = result["summary"]
    assert summary["created"] == 2
    assert summary["skip_reasons"][SKIP_MISSING_PREREQUISITE] == 1
    creates = {c["definition"]["key"]: c["definition"] for c in staging_client.calls_to("CreateMetafieldDefinition")}
    assert creates["author"]["validations"] == [{"name": "metaobject_definition_id", "value": gid("MetaobjectDefinition", 110)}]
    # Non-reference type is created without the unresolved validation
    assert creates["related"]["validations"] == []
    # ...and still cannot be completed in the second pass
    assert summary["second_pass"] == {"updated": 0, "failed": 1}
    assert result["status"] == "partially_successful"


@pytest.mark.asyncio
async def test_second_pass_updates_when_definition_appears(sync_context, production_client, staging_client):
    validation = [{"name": "metaobject_definition_id", "value": gid("MetaobjectDefinition", 11)}]
    lookups = iter([None, {"id": gid("MetaobjectDefinition", 211), "type": "editor"}])
    production_client.on("GetMetafieldDefinitions", by_owner([
        definition(3, "custom", "related", "list.mixed_reference", validations=validation),
    ]))
    production_client.on("GetMetaobjectDefinitionType", {"metaobjectDefinition": {"id": gid("MetaobjectDefinition", 11), "type": "editor"}})
    staging_client.on("GetMetafieldDefinitions", by_owner([]))
    staging_client.on("GetMetaobjectDefinitionByType", lambda v: {"metaobjectDefinitionByType": next(lookups)})
    staging_client.on("CreateMetafieldDefinition", created_payload(staging_client))
    staging_client.on("UpdateMetafieldDefinition", payload("metafieldDefinitionUpdate", "updatedDefinition", {"id": "x"}))

    result = await MetafieldDefinitionSync(sync_context, owner_types=["PRODUCT"]).run()

    assert result["summary"]["second_pass"] == {"updated": 1, "failed": 0}
    update = staging_client.calls_to("UpdateMetafieldDefinition")[0]["definition"]
    assert update["namespace"] == "custom"
    assert update["key"] == "related"
    assert update["validations"] == [{"name": "metaobject_definition_id", "value": gid("MetaobjectDefinition", 211)}]
    assert result["status"] == "success"
