# Mapping store unit tests
from datetime import datetime, timezone

import pytest

from app.core.exceptions import ValidationError
from app.services.resource_mapping import ResourceMappingService
from tests.fakes import gid


def product_mapping(prod_id, staging_id, handle="blue-shirt", **extra):
    mapping = {
        "production_gid": gid("Product", prod_id),
        "staging_gid": gid("Product", staging_id),
        "match_key": "handle",
        "match_value": handle,
        "title": "Blue Shirt",
    }
    mapping.update(extra)
    return mapping


@pytest.mark.asyncio
async def test_save_mapping_derives_ids_from_gids(mapping_service, connection_row):
    row = await mapping_service.save_mapping(connection_row.id, "product", product_mapping(1, 101))

    assert row.production_id == "1"
    assert row.staging_id == "101"
    assert row.match_key == "handle"
    assert row.match_value == "blue-shirt"
    assert row.last_synced_at is not None


@pytest.mark.asyncio
async def test_save_mapping_is_an_upsert(mapping_service, connection_row):
    first = await mapping_service.save_mapping(connection_row.id, "product", product_mapping(1, 101))
    first.last_synced_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
    await mapping_service.db.commit()

    await mapping_service.save_mapping(connection_row.id, "product", product_mapping(1, 202, handle="blue-shirt-2"))

    assert await mapping_service.get_mappings_count(connection_row.id) == 1
    row = await mapping_service.get_mapping(connection_row.id, "product", "1")
    assert row.staging_gid == gid("Product", 202)
    assert row.match_value == "blue-shirt-2"
    assert row.last_synced_at.replace(tzinfo=None) > datetime(2020, 1, 1)


@pytest.mark.asyncio
async def test_save_mapping_requires_match_key_and_value(mapping_service, connection_row):
    with pytest.raises(ValidationError):
        await mapping_service.save_mapping(connection_row.id, "product", product_mapping(1, 101, match_value=""))

    with pytest.raises(ValidationError):
        await mapping_service.save_mapping(connection_row.id, "product", product_mapping(1, 101, match_key=None))

    assert await mapping_service.get_mappings_count(connection_row.id) == 0


@pytest.mark.asyncio
async def test_save_mappings_reports_per_item_failures(mapping_service, connection_row):
    result = await mapping_service.save_mappings(connection_row.id, "product", [
        product_mapping(1, 101, handle="a"),
        product_mapping(2, 102, handle=""),
        product_mapping(3, 103, handle="c"),
    ], chunk_size=2)

    assert result["created"] == 2
    assert result["failed"] == 1
    assert result["errors"][0]["production_id"] == "2"

    again = await mapping_service.save_mappings(connection_row.id, "product", [product_mapping(1, 101, handle="a")])
    assert again["updated"] == 1
    assert again["created"] == 0


@pytest.mark.asyncio
async def test_lookup_by_production_gid(mapping_service, connection_row):
    await mapping_service.save_mapping(connection_row.id, "variant", {
        "production_gid": gid("ProductVariant", 5),
        "staging_gid": gid("ProductVariant", 55),
        "match_key": "sku",
        "match_value": "SKU-5",
    })

    row = await mapping_service.get_mapping_by_production_gid(connection_row.id, gid("ProductVariant", 5))
    assert row.staging_gid == gid("ProductVariant", 55)

    assert await mapping_service.get_mapping_by_production_gid(connection_row.id, gid("ProductVariant", 6)) is None
    assert await mapping_service.get_mapping_by_production_gid(connection_row.id, "not-a-gid") is None


@pytest.mark.asyncio
async def test_lookup_by_match(mapping_service, connection_row):
    await mapping_service.save_mapping(connection_row.id, "product", product_mapping(1, 101))

    row = await mapping_service.get_mapping_by_match(connection_row.id, "product", "handle", "blue-shirt")
    assert row.production_id == "1"
    assert await mapping_service.get_mapping_by_match(connection_row.id, "collection", "handle", "blue-shirt") is None


@pytest.mark.asyncio
async def test_mappings_are_scoped_to_connection(mapping_service, connection_row):
    await mapping_service.save_mapping(connection_row.id, "product", product_mapping(1, 101))

    assert await mapping_service.get_mapping(connection_row.id + 1, "product", "1") is None
    assert await mapping_service.get_mappings_count(connection_row.id + 1) == 0


@pytest.mark.asyncio
async def test_get_mappings_filters_and_pages(mapping_service, connection_row):
    for i in range(1, 4):
        await mapping_service.save_mapping(connection_row.id, "product", product_mapping(i, 100 + i, handle=f"p{i}"))
    await mapping_service.save_mapping(connection_row.id, "page", {
        "production_gid": gid("Page", 9),
        "staging_gid": gid("Page", 99),
        "match_key": "handle",
        "match_value": "about",
    })

    assert len(await mapping_service.get_mappings(connection_row.id)) == 4
    assert len(await mapping_service.get_mappings(connection_row.id, "product")) == 3
    assert len(await mapping_service.get_mappings(connection_row.id, "product", limit=2)) == 2
    assert await mapping_service.get_mappings_count(connection_row.id, "page") == 1

    with pytest.raises(ValidationError):
        await mapping_service.get_mappings(connection_row.id, order_by="no_such_column")


@pytest.mark.asyncio
async def test_log_unmapped_reference_dedupes_on_context(mapping_service, connection_row):
    first = await mapping_service.log_unmapped_reference(
        connection_row.id, gid("Product", 7), "collection:summer metafield:custom.hero", "collections"
    )
    second = await mapping_service.log_unmapped_reference(
        connection_row.id, gid("Product", 7), "collection:summer metafield:custom.hero", "markets"
    )
    await mapping_service.log_unmapped_reference(
        connection_row.id, gid("Product", 7), "collection:winter metafield:custom.hero", "collections"
    )

    assert first.id == second.id
    assert second.found_in_sync_type == "markets"
    assert first.resource_type == "product"
    assert first.production_id == "7"
    assert await mapping_service.get_unmapped_references_count(connection_row.id) == 2


@pytest.mark.asyncio
async def test_log_unmapped_reference_ignores_invalid_gid(mapping_service, connection_row):
    assert await mapping_service.log_unmapped_reference(connection_row.id, "junk", "ctx", "pages") is None
    assert await mapping_service.get_unmapped_references_count(connection_row.id) == 0


@pytest.mark.asyncio
async def test_mark_unmapped_reference_resolved(mapping_service, connection_row):
    reference = await mapping_service.log_unmapped_reference(connection_row.id, gid("Page", 3), "menu:main", "navigation")

    resolved = await mapping_service.mark_unmapped_reference_resolved(reference.id)

    assert resolved.resolved is True
    assert resolved.resolved_at is not None
    assert await mapping_service.get_unmapped_references_count(connection_row.id) == 0
    assert await mapping_service.get_unmapped_references_count(connection_row.id, resolved=True) == 1
    assert await mapping_service.mark_unmapped_reference_resolved(99999) is None


@pytest.mark.asyncio
async def test_mapping_stats_and_delete(mapping_service, connection_row):
    await mapping_service.save_mapping(connection_row.id, "product", product_mapping(1, 101))
    await mapping_service.save_mapping(connection_row.id, "product", product_mapping(2, 102, handle="b"))
    await mapping_service.log_unmapped_reference(connection_row.id, gid("Collection", 4), "ctx", "products")

    stats = await mapping_service.get_mapping_stats(connection_row.id)
    assert stats["total_mappings"] == 2
    assert stats["mappings_by_type"] == {"product": 2}
    assert stats["unmapped_by_type"] == {"collection": 1}

    deleted = await mapping_service.delete_mappings(connection_row.id)
    assert deleted == 2
    assert await mapping_service.get_mappings_count(connection_row.id) == 0
    assert await mapping_service.get_unmapped_references_count(connection_row.id) == 0
