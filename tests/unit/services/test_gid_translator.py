# Reference translator unit tests
import json

import pytest

from app.services.gid_translator import GidTranslator
from tests.fakes import gid


@pytest.fixture
def translator(mapping_service):
    return GidTranslator(mapping_service)


@pytest.fixture
async def mapped(mapping_service, connection_row):
    """Products 1 and 2 are mapped, product 3 is not."""
    for prod_id in (1, 2):
        await mapping_service.save_mapping(connection_row.id, "product", {
            "production_gid": gid("Product", prod_id),
            "staging_gid": gid("Product", prod_id * 100),
            "match_key": "handle",
            "match_value": f"product-{prod_id}",
        })
    return connection_row.id


@pytest.mark.asyncio
async def test_translate_gid_hit_and_miss(translator, mapped, mapping_service):
    hit = await translator.translate_gid(mapped, gid("Product", 1), "ctx", "products")
    assert hit["success"] is True
    assert hit["staging_gid"] == gid("Product", 100)

    miss = await translator.translate_gid(mapped, gid("Product", 3), "ctx", "products")
    assert miss["success"] is False
    assert miss["unmapped"] is True
    assert miss["staging_gid"] is None
    assert await mapping_service.get_unmapped_references_count(mapped) == 1


@pytest.mark.asyncio
async def test_translate_gid_malformed(translator, mapped, mapping_service):
    result = await translator.translate_gid(mapped, "gid://shopify/Product/x", "ctx", "products")
    assert result["success"] is False
    assert result["unmapped"] is False
    assert await mapping_service.get_unmapped_references_count(mapped) == 0


@pytest.mark.asyncio
async def test_string_translation_is_partial(translator, mapped):
    value = f"{gid('Product', 1)},{gid('Product', 3)},{gid('Product', 2)}"

    result = await translator.translate_gids_in_string(mapped, value, "ctx", "products")

    assert result["value"] == f"{gid('Product', 100)},{gid('Product', 3)},{gid('Product', 200)}"
    assert result["translated"] == 2
    assert result["unmapped"] == 1
    assert result["partially_translated"] is True
    assert result["original_value"] == value


@pytest.mark.asyncio
async def test_repeated_string_translation_gives_the_same_result(translator, mapped):
    value = f"{gid('Product', 1)} and {gid('Product', 2)}"

    results = [await translator.translate_gids_in_string(mapped, value, "ctx", "products") for _ in range(3)]

    assert [r["value"] for r in results] == [f"{gid('Product', 100)} and {gid('Product', 200)}"] * 3
    assert [r["translated"] for r in results] == [2, 2, 2]


@pytest.mark.asyncio
async def test_string_without_gids_is_untouched(translator, mapped):
    result = await translator.translate_gids_in_string(mapped, "just text", "ctx", "products")
    assert result["value"] == "just text"
    assert result["translated"] == 0


@pytest.mark.asyncio
async def test_array_keeps_length_and_order(translator, mapped):
    values = [gid("Product", 3), gid("Product", 1), "plain", 5]

    result = await translator.translate_gids_in_array(mapped, values, "ctx", "products")

    assert result["value"] == [gid("Product", 3), gid("Product", 100), "plain", 5]
    assert result["translated"] == 1
    assert result["unmapped"] == 1


@pytest.mark.asyncio
async def test_object_translation_recurses(translator, mapped):
    obj = {"hero": gid("Product", 2), "nested": {"items": [gid("Product", 1)]}, "count": 3}

    result = await translator.translate_gids_in_object(mapped, obj, "ctx", "products")

    assert result["value"] == {
        "hero": gid("Product", 200),
        "nested": {"items": [gid("Product", 100)]},
        "count": 3,
    }
    assert result["translated"] == 2


@pytest.mark.asyncio
async def test_list_reference_metafield(translator, mapped):
    metafield = {
        "namespace": "custom",
        "key": "related",
        "type": "list.product_reference",
        "value": json.dumps([gid("Product", 1), gid("Product", 3)]),
    }

    result = await translator.translate_metafield_value(mapped, metafield, "product:shirt", "products")

    assert json.loads(result["value"]) == [gid("Product", 100), gid("Product", 3)]
    assert result["translation_stats"] == {"translated": 1, "unmapped": 1, "skipped": 0}


@pytest.mark.asyncio
async def test_single_reference_metafield_unmapped_keeps_value(translator, mapped, mapping_service):
    metafield = {"namespace": "custom", "key": "hero", "type": "product_reference", "value": gid("Product", 3)}

    result = await translator.translate_metafield_value(mapped, metafield, "collection:summer", "collections")

    assert result["value"] == gid("Product", 3)
    assert result["translation_stats"]["unmapped"] == 1
    references = await mapping_service.get_unmapped_references(mapped)
    assert references[0].context == "collection:summer metafield:custom.hero"


@pytest.mark.asyncio
async def test_json_metafield_with_bad_json_is_passed_through(translator, mapped):
    metafield = {"namespace": "custom", "key": "data", "type": "json", "value": "{not json"}

    result = await translator.translate_metafield_value(mapped, metafield, "page:about", "pages")

    assert result["value"] == "{not json"
    assert result["translation_stats"] == {"translated": 0, "unmapped": 0, "skipped": 0}


@pytest.mark.asyncio
async def test_non_reference_types_are_skipped(translator, mapped):
    metafield = {"namespace": "custom", "key": "count", "type": "number_integer", "value": "5"}

    result = await translator.translate_metafield_value(mapped, metafield, "page:about", "pages")

    assert result["value"] == "5"
    assert result["translation_stats"]["skipped"] == 1


@pytest.mark.asyncio
async def test_translate_metafields_returns_every_metafield(translator, mapped):
    metafields = [
        {"namespace": "custom", "key": "hero", "type": "product_reference", "value": gid("Product", 1)},
        {"namespace": "custom", "key": "missing", "type": "product_reference", "value": gid("Product", 3)},
        {"namespace": "custom", "key": "empty", "type": "product_reference", "value": ""},
    ]

    result = await translator.translate_metafields(mapped, metafields, "product:shirt", "products")

    assert len(result["metafields"]) == 3
    assert result["metafields"][0]["value"] == gid("Product", 100)
    assert result["metafields"][1]["value"] == gid("Product", 3)
    assert result["stats"] == {"total": 3, "translated": 1, "unmapped": 1, "skipped": 1}
