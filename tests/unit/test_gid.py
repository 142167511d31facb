# GID helper unit tests
import pytest

from app.services.shopify.gid import (
    build_gid,
    contains_gids,
    extract_gids,
    extract_id,
    extract_type,
    normalize_type,
    parse_gid,
)


def test_parse_gid_valid():
    assert parse_gid("gid://shopify/Product/123") == {"type": "Product", "id": "123"}
    assert parse_gid("gid://shopify/ProductVariant/456") == {"type": "ProductVariant", "id": "456"}


@pytest.mark.parametrize("value", [
    "not-a-gid",
    "gid://shopify/Product",
    "gid://shopify/Product/abc",
    "",
    None,
    123,
    {"id": "gid://shopify/Product/1"},
])
def test_parse_gid_rejects_malformed_input(value):
    assert parse_gid(value) is None
    assert extract_id(value) is None
    assert extract_type(value) is None


def test_extract_helpers():
    assert extract_id("gid://shopify/Collection/77") == "77"
    assert extract_type("gid://shopify/Collection/77") == "Collection"


def test_normalize_type_known_and_unknown():
    assert normalize_type("ProductVariant") == "variant"
    assert normalize_type("MediaImage") == "file"
    assert normalize_type("GenericFile") == "file"
    assert normalize_type("Video") == "file"
    assert normalize_type("MetaobjectDefinition") == "metaobject_definition"
    assert normalize_type("Menu") == "navigation"
    # Unknown types fall back to lower case
    assert normalize_type("GiftCard") == "giftcard"
    assert normalize_type("") is None
    assert normalize_type(None) is None


def test_build_gid():
    assert build_gid("Product", 42) == "gid://shopify/Product/42"
    assert parse_gid(build_gid("Page", "9")) == {"type": "Page", "id": "9"}


def test_contains_and_extract_embedded_gids():
    text = 'See gid://shopify/Product/1 and ["gid://shopify/Collection/2", "gid://shopify/Product/1"]'
    assert contains_gids(text) is True
    assert extract_gids(text) == [
        "gid://shopify/Product/1",
        "gid://shopify/Collection/2",
        "gid://shopify/Product/1",
    ]


def test_embedded_helpers_are_total():
    assert contains_gids("plain text") is False
    assert contains_gids(None) is False
    assert contains_gids(["gid://shopify/Product/1"]) is False
    assert extract_gids(None) == []
    assert extract_gids(12) == []


def test_contains_gids_is_stable_across_calls():
    text = "gid://shopify/Product/1"
    assert [contains_gids(text) for _ in range(5)] == [True] * 5
    assert [contains_gids("no ids here") for _ in range(5)] == [False] * 5
