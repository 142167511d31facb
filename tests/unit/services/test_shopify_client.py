# Shopify GraphQL client unit tests
import pytest
from unittest.mock import AsyncMock, MagicMock

from app.core.exceptions import ShopifyAPIError, ShopifyUserError
from app.services.shopify.client import ShopifyGraphQLClient, ShopifyGraphQLError, check_user_errors


def make_response(status_code=200, body=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    response.text = str(body)
    response.headers = headers or {}
    return response


@pytest.fixture
def mock_post(mocker):
    mock_client = mocker.patch("httpx.AsyncClient")
    post = AsyncMock()
    mock_client.return_value.__aenter__.return_value.post = post
    return post


@pytest.fixture
def client():
    return ShopifyGraphQLClient(store_domain="prod-store.myshopify.com", access_token="shpat_test", api_version="2025-04")


def test_client_requires_credentials():
    with pytest.raises(ValueError):
        ShopifyGraphQLClient(store_domain="", access_token="shpat_test")


@pytest.mark.asyncio
async def test_execute_returns_data_and_sends_token(client, mock_post):
    mock_post.return_value = make_response(body={"data": {"shop": {"name": "Prod"}}})

    data = await client.execute("query Shop { shop { name } }", {"a": 1})

    assert data == {"shop": {"name": "Prod"}}
    args, kwargs = mock_post.call_args
    assert args[0] == "https://prod-store.myshopify.com/admin/api/2025-04/graphql.json"
    assert kwargs["headers"]["X-Shopify-Access-Token"] == "shpat_test"
    assert kwargs["json"] == {"query": "query Shop { shop { name } }", "variables": {"a": 1}}


@pytest.mark.asyncio
async def test_execute_raises_on_graphql_errors(client, mock_post):
    mock_post.return_value = make_response(body={"errors": [{"message": "Field 'x' doesn't exist"}]})

    with pytest.raises(ShopifyGraphQLError) as exc_info:
        await client.execute("query Broken { x }")

    assert "Field 'x' doesn't exist" in str(exc_info.value)


@pytest.mark.asyncio
async def test_execute_raises_on_http_error(client, mock_post):
    mock_post.return_value = make_response(status_code=401, body={"errors": "Invalid API key"})

    with pytest.raises(ShopifyAPIError) as exc_info:
        await client.execute("query Shop { shop { name } }")

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_execute_retries_when_throttled(client, mock_post, mocker):
    sleep = mocker.patch("app.services.shopify.client.asyncio.sleep", new=AsyncMock())
    mock_post.side_effect = [
        make_response(body={"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}),
        make_response(body={"data": {"ok": True}}),
    ]

    data = await client.execute("query Shop { shop { name } }")

    assert data == {"ok": True}
    assert mock_post.call_count == 2
    sleep.assert_awaited()


@pytest.mark.asyncio
async def test_execute_tracks_throttle_status(client, mock_post):
    mock_post.return_value = make_response(body={
        "data": {},
        "extensions": {"cost": {"throttleStatus": {
            "maximumAvailable": 2000.0, "currentlyAvailable": 1500.0, "restoreRate": 100.0,
        }}},
    })

    await client.execute("query Shop { shop { name } }")

    assert client.max_available_points == 2000.0
    assert client.currently_available_points == 1500.0
    assert client.restore_rate == 100.0


@pytest.mark.asyncio
async def test_paginate_follows_cursors(client, mocker):
    execute = mocker.patch.object(client, "execute", new=AsyncMock(side_effect=[
        {"pages": {"nodes": [{"id": 1}, {"id": 2}], "pageInfo": {"hasNextPage": True, "endCursor": "c1"}}},
        {"pages": {"edges": [{"node": {"id": 3}}], "pageInfo": {"hasNextPage": False, "endCursor": None}}},
    ]))

    nodes = await client.fetch_all("query GetPages($first: Int!, $after: String) { x }", ["pages"], page_size=2)

    assert nodes == [{"id": 1}, {"id": 2}, {"id": 3}]
    assert execute.await_args_list[0].args[1] == {"first": 2, "after": None}
    assert execute.await_args_list[1].args[1] == {"first": 2, "after": "c1"}


def test_check_user_errors():
    assert check_user_errors({"page": {"id": "1"}, "userErrors": []}, "pageCreate") == {"page": {"id": "1"}, "userErrors": []}

    with pytest.raises(ShopifyAPIError):
        check_user_errors(None, "pageCreate")

    with pytest.raises(ShopifyUserError) as exc_info:
        check_user_errors({"userErrors": [{"field": ["handle"], "message": "Handle has already been taken", "code": "TAKEN"}]}, "pageCreate")

    assert exc_info.value.is_duplicate
    assert "handle: Handle has already been taken (TAKEN)" in str(exc_info.value)


def test_user_error_duplicate_detection_falls_back_to_message():
    error = ShopifyUserError("fileCreate", [{"message": "File already exists"}])
    assert error.is_duplicate

    error = ShopifyUserError("marketCreate", [{"message": "Action is restricted", "code": "INVALID"}])
    assert not error.is_duplicate
    assert error.contains("action is restricted")
