# tests/fakes.py
"""Scripted stand-in for ShopifyGraphQLClient used by the sync module tests."""

import itertools
import re
from typing import Any, Callable, Dict, List, Optional, Union

from app.services.shopify.client import ShopifyGraphQLClient

_OPERATION_NAME = re.compile(r"^\s*(?:query|mutation)\s+(\w+)")

Handler = Union[Dict[str, Any], Callable[[Dict[str, Any]], Dict[str, Any]]]


def operation_name(query: str) -> str:
    match = _OPERATION_NAME.search(query)
    if not match:
        raise AssertionError(f"Query has no operation name: {query[:80]!r}")
    return match.group(1)


def page(field: str, nodes: List[Dict[str, Any]]) -> Dict[str, Any]:
    """A single-page connection response."""
    return {field: {"nodes": nodes, "pageInfo": {"hasNextPage": False, "endCursor": None}}}


def payload(field: str, key: str, node: Optional[Dict[str, Any]], user_errors=None) -> Dict[str, Any]:
    """A mutation response, e.g. payload("pageCreate", "page", {...})."""
    return {field: {key: node, "userErrors": user_errors or []}}


class FakeShopifyClient(ShopifyGraphQLClient):
    """
    Answers execute() by GraphQL operation name.

    A handler is either a response dict or a callable taking the variables.
    Every call is recorded in `calls` as (operation, variables).
    """

    def __init__(self, store_domain: str = "fake.myshopify.com"):
        super().__init__(store_domain=store_domain, access_token="shpat_fake", api_version="2025-04")
        self.handlers: Dict[str, Handler] = {}
        self.calls: List[tuple] = []
        self._ids = itertools.count(9000)

    def on(self, operation: str, handler: Handler) -> "FakeShopifyClient":
        self.handlers[operation] = handler
        return self

    def next_id(self) -> int:
        return next(self._ids)

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [variables for name, variables in self.calls if name == operation]

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None, estimated_cost: int = 10) -> Dict[str, Any]:
        name = operation_name(query)
        self.calls.append((name, dict(variables or {})))
        if name not in self.handlers:
            raise AssertionError(f"Unexpected operation {name} on {self.store_domain}")
        handler = self.handlers[name]
        return handler(variables or {}) if callable(handler) else handler


def gid(resource: str, numeric_id) -> str:
    return f"gid://shopify/{resource}/{numeric_id}"
