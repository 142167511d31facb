# app/services/shopify/client.py
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from app.core.config import get_settings
from app.core.exceptions import ShopifyAPIError, ShopifyUserError

logger = logging.getLogger(__name__)


class ShopifyGraphQLError(ShopifyAPIError):
    """Top-level GraphQL `errors` in a response."""
    def __init__(self, errors):
        message = "GraphQL query failed with errors:\n"
        for error in errors:
            msg = error.get('message', 'Unknown error')
            path = error.get('path', [])
            message += f"- Message: {msg}, Path: {path}\n"
        super().__init__(message, errors=errors)

    @property
    def is_throttled(self) -> bool:
        return any((e.get("extensions") or {}).get("code") == "THROTTLED" for e in self.errors)


def check_user_errors(payload: Optional[Dict[str, Any]], operation: str) -> Dict[str, Any]:
    """
    Return a mutation payload, raising ShopifyUserError if it carries userErrors.

    A missing payload means the mutation returned null, which Shopify does when
    the request was rejected without userErrors.
    """
    if payload is None:
        raise ShopifyAPIError(f"{operation} returned no data")
    user_errors = payload.get("userErrors") or []
    if user_errors:
        raise ShopifyUserError(operation, user_errors)
    return payload


class ShopifyGraphQLClient:
    """
    Async client for one store's Admin GraphQL API.

    One instance per store: the sync modules receive a production client (read)
    and a staging client (read/write) as explicit dependencies.

    - execute(): single request, returns `data`, raises on transport or GraphQL errors
    - paginate(): async iterator over a connection field following pageInfo cursors
    - Keeps track of the cost-based throttle status Shopify reports in
      `extensions.cost` and waits before a request would exhaust the bucket.
    """

    def __init__(
        self,
        store_domain: str,
        access_token: str,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        safety_buffer_percentage: float = 0.25,
    ):
        settings = get_settings()
        if not store_domain or not access_token:
            raise ValueError("store_domain and access_token are required for ShopifyGraphQLClient")

        self.store_domain = store_domain
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.timeout = timeout or settings.SHOPIFY_REQUEST_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else settings.SHOPIFY_MAX_RETRIES
        self.graphql_url = f"https://{self.store_domain}/admin/api/{self.api_version}/graphql.json"
        self._access_token = access_token

        # Updated from extensions.cost after the first call
        self.max_available_points = 1000.0
        self.currently_available_points = self.max_available_points
        self.restore_rate = 50.0
        self.safety_buffer_percentage = safety_buffer_percentage

        logger.debug(f"ShopifyGraphQLClient initialized for {self.store_domain} (API {self.api_version})")

    def _get_headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self._access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _update_throttle_status(self, extensions: Optional[Dict[str, Any]]) -> None:
        if not extensions or "cost" not in extensions:
            return
        throttle = (extensions["cost"] or {}).get("throttleStatus") or {}
        if throttle:
            self.max_available_points = float(throttle.get("maximumAvailable", self.max_available_points))
            self.currently_available_points = float(throttle.get("currentlyAvailable", self.currently_available_points))
            self.restore_rate = float(throttle.get("restoreRate", self.restore_rate))

    async def _wait_for_capacity(self, estimated_cost: int) -> None:
        required = estimated_cost + self.max_available_points * self.safety_buffer_percentage
        if self.currently_available_points >= required:
            return
        wait_time = (required - self.currently_available_points) / self.restore_rate if self.restore_rate > 0 else 1.0
        wait_time = max(wait_time, 0) + 0.5
        logger.info(
            f"{self.store_domain}: {self.currently_available_points:.0f} points available, "
            f"waiting {wait_time:.2f}s before next request"
        )
        await asyncio.sleep(wait_time)
        self.currently_available_points = min(
            self.max_available_points, self.currently_available_points + self.restore_rate * wait_time
        )

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None, estimated_cost: int = 10) -> Dict[str, Any]:
        """
        Run a query or mutation and return its `data`.

        Raises:
            ShopifyGraphQLError: response carried top-level `errors`
            ShopifyAPIError: HTTP, network or decoding failure
        """
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        attempt = 0
        while True:
            attempt += 1
            await self._wait_for_capacity(estimated_cost)
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.graphql_url, headers=self._get_headers(), json=payload)

                if response.status_code == 429 and attempt <= self.max_retries:
                    retry_after = float(response.headers.get("Retry-After", 2.0))
                    logger.warning(f"{self.store_domain}: 429 Too Many Requests, retrying in {retry_after}s")
                    self.currently_available_points = 0
                    await asyncio.sleep(retry_after)
                    continue

                if response.status_code >= 400:
                    logger.error(f"Shopify API error {response.status_code} from {self.store_domain}: {response.text[:500]}")
                    raise ShopifyAPIError(
                        f"HTTP error {response.status_code}: {response.text[:500]}",
                        status_code=response.status_code,
                    )

                response_data = response.json()

            except httpx.TimeoutException as e:
                logger.error(f"Timeout calling {self.store_domain}: {str(e)}")
                raise ShopifyAPIError(f"Request timed out: {str(e)}")
            except httpx.RequestError as e:
                logger.error(f"Network error calling {self.store_domain}: {str(e)}")
                raise ShopifyAPIError(f"Network error: {str(e)}")
            except json.JSONDecodeError:
                raise ShopifyAPIError(f"Failed to decode JSON response: {response.text[:500]}")

            self._update_throttle_status(response_data.get("extensions"))

            if response_data.get("errors"):
                error = ShopifyGraphQLError(response_data["errors"])
                if error.is_throttled and attempt <= self.max_retries:
                    wait_time = 2 ** attempt
                    logger.warning(f"{self.store_domain}: THROTTLED, retrying in {wait_time}s")
                    await asyncio.sleep(wait_time)
                    continue
                raise error

            return response_data.get("data") or {}

    async def paginate(
        self,
        query: str,
        path: List[str],
        variables: Optional[Dict[str, Any]] = None,
        page_size: int = 50,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield every node of a cursor-paginated connection.

        `query` must accept `$first: Int!` and `$after: String`; `path` locates the
        connection in `data`, e.g. ["collections"] or ["market", "webPresences"].
        Both `nodes` and `edges { node }` shapes are supported.
        """
        after = None
        while True:
            page_variables = dict(variables or {})
            page_variables.update({"first": page_size, "after": after})
            data = await self.execute(query, page_variables, estimated_cost=10 + page_size // 5)

            connection: Any = data
            for key in path:
                connection = (connection or {}).get(key)
            connection = connection or {}

            if "nodes" in connection:
                nodes = connection.get("nodes") or []
            else:
                nodes = [edge["node"] for edge in connection.get("edges") or []]

            for node in nodes:
                yield node

            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage") or not page_info.get("endCursor"):
                break
            after = page_info["endCursor"]

    async def fetch_all(
        self,
        query: str,
        path: List[str],
        variables: Optional[Dict[str, Any]] = None,
        page_size: int = 50,
    ) -> List[Dict[str, Any]]:
        return [node async for node in self.paginate(query, path, variables, page_size)]
