# app/services/sync/pages.py
import logging
from typing import Any, Dict, List

from app.core.enums import ResourceType, SyncType
from app.services.sync.base import ResourceSync

logger = logging.getLogger(__name__)

PAGES_QUERY = """
query GetPages($first: Int!, $after: String) {
  pages(first: $first, after: $after) {
    nodes {
      id
      title
      handle
      body
      isPublished
      publishedAt
      templateSuffix
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

PAGE_CREATE_MUTATION = """
mutation CreatePage($page: PageCreateInput!) {
  pageCreate(page: $page) {
    page {
      id
      title
      handle
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

PAGE_UPDATE_MUTATION = """
mutation UpdatePage($id: ID!, $page: PageUpdateInput!) {
  pageUpdate(id: $id, page: $page) {
    page {
      id
      title
      handle
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""


def build_page_input(page: Dict[str, Any]) -> Dict[str, Any]:
    page_input = {
        "title": page.get("title"),
        "handle": page.get("handle"),
        "body": page.get("body") or "",
        "isPublished": bool(page.get("isPublished")),
    }
    if page.get("templateSuffix"):
        page_input["templateSuffix"] = page["templateSuffix"]
    return page_input


class PageSync(ResourceSync):
    """Online store pages, matched by handle."""

    sync_type = SyncType.PAGES
    resource_type = ResourceType.PAGE.value
    label = "pages"

    PAGE_SIZE = 250

    async def fetch_production(self) -> List[Dict[str, Any]]:
        return await self.ctx.production.fetch_all(PAGES_QUERY, ["pages"], page_size=self.PAGE_SIZE)

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        staging_pages = await self.ctx.staging.fetch_all(PAGES_QUERY, ["pages"], page_size=self.PAGE_SIZE)
        self.staging_by_handle = {page["handle"]: page for page in staging_pages if page.get("handle")}
        self.log.add(f"Found {len(staging_pages)} existing pages in staging")
        return items

    async def process_item(self, page: Dict[str, Any]) -> None:
        handle = page.get("handle")
        page_input = build_page_input(page)
        existing = self.staging_by_handle.get(handle)

        if existing:
            payload = await self.mutate(
                PAGE_UPDATE_MUTATION, {"id": existing["id"], "page": page_input}, "pageUpdate"
            )
            staging_page = payload.get("page") or existing
            self.record_updated(page["title"], f"Updated page: {page['title']}")
        else:
            payload = await self.mutate(PAGE_CREATE_MUTATION, {"page": page_input}, "pageCreate")
            staging_page = payload["page"]
            self.staging_by_handle[handle] = staging_page
            self.record_created(page["title"], f"Created page: {page['title']}")

        await self.save_mapping(page, staging_page, "handle", handle, title=page.get("title"))
