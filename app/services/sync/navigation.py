# app/services/sync/navigation.py
import logging
from typing import Any, Dict, List

from app.core.enums import ResourceType, SyncType
from app.core.exceptions import ShopifyUserError
from app.services.sync.base import ResourceSync

logger = logging.getLogger(__name__)

_ITEM_FIELDS = """
  title
  type
  url
  resourceId
  tags
"""

MENUS_QUERY = f"""
query GetMenus($first: Int!, $after: String) {{
  menus(first: $first, after: $after) {{
    nodes {{
      id
      handle
      title
      isDefault
      items(limit: 100) {{
        {_ITEM_FIELDS}
        items {{
          {_ITEM_FIELDS}
          items {{
            {_ITEM_FIELDS}
          }}
        }}
      }}
    }}
    pageInfo {{
      hasNextPage
      endCursor
    }}
  }}
}}
"""

MENU_CREATE_MUTATION = """
mutation menuCreate($title: String!, $handle: String!, $items: [MenuItemCreateInput!]!) {
  menuCreate(title: $title, handle: $handle, items: $items) {
    menu {
      id
      handle
      title
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

MENU_UPDATE_MUTATION = """
mutation menuUpdate($id: ID!, $title: String!, $handle: String, $items: [MenuItemUpdateInput!]!) {
  menuUpdate(id: $id, title: $title, handle: $handle, items: $items) {
    menu {
      id
      handle
      title
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

# Item types whose resourceId points at something we sync
TRANSLATABLE_ITEM_TYPES = {"PAGE", "COLLECTION", "PRODUCT", "CUSTOMER_ACCOUNT_PAGE"}


class NavigationSync(ResourceSync):
    """Navigation menus, matched by handle, with nested item references rewritten."""

    sync_type = SyncType.NAVIGATION
    resource_type = ResourceType.NAVIGATION.value
    label = "menus"

    async def fetch_production(self) -> List[Dict[str, Any]]:
        return await self.ctx.production.fetch_all(MENUS_QUERY, ["menus"], page_size=50)

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        staging_menus = await self.ctx.staging.fetch_all(MENUS_QUERY, ["menus"], page_size=50)
        self.staging_by_handle = {menu["handle"]: menu for menu in staging_menus}
        self.log.add(f"Found {len(staging_menus)} menus in staging")
        return items

    async def translate_items(self, items: List[Dict[str, Any]], menu_handle: str) -> List[Dict[str, Any]]:
        processed = []
        for item in items or []:
            processed_item = {
                "title": item.get("title"),
                "type": item.get("type"),
                "url": item.get("url") or None,
                "resourceId": item.get("resourceId") or None,
                "tags": item.get("tags") or [],
            }

            resource_id = processed_item["resourceId"]
            if resource_id and processed_item["type"] in TRANSLATABLE_ITEM_TYPES:
                translation = await self.ctx.translator.translate_gid(
                    self.connection_id, resource_id, f"menu:{menu_handle} item:{item.get('title')}",
                    self.sync_type.value,
                )
                if translation["success"]:
                    processed_item["resourceId"] = translation["staging_gid"]
                elif processed_item["url"]:
                    # Menu creation rejects unknown resources; keep the link working as a plain URL
                    processed_item["type"] = "HTTP"
                    processed_item["resourceId"] = None
                    self.log.add(
                        f"Converted '{item.get('title')}' in menu {menu_handle} to an HTTP link "
                        f"({resource_id} is not synced yet)"
                    )

            if item.get("items"):
                processed_item["items"] = await self.translate_items(item["items"], menu_handle)
            processed.append(processed_item)
        return processed

    async def process_item(self, menu: Dict[str, Any]) -> None:
        handle = menu["handle"]
        items = await self.translate_items(menu.get("items") or [], handle)
        existing = self.staging_by_handle.get(handle)

        if existing:
            variables = {"id": existing["id"], "title": menu["title"], "handle": handle, "items": items}
            try:
                payload = await self.mutate(MENU_UPDATE_MUTATION, variables, "menuUpdate")
            except ShopifyUserError as e:
                # Default menus refuse handle changes; retry without it
                if not e.contains("handle can't be changed", "default list"):
                    raise
                variables.pop("handle")
                payload = await self.mutate(MENU_UPDATE_MUTATION, variables, "menuUpdate")
            staging_menu = payload.get("menu") or existing
            self.record_updated(menu["title"], f"Updated menu: {menu['title']}")
        else:
            payload = await self.mutate(
                MENU_CREATE_MUTATION, {"title": menu["title"], "handle": handle, "items": items}, "menuCreate"
            )
            staging_menu = payload["menu"]
            self.staging_by_handle[handle] = staging_menu
            self.record_created(menu["title"], f"Created menu: {menu['title']}")

        await self.save_mapping(menu, staging_menu, "handle", handle, title=menu.get("title"))
