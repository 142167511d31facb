# app/services/sync/markets.py
"""
Markets, matched by handle.

Only the regions condition is carried over; company location and location
conditions reference B2B and retail data that is not migrated. After the market
itself, currency settings, web presences (with their locales) and metafields are
synced. Stores with unified markets reject some of these operations outright;
those are counted as skipped rather than failed.
"""

import logging
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlparse

from app.core.enums import ResourceType, SyncType
from app.core.exceptions import ShopifyUserError
from app.services.sync.base import ResourceSync, new_summary
from app.services.sync.metafield_values import METAFIELDS_FRAGMENT, metafield_nodes, sync_owner_metafields

logger = logging.getLogger(__name__)

RESTRICTED_PHRASES = ("unified markets is enabled", "action is restricted")

_WEB_PRESENCE_FIELDS = """
  id
  subfolderSuffix
  domain { host }
  defaultLocale { locale }
  alternateLocales { locale }
"""

MARKETS_QUERY = f"""
query GetMarkets($first: Int!, $after: String) {{
  markets(first: $first, after: $after) {{
    nodes {{
      id
      name
      handle
      status
      conditions {{
        regionsCondition {{
          regions(first: 250) {{
            nodes {{
              ... on MarketRegionCountry {{
                code
              }}
            }}
          }}
        }}
      }}
      currencySettings {{
        baseCurrency {{
          currencyCode
        }}
        localCurrencies
      }}
      webPresences(first: 10) {{
        nodes {{
          {_WEB_PRESENCE_FIELDS}
        }}
      }}
      {METAFIELDS_FRAGMENT}
    }}
    pageInfo {{
      hasNextPage
      endCursor
    }}
  }}
}}
"""

WEB_PRESENCES_QUERY = f"""
query GetWebPresences($first: Int!, $after: String) {{
  webPresences(first: $first, after: $after) {{
    nodes {{
      {_WEB_PRESENCE_FIELDS}
    }}
    pageInfo {{
      hasNextPage
      endCursor
    }}
  }}
}}
"""

SHOP_LOCALES_QUERY = """
query GetShopLocales {
  shopLocales {
    locale
    published
  }
}
"""

MARKET_CREATE_MUTATION = """
mutation marketCreate($input: MarketCreateInput!) {
  marketCreate(input: $input) {
    market {
      id
      handle
      name
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

MARKET_UPDATE_MUTATION = """
mutation marketUpdate($id: ID!, $input: MarketUpdateInput!) {
  marketUpdate(id: $id, input: $input) {
    market {
      id
      handle
      name
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

WEB_PRESENCE_CREATE_MUTATION = """
mutation webPresenceCreate($input: WebPresenceCreateInput!) {
  webPresenceCreate(input: $input) {
    webPresence {
      id
      subfolderSuffix
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

SHOP_LOCALE_ENABLE_MUTATION = """
mutation shopLocaleEnable($locale: String!) {
  shopLocaleEnable(locale: $locale) {
    shopLocale {
      locale
      published
    }
    userErrors {
      field
      message
    }
  }
}
"""

SHOP_LOCALE_UPDATE_MUTATION = """
mutation shopLocaleUpdate($locale: String!, $shopLocale: ShopLocaleInput!) {
  shopLocaleUpdate(locale: $locale, shopLocale: $shopLocale) {
    shopLocale {
      locale
      published
    }
    userErrors {
      field
      message
    }
  }
}
"""


def market_regions(market: Dict[str, Any]) -> List[str]:
    condition = ((market.get("conditions") or {}).get("regionsCondition")) or {}
    nodes = ((condition.get("regions") or {}).get("nodes")) or []
    return [node["code"] for node in nodes if node.get("code")]


def web_presence_key(web_presence: Dict[str, Any]) -> str:
    """subfolderSuffix plus domain host; the host is empty for subfolder presences."""
    domain = web_presence.get("domain") or {}
    host = domain.get("host") or ""
    if "://" in host:
        host = urlparse(host).hostname or host
    return f"{web_presence.get('subfolderSuffix') or ''}|{host.lower()}"


def presence_locales(web_presence: Dict[str, Any]) -> List[str]:
    locales = []
    default = (web_presence.get("defaultLocale") or {}).get("locale")
    if default:
        locales.append(default)
    locales.extend(l["locale"] for l in web_presence.get("alternateLocales") or [] if l.get("locale"))
    return locales


class MarketSync(ResourceSync):
    sync_type = SyncType.MARKETS
    resource_type = ResourceType.MARKET.value
    label = "markets"

    def new_summary(self) -> Dict[str, Any]:
        return new_summary(
            currency_settings={"updated": 0, "skipped": 0},
            web_presences={"created": 0, "linked": 0, "skipped": 0},
            locales_enabled=0,
            metafields_set=0,
            unmapped_references=0,
        )

    async def fetch_production(self) -> List[Dict[str, Any]]:
        return await self.ctx.production.fetch_all(MARKETS_QUERY, ["markets"], page_size=50)

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        staging_markets = await self.ctx.staging.fetch_all(MARKETS_QUERY, ["markets"], page_size=50)
        self.staging_by_handle = {m["handle"]: m for m in staging_markets}
        presences = await self.ctx.staging.fetch_all(WEB_PRESENCES_QUERY, ["webPresences"], page_size=50)
        self.staging_presences = {web_presence_key(p): p for p in presences}
        data = await self.ctx.staging.execute(SHOP_LOCALES_QUERY)
        self.staging_locales = {l["locale"]: l for l in data.get("shopLocales") or []}
        self.log.add(f"Found {len(staging_markets)} markets and {len(presences)} web presences in staging")
        return items

    def _restricted(self, error: ShopifyUserError, what: str, bucket: Dict[str, int]) -> bool:
        if not error.contains(*RESTRICTED_PHRASES):
            return False
        bucket["skipped"] += 1
        self.log.add(f"Skipped {what}: not allowed by staging store configuration ({str(error)})", skipped=True)
        return True

    def _record_cascade_error(self, message: str) -> None:
        self.summary["errors"].append(message)
        self.log.add(message, success=False, error=message)

    async def process_item(self, market: Dict[str, Any]) -> None:
        handle, name = market["handle"], market["name"]
        regions = market_regions(market)
        existing: Optional[Dict[str, Any]] = self.staging_by_handle.get(handle)

        if existing:
            missing = [code for code in regions if code not in set(market_regions(existing))]
            market_input: Dict[str, Any] = {"name": name}
            if missing:
                market_input["conditions"] = {"conditionsToAdd": {
                    "regionsCondition": {"regions": [{"countryCode": code} for code in missing]}
                }}
            payload = await self.mutate(
                MARKET_UPDATE_MUTATION, {"id": existing["id"], "input": market_input}, "marketUpdate"
            )
            staging_market = payload.get("market") or existing
            self.record_updated(name, f"Updated market: {name}")
        else:
            market_input = {"name": name, "handle": handle}
            if regions:
                market_input["conditions"] = {"regionsCondition": {
                    "regions": [{"countryCode": code} for code in regions]
                }}
            payload = await self.mutate(MARKET_CREATE_MUTATION, {"input": market_input}, "marketCreate")
            staging_market = payload["market"]
            self.staging_by_handle[handle] = staging_market
            self.record_created(name, f"Created market: {name}")

        await self.save_mapping(market, staging_market, "handle", handle, title=name)

        if regions:
            await self.sync_currency_settings(market, staging_market["id"])
        linked = {p["id"] for p in ((existing or {}).get("webPresences") or {}).get("nodes") or []}
        for web_presence in (market.get("webPresences") or {}).get("nodes") or []:
            await self.sync_web_presence(market, web_presence, staging_market["id"], linked)

        metafields = metafield_nodes(market)
        if metafields:
            outcome = await sync_owner_metafields(
                self.ctx, staging_market["id"], metafields, f"market:{handle}", self.sync_type.value
            )
            self.summary["metafields_set"] += outcome["written"]
            self.summary["unmapped_references"] += outcome["unmapped"]
            for error in outcome["errors"]:
                self._record_cascade_error(error)

    async def sync_currency_settings(self, market: Dict[str, Any], staging_id: str) -> None:
        settings = market.get("currencySettings") or {}
        base_currency = (settings.get("baseCurrency") or {}).get("currencyCode")
        if not base_currency:
            return
        bucket = self.summary["currency_settings"]
        try:
            await self.mutate(MARKET_UPDATE_MUTATION, {"id": staging_id, "input": {"currencySettings": {
                "baseCurrency": base_currency,
                "localCurrencies": bool(settings.get("localCurrencies")),
            }}}, "marketUpdate")
            bucket["updated"] += 1
            self.log.add(f"Set {market['name']} base currency to {base_currency}", success=True)
        except ShopifyUserError as e:
            if not self._restricted(e, f"currency settings for {market['name']}", bucket):
                self._record_cascade_error(f"{market['name']} currency settings: {str(e)}")

    async def ensure_locales(self, locales: List[str]) -> None:
        for locale in locales:
            current = self.staging_locales.get(locale)
            if current is None:
                await self.mutate(SHOP_LOCALE_ENABLE_MUTATION, {"locale": locale}, "shopLocaleEnable")
                self.summary["locales_enabled"] += 1
                self.log.add(f"Enabled locale {locale}", success=True)
                current = {"locale": locale, "published": False}
            if not current.get("published"):
                await self.mutate(
                    SHOP_LOCALE_UPDATE_MUTATION, {"locale": locale, "shopLocale": {"published": True}}, "shopLocaleUpdate"
                )
            self.staging_locales[locale] = {"locale": locale, "published": True}

    async def sync_web_presence(
        self, market: Dict[str, Any], web_presence: Dict[str, Any], staging_id: str, linked: Set[str]
    ) -> None:
        bucket = self.summary["web_presences"]
        what = f"web presence {web_presence.get('subfolderSuffix') or (web_presence.get('domain') or {}).get('host')}"
        try:
            locales = presence_locales(web_presence)
            await self.ensure_locales(locales)

            staging_presence = self.staging_presences.get(web_presence_key(web_presence))
            if staging_presence is None:
                if not web_presence.get("subfolderSuffix"):
                    # Domains belong to one store and cannot be recreated in another
                    bucket["skipped"] += 1
                    self.log.add(f"Skipped {what}: domain web presences are not migrated", skipped=True)
                    return
                payload = await self.mutate(WEB_PRESENCE_CREATE_MUTATION, {"input": {
                    "subfolderSuffix": web_presence["subfolderSuffix"],
                    "defaultLocale": locales[0] if locales else None,
                    "alternateLocales": locales[1:],
                }}, "webPresenceCreate")
                staging_presence = payload["webPresence"]
                self.staging_presences[web_presence_key(web_presence)] = staging_presence
                bucket["created"] += 1

            if staging_presence["id"] in linked:
                return

            await self.mutate(MARKET_UPDATE_MUTATION, {"id": staging_id, "input": {
                "webPresencesToAdd": [staging_presence["id"]],
            }}, "marketUpdate")
            bucket["linked"] += 1
            self.log.add(f"Linked {what} to {market['name']}", success=True)
        except ShopifyUserError as e:
            if not self._restricted(e, what, bucket):
                self._record_cascade_error(f"{market['name']} {what}: {str(e)}")
