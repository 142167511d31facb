# app/services/sync/locations.py
import logging
from typing import Any, Dict, List, Optional

from app.core.enums import ResourceType, SyncType
from app.core.exceptions import ValidationError
from app.services.sync.base import ResourceSync

logger = logging.getLogger(__name__)

LOCATIONS_QUERY = """
query GetLocations($first: Int!, $after: String) {
  locations(first: $first, after: $after, includeInactive: false) {
    nodes {
      id
      name
      isActive
      fulfillsOnlineOrders
      address {
        address1
        address2
        city
        provinceCode
        countryCode
        zip
        phone
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

LOCATION_ADD_MUTATION = """
mutation locationAdd($input: LocationAddInput!) {
  locationAdd(input: $input) {
    location {
      id
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

LOCATION_EDIT_MUTATION = """
mutation locationEdit($id: ID!, $input: LocationEditInput!) {
  locationEdit(id: $id, input: $input) {
    location {
      id
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


def locations_match(production: Dict[str, Any], staging: Dict[str, Any]) -> bool:
    """Same name, or the same physical address."""
    if production.get("name") == staging.get("name"):
        return True
    prod_address = production.get("address") or {}
    staging_address = staging.get("address") or {}
    if not prod_address.get("address1"):
        return False
    return (
        prod_address.get("address1") == staging_address.get("address1")
        and prod_address.get("city") == staging_address.get("city")
        and prod_address.get("countryCode") == staging_address.get("countryCode")
    )


def build_address_input(address: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "address1": address.get("address1"),
        "address2": address.get("address2"),
        "city": address.get("city"),
        "provinceCode": address.get("provinceCode") or None,
        "countryCode": address.get("countryCode"),
        "zip": address.get("zip"),
        "phone": address.get("phone"),
    }


class LocationSync(ResourceSync):
    """Fulfilment locations, matched by name or address."""

    sync_type = SyncType.LOCATIONS
    resource_type = ResourceType.LOCATION.value
    label = "locations"

    async def fetch_production(self) -> List[Dict[str, Any]]:
        return await self.ctx.production.fetch_all(LOCATIONS_QUERY, ["locations"], page_size=50)

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        self.staging_locations = await self.ctx.staging.fetch_all(LOCATIONS_QUERY, ["locations"], page_size=50)
        self.log.add(f"Found {len(self.staging_locations)} locations in staging")
        return items

    def _find_staging(self, location: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return next((s for s in self.staging_locations if locations_match(location, s)), None)

    async def process_item(self, location: Dict[str, Any]) -> None:
        name = location["name"]
        address = location.get("address") or {}
        existing = self._find_staging(location)

        if existing:
            location_input = {
                "name": name,
                "address": build_address_input(address),
                "fulfillsOnlineOrders": bool(location.get("fulfillsOnlineOrders")),
            }
            payload = await self.mutate(
                LOCATION_EDIT_MUTATION, {"id": existing["id"], "input": location_input}, "locationEdit"
            )
            staging_location = payload.get("location") or existing
            self.record_updated(name, f"Updated location: {name}")
        else:
            if not address.get("countryCode"):
                raise ValidationError(f"Location '{name}' has no country code and cannot be created")
            location_input = {
                "name": name,
                "address": build_address_input(address),
                "fulfillsOnlineOrders": bool(location.get("fulfillsOnlineOrders")),
            }
            payload = await self.mutate(LOCATION_ADD_MUTATION, {"input": location_input}, "locationAdd")
            staging_location = payload["location"]
            self.staging_locations.append({**location, "id": staging_location["id"]})
            self.record_created(name, f"Created location: {name}")

        await self.save_mapping(location, staging_location, "name", name, title=name)
