# app/services/sync/base.py
"""
Shared machinery for the per-resource sync modules.

A module subclasses ResourceSync and implements fetch_production() and
process_item(); run() drives the common state machine:

    fetching production -> fetching staging (prepare) -> processing items -> finalizing

Each item is handled independently: a failed item is recorded in the summary and
the loop moves on to the next one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.enums import SyncStage, SyncStatus, SyncType
from app.core.exceptions import ShopifyUserError, ValidationError
from app.services.connections import Connection
from app.services.gid_translator import GidTranslator
from app.services.resource_mapping import ResourceMappingService
from app.services.shopify.client import ShopifyGraphQLClient, check_user_errors
from app.services.shopify.gid import extract_id

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Dict[str, Any]], Awaitable[None]]


def new_summary(**extra: Any) -> Dict[str, Any]:
    summary = {"total": 0, "created": 0, "updated": 0, "skipped": 0, "failed": 0, "errors": []}
    summary.update(extra)
    return summary


def derive_status(summary: Dict[str, Any]) -> SyncStatus:
    """
    success: something changed and nothing failed, or nothing to do at all
    partially_successful: something changed and something failed
    failed: nothing changed and something failed
    """
    changed = (summary.get("created") or 0) > 0 or (summary.get("updated") or 0) > 0
    has_errors = bool(summary.get("errors")) or (summary.get("failed") or 0) > 0

    if changed and not has_errors:
        return SyncStatus.SUCCESS
    if changed and has_errors:
        return SyncStatus.PARTIALLY_SUCCESSFUL
    if not has_errors:
        return SyncStatus.SUCCESS
    return SyncStatus.FAILED


class SyncRunLog:
    """Ordered, timestamped narrative of one run."""

    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    def add(
        self,
        message: str,
        success: Optional[bool] = None,
        skipped: bool = False,
        error: Optional[str] = None,
        **details: Any,
    ) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"timestamp": datetime.now(timezone.utc).isoformat(), "message": message}
        if success is not None:
            entry["success"] = success
        if skipped:
            entry["skipped"] = True
        if error:
            entry["error"] = error
        if details:
            entry["details"] = details
        self.entries.append(entry)
        return entry


@dataclass
class SyncContext:
    """Explicit dependencies handed to every sync module."""
    connection: Connection
    production: ShopifyGraphQLClient
    staging: ShopifyGraphQLClient
    mappings: ResourceMappingService
    translator: GidTranslator
    on_progress: Optional[ProgressCallback] = None


class ResourceSync:
    """Base class for one resource family sync."""

    sync_type: SyncType
    resource_type: Optional[str] = None
    label: str = "items"

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx
        self.log = SyncRunLog()
        self.summary = self.new_summary()
        self._last_percentage = 0

    # -- hooks --------------------------------------------------------------

    def new_summary(self) -> Dict[str, Any]:
        return new_summary()

    async def fetch_production(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def prepare(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Fetch staging state and/or filter items before processing."""
        return items

    async def process_item(self, item: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def finalize(self) -> None:
        """Runs after every item was processed (second passes go here)."""
        return None

    def describe(self, item: Dict[str, Any]) -> str:
        return item.get("title") or item.get("name") or item.get("handle") or item.get("id") or "item"

    # -- driver -------------------------------------------------------------

    @property
    def connection_id(self) -> int:
        return self.ctx.connection.id

    async def run(self) -> Dict[str, Any]:
        logger.info(f"Starting {self.sync_type.value} sync for connection {self.connection_id}")
        self.log.add(f"Starting {self.sync_type.value} sync from {self.ctx.connection.store_domain}")

        try:
            await self.report_progress(SyncStage.FETCHING, f"Fetching {self.label} from production...", 5)
            items = await self.fetch_production()
            self.log.add(f"Found {len(items)} {self.label} in production")

            await self.report_progress(SyncStage.FETCHING_STAGING, f"Fetching {self.label} from staging...", 10)
            items = await self.prepare(items)
            self.summary["total"] = len(items)

            total = len(items)
            for index, item in enumerate(items, start=1):
                await self._process_one(item)
                await self.report_progress(
                    SyncStage.PROCESSING,
                    f"Processed {index} of {total} {self.label}",
                    15 + (75 * index / total),
                    current=index,
                    total=total,
                )

            await self.finalize()

        except Exception as e:
            logger.exception(f"Fatal error in {self.sync_type.value} sync for connection {self.connection_id}")
            self.summary["errors"].append(f"Fatal error: {str(e)}")
            self.log.add(f"Fatal error: {str(e)}", success=False, error=str(e))

        status = derive_status(self.summary)
        self.log.add(self.completion_message(), success=status != SyncStatus.FAILED)
        await self.report_progress(SyncStage.COMPLETE, self.completion_message(), 100)
        logger.info(f"{self.sync_type.value} sync for connection {self.connection_id} finished: {status.value}")

        return {
            "success": status != SyncStatus.FAILED,
            "status": status.value,
            "summary": self.summary,
            "logs": self.log.entries,
        }

    async def _process_one(self, item: Dict[str, Any]) -> None:
        label = self.describe(item)
        try:
            await self.process_item(item)
        except ShopifyUserError as e:
            if e.is_duplicate:
                self.record_skipped(label, f"already exists ({str(e)})")
            else:
                self.record_failure(label, e)
        except Exception as e:
            logger.exception(f"Error syncing {self.label} '{label}'")
            self.record_failure(label, e)

    def completion_message(self) -> str:
        s = self.summary
        return (f"Sync completed: {s['created']} created, {s['updated']} updated, "
                f"{s['skipped']} skipped, {s['failed']} failed")

    async def report_progress(
        self,
        stage: SyncStage,
        message: str,
        percentage: float,
        current: Optional[int] = None,
        total: Optional[int] = None,
    ) -> None:
        # Percentage never goes backwards and only reaches 100 at completion
        ceiling = 100 if stage == SyncStage.COMPLETE else 99
        percentage = max(self._last_percentage, min(int(percentage), ceiling))
        self._last_percentage = percentage

        if self.ctx.on_progress is None:
            return
        progress = {"stage": stage.value, "message": message, "percentage": percentage}
        if current is not None:
            progress["current"] = current
        if total is not None:
            progress["total"] = total
        try:
            await self.ctx.on_progress(progress)
        except Exception as e:
            logger.warning(f"Progress callback failed for {self.sync_type.value}: {str(e)}")

    # -- bookkeeping helpers --------------------------------------------------

    def record_created(self, label: str, message: Optional[str] = None) -> None:
        self.summary["created"] += 1
        self.log.add(message or f"Created {label}", success=True)

    def record_updated(self, label: str, message: Optional[str] = None) -> None:
        self.summary["updated"] += 1
        self.log.add(message or f"Updated {label}", success=True)

    def record_skipped(self, label: str, reason: str) -> None:
        self.summary["skipped"] += 1
        self.log.add(f"Skipped {label}: {reason}", success=False, skipped=True)

    def record_failure(self, label: str, error: Any) -> None:
        self.summary["failed"] += 1
        self.summary["errors"].append(f"{label}: {str(error)}")
        self.log.add(f"Failed {label}: {str(error)}", success=False, error=str(error))

    async def mutate(self, mutation: str, variables: Dict[str, Any], operation: str) -> Dict[str, Any]:
        """Run a staging mutation and return its payload; userErrors raise ShopifyUserError."""
        data = await self.ctx.staging.execute(mutation, variables)
        return check_user_errors(data.get(operation), operation)

    async def save_mapping(
        self,
        production_node: Dict[str, Any],
        staging_node: Dict[str, Any],
        match_key: str,
        match_value: Any,
        title: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        resource_type: Optional[str] = None,
    ) -> None:
        """Persist the mapping right away so later items can resolve references to it."""
        resource_type = resource_type or self.resource_type
        try:
            await self.ctx.mappings.save_mapping(self.connection_id, resource_type, {
                "production_id": extract_id(production_node["id"]),
                "staging_id": extract_id(staging_node["id"]),
                "production_gid": production_node["id"],
                "staging_gid": staging_node["id"],
                "match_key": match_key,
                "match_value": match_value,
                "title": title,
                "metadata": metadata,
            })
        except (ValidationError, SQLAlchemyError, KeyError) as e:
            logger.error(f"Could not save {resource_type} mapping for {production_node.get('id')}: {str(e)}")
            self.log.add(f"Could not save mapping for {title or match_value}: {str(e)}", success=False, error=str(e))
