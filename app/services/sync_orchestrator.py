# app/services/sync_orchestrator.py
"""
Runs one resource sync for one connection and keeps its SyncLog current.

The run itself always happens in its own asyncio task with its own database
session. Callers then either wait for it (bounded by SYNC_TIMEOUT_SECONDS on the
interactive path) or, for the large resource families, return straight away
with the log id. A run that outlives the interactive timeout keeps going and
finalizes the same SyncLog when it is done.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.enums import SyncStatus, SyncType
from app.core.exceptions import ValidationError
from app.database import async_session
from app.models.sync_log import SyncLog
from app.services.connections import Connection, ConnectionService
from app.services.gid_translator import GidTranslator
from app.services.resource_mapping import ResourceMappingService
from app.services.shopify.client import ShopifyGraphQLClient
from app.services.sync.base import SyncContext
from app.services.sync.registry import build_sync

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], ShopifyGraphQLClient]

# Strong references so detached runs are not garbage collected mid-flight
_running_tasks: Set[asyncio.Task] = set()


def default_client_factory(store_domain: str, access_token: str) -> ShopifyGraphQLClient:
    settings = get_settings()
    return ShopifyGraphQLClient(
        store_domain=store_domain,
        access_token=access_token,
        api_version=settings.SHOPIFY_API_VERSION,
        timeout=settings.SHOPIFY_REQUEST_TIMEOUT,
        max_retries=settings.SHOPIFY_MAX_RETRIES,
    )


def parse_sync_type(value: Any) -> SyncType:
    try:
        return SyncType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown sync type '{value}'. Expected one of: {', '.join(t.value for t in SyncType)}"
        )


def serialize_sync_log(log: SyncLog) -> Dict[str, Any]:
    return {
        "id": log.id,
        "connection_id": log.connection_id,
        "sync_type": log.sync_type,
        "status": log.status,
        "started_at": log.started_at.isoformat() if log.started_at else None,
        "completed_at": log.completed_at.isoformat() if log.completed_at else None,
        "summary": log.summary,
        "logs": log.logs or [],
    }


class SyncOrchestrator:
    def __init__(
        self,
        session_factory=async_session,
        client_factory: Optional[ClientFactory] = None,
        timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.client_factory = client_factory or default_client_factory
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.SYNC_TIMEOUT_SECONDS
        self.staging_domain = settings.SHOPIFY_STAGING_STORE_DOMAIN
        self.staging_token = settings.SHOPIFY_STAGING_ACCESS_TOKEN

    async def run_sync(self, connection_id: int, sync_type: Any, interactive: bool = True) -> Dict[str, Any]:
        """
        Start a sync and return its outcome.

        Interactive calls return one of:
            - the final result plus log_id
            - {"timeout": True, "log_id": ...} when the run outlives the timeout
            - {"started": True, "log_id": ...} for background resource families
        Non-interactive calls (the scheduler) wait for the final result.

        Raises:
            ValidationError: unknown sync type or staging store not configured
            ConnectionNotFoundError: connection missing or inactive
            TokenDecryptionError: the stored access token cannot be decrypted
        """
        sync_type = parse_sync_type(sync_type)
        if not self.staging_domain or not self.staging_token:
            raise ValidationError("Staging store credentials are not configured")

        async with self.session_factory() as db:
            row = await ConnectionService(db).get_active_connection(connection_id)
            connection = Connection.from_model(row)
            log = SyncLog(
                shop=row.shop,
                connection_id=row.id,
                sync_type=sync_type.value,
                status=SyncStatus.IN_PROGRESS.value,
                summary={"progress": {"stage": "starting", "message": "Starting sync...", "percentage": 0}},
                logs=[],
            )
            db.add(log)
            await db.commit()
            log_id = log.id

        logger.info(f"Sync {log_id} ({sync_type.value}) created for connection {connection_id}")
        task = asyncio.create_task(self._execute(log_id, connection, sync_type))
        _running_tasks.add(task)
        task.add_done_callback(_running_tasks.discard)

        if not interactive:
            result = await task
            return {**result, "log_id": log_id}

        if sync_type.runs_in_background:
            return {
                "started": True,
                "log_id": log_id,
                "message": f"{sync_type.value} sync started in the background. Poll the status endpoint for progress.",
            }

        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Sync {log_id} still running after {self.timeout_seconds}s; continuing in background")
            return {
                "timeout": True,
                "log_id": log_id,
                "message": "Sync is taking longer than expected and continues in the background.",
            }
        return {**result, "log_id": log_id}

    async def _execute(self, log_id: int, connection: Connection, sync_type: SyncType) -> Dict[str, Any]:
        async with self.session_factory() as db:
            try:
                mappings = ResourceMappingService(db)

                async def on_progress(progress: Dict[str, Any]) -> None:
                    await self._write_progress(db, log_id, progress)

                ctx = SyncContext(
                    connection=connection,
                    production=self.client_factory(connection.store_domain, connection.access_token),
                    staging=self.client_factory(self.staging_domain, self.staging_token),
                    mappings=mappings,
                    translator=GidTranslator(mappings),
                    on_progress=on_progress,
                )
                result = await build_sync(sync_type, ctx).run()
            except Exception as e:
                logger.exception(f"Sync {log_id} crashed")
                await db.rollback()
                result = {
                    "success": False,
                    "status": SyncStatus.FAILED.value,
                    "summary": {"errors": [str(e)]},
                    "logs": [{"timestamp": datetime.now(timezone.utc).isoformat(), "message": str(e), "success": False}],
                }

            await self._finalize(db, log_id, result)
            return result

    async def _write_progress(self, db: AsyncSession, log_id: int, progress: Dict[str, Any]) -> None:
        log = await db.get(SyncLog, log_id)
        if log is None or log.is_final:
            return
        log.summary = {"progress": progress}
        await db.commit()

    async def _finalize(self, db: AsyncSession, log_id: int, result: Dict[str, Any]) -> None:
        log = await db.get(SyncLog, log_id)
        if log is None:
            logger.error(f"Sync log {log_id} disappeared before it could be finalized")
            return
        await db.refresh(log)
        if log.is_final:
            logger.warning(f"Sync log {log_id} is already final; leaving it untouched")
            return
        log.status = result["status"]
        log.summary = result["summary"]
        log.logs = result["logs"]
        log.completed_at = datetime.now(timezone.utc)
        await db.commit()
        logger.info(f"Sync {log_id} finalized with status {log.status}")

    async def get_status(self, log_id: int) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as db:
            log = await db.get(SyncLog, log_id)
            return serialize_sync_log(log) if log else None
