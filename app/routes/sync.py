# app/routes/sync.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConnectionNotFoundError, TokenDecryptionError, ValidationError
from app.dependencies import get_db
from app.models.sync_log import SyncLog
from app.services.sync_orchestrator import SyncOrchestrator, serialize_sync_log

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sync", tags=["sync"])


def get_orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator()


@router.post("/{connection_id}/{sync_type}")
async def run_sync(
    connection_id: int,
    sync_type: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Sync one resource family from the connection's production store into staging.

    Large families return immediately with a log id; the rest wait up to the
    configured timeout and hand back the log id if they are still running.
    """
    try:
        return await orchestrator.run_sync(connection_id, sync_type)
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ValidationError, TokenDecryptionError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error running {sync_type} sync for connection {connection_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/status/{log_id}")
async def sync_status(log_id: int, orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    status = await orchestrator.get_status(log_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Sync log {log_id} not found")
    return status


@router.get("/logs")
async def sync_logs(
    connection_id: Optional[int] = None,
    sync_type: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    stmt = select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit)
    if connection_id is not None:
        stmt = stmt.where(SyncLog.connection_id == connection_id)
    if sync_type:
        stmt = stmt.where(SyncLog.sync_type == sync_type)
    result = await db.execute(stmt)
    return {"logs": [serialize_sync_log(log) for log in result.scalars().all()]}
