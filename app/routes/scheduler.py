"""
Sync schedule endpoints
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConnectionNotFoundError, ScheduleNotFoundError, ValidationError
from app.dependencies import get_db
from app.scheduler import SyncScheduler, get_scheduler
from app.schemas import ScheduleUpsert
from app.services.schedules import ScheduleService, serialize_schedule

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/schedules", tags=["schedules"])


@router.get("/status", response_model=Dict[str, Any])
async def scheduler_status(scheduler: SyncScheduler = Depends(get_scheduler)):
    """Registered timers and their next fire times"""
    return scheduler.status()


@router.get("/{connection_id}")
async def get_schedule(connection_id: int, db: AsyncSession = Depends(get_db)):
    schedule = await ScheduleService(db).get_schedule(connection_id)
    return {"schedule": serialize_schedule(schedule) if schedule else None}


@router.put("/{connection_id}")
async def save_schedule(
    connection_id: int,
    payload: ScheduleUpsert,
    db: AsyncSession = Depends(get_db),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    try:
        schedule = await ScheduleService(db).upsert_schedule(connection_id, payload.model_dump())
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    registered = await scheduler.reload(connection_id)
    return {"schedule": serialize_schedule(schedule), "registered": registered}


@router.delete("/{connection_id}")
async def delete_schedule(
    connection_id: int,
    db: AsyncSession = Depends(get_db),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    try:
        await ScheduleService(db).delete_schedule(connection_id)
    except ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    scheduler.remove(connection_id)
    return {"status": "success", "message": "Schedule deleted"}


@router.post("/{connection_id}/run")
async def run_schedule_now(
    connection_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Run the schedule's sync types now; the regular cadence resumes from now."""
    try:
        await ScheduleService(db).require_schedule(connection_id)
    except ScheduleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    background_tasks.add_task(scheduler.execute_scheduled_sync, connection_id)
    logger.info(f"Scheduled sync for connection {connection_id} triggered manually")
    return {"status": "started", "message": "Scheduled sync started"}
