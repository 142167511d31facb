# app/services/schedules.py
"""Sync schedule persistence, validation and next-run arithmetic."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import ScheduleFrequency, SyncType
from app.core.exceptions import ScheduleNotFoundError, ValidationError
from app.models.sync_schedule import SyncSchedule
from app.services.connections import ConnectionService

logger = logging.getLogger(__name__)

SLOT_HOURS = {
    ScheduleFrequency.EVERY_6H: (0, 6, 12, 18),
    ScheduleFrequency.EVERY_12H: (0, 12),
}


def _js_weekday(moment: datetime) -> int:
    """Weekday with 0 = Sunday."""
    return (moment.weekday() + 1) % 7


def compute_next_run_at(
    frequency: str,
    hour: int,
    minute: int,
    day_of_week: Optional[int] = None,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Next UTC fire time strictly after `now`.

    daily: today at hour:minute, or tomorrow if that has passed
    every_6h / every_12h: next slot (00/06/12/18 or 00/12) at the given minute
    weekly: next `day_of_week` (0 = Sunday) at hour:minute, a full week ahead
        when today is that day and the time has passed
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    frequency = ScheduleFrequency(frequency)
    today = now.replace(second=0, microsecond=0)

    if frequency in SLOT_HOURS:
        for slot in SLOT_HOURS[frequency]:
            candidate = today.replace(hour=slot, minute=minute)
            if candidate > now:
                return candidate
        return today.replace(hour=SLOT_HOURS[frequency][0], minute=minute) + timedelta(days=1)

    candidate = today.replace(hour=hour, minute=minute)

    if frequency == ScheduleFrequency.WEEKLY:
        target = day_of_week if day_of_week is not None else 0
        candidate += timedelta(days=(target - _js_weekday(now)) % 7)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def next_run_for(schedule: SyncSchedule, now: Optional[datetime] = None) -> datetime:
    return compute_next_run_at(schedule.frequency, schedule.hour, schedule.minute, schedule.day_of_week, now)


def validate_schedule_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise and check an upsert payload; raises ValidationError with the first problem found."""
    try:
        frequency = ScheduleFrequency(data.get("frequency", ScheduleFrequency.DAILY.value))
    except ValueError:
        raise ValidationError(
            f"Invalid frequency '{data.get('frequency')}'. Expected one of: "
            f"{', '.join(f.value for f in ScheduleFrequency)}"
        )

    hour = data.get("hour", 2)
    minute = data.get("minute", 0)
    if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour <= 23:
        raise ValidationError("hour must be between 0 and 23")
    if isinstance(minute, bool) or not isinstance(minute, int) or not 0 <= minute <= 59:
        raise ValidationError("minute must be between 0 and 59")

    day_of_week = data.get("day_of_week")
    if frequency == ScheduleFrequency.WEEKLY:
        if day_of_week is None:
            day_of_week = 0
        if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    else:
        day_of_week = None

    sync_types = data.get("sync_types") or []
    if not sync_types:
        raise ValidationError("At least one sync type is required")
    known = {t.value for t in SyncType}
    unknown = [t for t in sync_types if t not in known]
    if unknown:
        raise ValidationError(f"Unknown sync type(s): {', '.join(map(str, unknown))}")

    return {
        "frequency": frequency.value,
        "hour": hour,
        "minute": minute,
        "day_of_week": day_of_week,
        "sync_types": list(dict.fromkeys(sync_types)),
        "enabled": bool(data.get("enabled", True)),
    }


class ScheduleService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_schedule(self, connection_id: int) -> Optional[SyncSchedule]:
        result = await self.db.execute(select(SyncSchedule).where(SyncSchedule.connection_id == connection_id))
        return result.scalars().first()

    async def require_schedule(self, connection_id: int) -> SyncSchedule:
        schedule = await self.get_schedule(connection_id)
        if schedule is None:
            raise ScheduleNotFoundError("Schedule not found")
        return schedule

    async def list_enabled_schedules(self) -> List[SyncSchedule]:
        result = await self.db.execute(select(SyncSchedule).where(SyncSchedule.enabled.is_(True)))
        return list(result.scalars().all())

    async def upsert_schedule(self, connection_id: int, data: Dict[str, Any]) -> SyncSchedule:
        connection = await ConnectionService(self.db).get_connection(connection_id)
        values = validate_schedule_data(data)

        schedule = await self.get_schedule(connection_id)
        if schedule is None:
            schedule = SyncSchedule(shop=connection.shop, connection_id=connection_id)
            self.db.add(schedule)
        for key, value in values.items():
            setattr(schedule, key, value)
        schedule.next_run_at = next_run_for(schedule) if schedule.enabled else None

        await self.db.commit()
        await self.db.refresh(schedule)
        logger.info(f"Saved {schedule.frequency} schedule for connection {connection_id}")
        return schedule

    async def delete_schedule(self, connection_id: int) -> None:
        schedule = await self.require_schedule(connection_id)
        await self.db.delete(schedule)
        await self.db.commit()
        logger.info(f"Deleted schedule for connection {connection_id}")

    async def record_run(
        self, connection_id: int, started_at: datetime, status: str, summary: Dict[str, Any]
    ) -> Optional[SyncSchedule]:
        schedule = await self.get_schedule(connection_id)
        if schedule is None:
            return None
        schedule.last_run_at = started_at
        schedule.last_run_status = status
        schedule.last_run_summary = summary
        schedule.next_run_at = next_run_for(schedule) if schedule.enabled else None
        await self.db.commit()
        return schedule


def serialize_schedule(schedule: SyncSchedule) -> Dict[str, Any]:
    return {
        "id": schedule.id,
        "connection_id": schedule.connection_id,
        "sync_types": schedule.sync_types or [],
        "frequency": schedule.frequency,
        "hour": schedule.hour,
        "minute": schedule.minute,
        "day_of_week": schedule.day_of_week,
        "enabled": schedule.enabled,
        "last_run_at": schedule.last_run_at.isoformat() if schedule.last_run_at else None,
        "next_run_at": schedule.next_run_at.isoformat() if schedule.next_run_at else None,
        "last_run_status": schedule.last_run_status,
        "last_run_summary": schedule.last_run_summary,
    }
