"""
Scheduled production -> staging syncs.

One APScheduler job per connection with an enabled SyncSchedule. The job runs
the schedule's sync types one after another (later types depend on mappings
made by earlier ones), records the batch outcome on the schedule and advances
next_run_at whatever happened. A disabled schedule keeps next_run_at empty.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import get_settings
from app.core.enums import ScheduleFrequency, ScheduleRunStatus, SyncStatus
from app.core.exceptions import ConnectionNotFoundError, TokenDecryptionError
from app.database import async_session
from app.services.connections import Connection, ConnectionService
from app.services.schedules import ScheduleService
from app.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

# APScheduler counts weekdays from Monday; schedules count from Sunday
_CRON_DAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def job_id_for(connection_id: int) -> str:
    return f"sync_schedule_{connection_id}"


def build_cron_trigger(frequency: str, hour: int, minute: int, day_of_week: Optional[int] = None) -> CronTrigger:
    frequency = ScheduleFrequency(frequency)
    if frequency == ScheduleFrequency.EVERY_6H:
        return CronTrigger(minute=minute, hour="*/6", timezone=timezone.utc)
    if frequency == ScheduleFrequency.EVERY_12H:
        return CronTrigger(minute=minute, hour="*/12", timezone=timezone.utc)
    if frequency == ScheduleFrequency.WEEKLY:
        day = _CRON_DAY_NAMES[day_of_week if day_of_week is not None else 0]
        return CronTrigger(minute=minute, hour=hour, day_of_week=day, timezone=timezone.utc)
    return CronTrigger(minute=minute, hour=hour, timezone=timezone.utc)


def overall_status(results: List[Dict[str, Any]]) -> ScheduleRunStatus:
    if results and all(r["status"] == SyncStatus.SUCCESS.value for r in results):
        return ScheduleRunStatus.SUCCESS
    if not results or all(r["status"] == SyncStatus.FAILED.value for r in results):
        return ScheduleRunStatus.FAILED
    return ScheduleRunStatus.PARTIAL


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now(timezone.utc)}")


class SyncScheduler:
    """
    Owns the APScheduler instance and the connection -> job registry.

    Job ids are derived from the connection id and registered with
    replace_existing, so init/reload can run any number of times without
    leaving a second job behind for the same connection.
    """

    def __init__(self, session_factory=async_session, orchestrator: Optional[SyncOrchestrator] = None):
        self.session_factory = session_factory
        self.orchestrator = orchestrator or SyncOrchestrator(session_factory=session_factory)
        self.misfire_grace_time = get_settings().SCHEDULER_MISFIRE_GRACE_SECONDS
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        self._initialized = False

    # -- registry ------------------------------------------------------------

    def registered_connections(self) -> List[int]:
        prefix = job_id_for("")
        return sorted(int(job.id[len(prefix):]) for job in self.scheduler.get_jobs() if job.id.startswith(prefix))

    def _register(self, schedule) -> None:
        trigger = build_cron_trigger(schedule.frequency, schedule.hour, schedule.minute, schedule.day_of_week)
        self.scheduler.add_job(
            self.execute_scheduled_sync,
            trigger,
            args=[schedule.connection_id],
            id=job_id_for(schedule.connection_id),
            name=f"Scheduled sync for connection {schedule.connection_id}",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=self.misfire_grace_time,
        )
        logger.info(f"Registered {schedule.frequency} sync job for connection {schedule.connection_id}")

    async def init(self) -> None:
        """Register a job for every enabled schedule. Calling it again is a no-op."""
        if self._initialized:
            logger.info("Sync scheduler already initialized")
            return

        async with self.session_factory() as db:
            schedules = await ScheduleService(db).list_enabled_schedules()
            for schedule in schedules:
                self._register(schedule)

        if not self.scheduler.running:
            self.scheduler.start()
        self._initialized = True
        logger.info(f"Sync scheduler started with {len(schedules)} schedule(s)")

    async def reload(self, connection_id: int) -> bool:
        """Re-create the job from the stored schedule. Returns whether a job is registered afterwards."""
        self.remove(connection_id)
        async with self.session_factory() as db:
            schedule = await ScheduleService(db).get_schedule(connection_id)
            if schedule is None or not schedule.enabled:
                return False
            self._register(schedule)
        return True

    def remove(self, connection_id: int) -> None:
        if self.scheduler.get_job(job_id_for(connection_id)):
            self.scheduler.remove_job(job_id_for(connection_id))
            logger.info(f"Removed sync job for connection {connection_id}")

    async def run_now(self, connection_id: int) -> Dict[str, Any]:
        """
        Run the connection's schedule immediately.

        Raises:
            ScheduleNotFoundError: the connection has no schedule
        """
        async with self.session_factory() as db:
            await ScheduleService(db).require_schedule(connection_id)
        return await self.execute_scheduled_sync(connection_id)

    # -- execution -----------------------------------------------------------

    async def execute_scheduled_sync(self, connection_id: int) -> Dict[str, Any]:
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()

        async with self.session_factory() as db:
            schedule = await ScheduleService(db).get_schedule(connection_id)
            if schedule is None:
                logger.warning(f"Schedule for connection {connection_id} no longer exists; removing job")
                self.remove(connection_id)
                return {"status": ScheduleRunStatus.FAILED.value, "error": "Schedule not found"}
            sync_types = list(schedule.sync_types or [])

            error = None
            try:
                row = await ConnectionService(db).get_active_connection(connection_id)
                Connection.from_model(row)
            except (ConnectionNotFoundError, TokenDecryptionError) as e:
                error = str(e)

        logger.info(f"Scheduled sync for connection {connection_id} starting: {', '.join(sync_types)}")
        results: List[Dict[str, Any]] = []
        if error is None:
            for sync_type in sync_types:
                results.append(await self._run_one(connection_id, sync_type))
            status = overall_status(results)
        else:
            logger.error(f"Scheduled sync for connection {connection_id} cannot run: {error}")
            status = ScheduleRunStatus.FAILED

        summary: Dict[str, Any] = {"duration": round(time.monotonic() - started, 2), "results": results}
        if error:
            summary["error"] = error

        async with self.session_factory() as db:
            await ScheduleService(db).record_run(connection_id, started_at, status.value, summary)

        logger.info(f"Scheduled sync for connection {connection_id} finished: {status.value}")
        return {"status": status.value, **summary}

    async def _run_one(self, connection_id: int, sync_type: str) -> Dict[str, Any]:
        try:
            result = await self.orchestrator.run_sync(connection_id, sync_type, interactive=False)
        except Exception as e:
            logger.exception(f"Scheduled {sync_type} sync for connection {connection_id} failed")
            return {"sync_type": sync_type, "status": SyncStatus.FAILED.value,
                    "created": 0, "updated": 0, "failed": 0, "error": str(e)}

        summary = result.get("summary") or {}
        return {
            "sync_type": sync_type,
            "status": result.get("status", SyncStatus.FAILED.value),
            "created": summary.get("created", 0),
            "updated": summary.get("updated", 0),
            "failed": summary.get("failed", 0),
        }

    # -- lifecycle -----------------------------------------------------------

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Sync scheduler stopped")
        self._initialized = False

    def status(self) -> Dict[str, Any]:
        jobs_info = []
        for job in self.scheduler.get_jobs():
            jobs_info.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
                "trigger": str(job.trigger),
            })
        return {
            "status": "running" if self.scheduler.running else "stopped",
            "initialized": self._initialized,
            "jobs": jobs_info,
        }


# Process-wide instance, created on first use
_sync_scheduler: Optional[SyncScheduler] = None


def get_scheduler() -> SyncScheduler:
    global _sync_scheduler
    if _sync_scheduler is None:
        _sync_scheduler = SyncScheduler()
    return _sync_scheduler


async def start_scheduler() -> Optional[SyncScheduler]:
    if not get_settings().SYNC_SCHEDULER_ENABLED:
        logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULER_ENABLED=true to enable")
        return None
    scheduler = get_scheduler()
    await scheduler.init()
    return scheduler


async def stop_scheduler() -> None:
    if _sync_scheduler is not None:
        _sync_scheduler.shutdown()
