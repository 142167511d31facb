# app/models/sync_schedule.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.sql import func

from app.database import Base
from app.core.enums import ScheduleFrequency
from app.models.store_connection import utc_now


class SyncSchedule(Base):
    """Recurring batch of syncs for one connection (at most one per connection)."""
    __tablename__ = "sync_schedules"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, nullable=False, index=True)
    connection_id = Column(Integer, ForeignKey("store_connections.id", ondelete="CASCADE"), nullable=False, unique=True)

    sync_types = Column(JSON, nullable=False, default=list)     # ordered list of SyncType values
    frequency = Column(String, nullable=False, default=ScheduleFrequency.DAILY.value)
    hour = Column(Integer, nullable=False, default=2)
    minute = Column(Integer, nullable=False, default=0)
    day_of_week = Column(Integer, nullable=True)                 # 0 = Sunday, weekly only
    enabled = Column(Boolean, nullable=False, default=True)

    last_run_at = Column(DateTime(timezone=True), nullable=True)
    next_run_at = Column(DateTime(timezone=True), nullable=True)
    last_run_status = Column(String, nullable=True)
    last_run_summary = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now())

    def __repr__(self):
        return (f"<SyncSchedule(connection_id={self.connection_id}, frequency='{self.frequency}', "
                f"enabled={self.enabled})>")
