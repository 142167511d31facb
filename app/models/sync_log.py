# app/models/sync_log.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String

from app.database import Base
from app.core.enums import SyncStatus
from app.models.store_connection import utc_now


class SyncLog(Base):
    """
    Run record for one resource sync invocation.

    `summary` holds live progress ({percentage, stage, message}) while the run
    is in progress and the final counts afterwards. Rows with completed_at set
    are final.
    """
    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, nullable=False, index=True)
    connection_id = Column(Integer, ForeignKey("store_connections.id", ondelete="CASCADE"), nullable=False, index=True)
    sync_type = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=SyncStatus.IN_PROGRESS.value, index=True)

    summary = Column(JSON, nullable=True)
    logs = Column(JSON, nullable=True)

    started_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_final(self) -> bool:
        return self.completed_at is not None

    def __repr__(self):
        return f"<SyncLog(id={self.id}, sync_type='{self.sync_type}', status='{self.status}')>"
