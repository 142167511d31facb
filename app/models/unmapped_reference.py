# app/models/unmapped_reference.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from app.database import Base
from app.models.store_connection import utc_now


class UnmappedReference(Base):
    """
    A production GID seen during translation that had no mapping yet.
    Purely diagnostic; recording it again refreshes attempted_at.
    """
    __tablename__ = "unmapped_references"

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("store_connections.id", ondelete="CASCADE"), nullable=False)
    resource_type = Column(String, nullable=False)
    production_id = Column(String, nullable=False)
    production_gid = Column(String, nullable=False)
    context = Column(String, nullable=False)          # e.g. "product:123 metafield:custom.related"
    found_in_sync_type = Column(String, nullable=False)

    attempted_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    resolved = Column(Boolean, default=False, nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('connection_id', 'production_gid', 'context', name='uq_unmapped_reference_context'),
        Index('ix_unmapped_references_connection_resolved', 'connection_id', 'resolved'),
    )

    def __repr__(self):
        return f"<UnmappedReference(id={self.id}, gid='{self.production_gid}', resolved={self.resolved})>"
