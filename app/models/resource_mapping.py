# app/models/resource_mapping.py
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base
from app.models.store_connection import utc_now


class ResourceMapping(Base):
    """
    Links a production resource to its staging counterpart for one connection.

    At most one row exists per (connection, resource_type, production_id);
    re-syncing the same production item updates the row in place.
    """
    __tablename__ = "resource_mappings"

    id = Column(Integer, primary_key=True, index=True)
    connection_id = Column(Integer, ForeignKey("store_connections.id", ondelete="CASCADE"), nullable=False)
    resource_type = Column(String, nullable=False)

    production_id = Column(String, nullable=False)
    staging_id = Column(String, nullable=False)
    production_gid = Column(String, nullable=False)
    staging_gid = Column(String, nullable=False)

    # What matched the two sides, e.g. 'handle' / 'my-page'
    match_key = Column(String, nullable=False)
    match_value = Column(String, nullable=False)

    sync_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=True)
    mapping_metadata = Column("metadata", JSON, nullable=True)

    last_synced_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('connection_id', 'resource_type', 'production_id', name='uq_resource_mapping_production'),
        Index('ix_resource_mappings_connection_type', 'connection_id', 'resource_type'),
        Index('ix_resource_mappings_match', 'connection_id', 'match_key', 'match_value'),
    )

    def __repr__(self):
        return (f"<ResourceMapping(id={self.id}, type='{self.resource_type}', "
                f"production_id='{self.production_id}', staging_id='{self.staging_id}')>")
