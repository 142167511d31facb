# app/models/store_connection.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base


def utc_now():
    return datetime.now(timezone.utc)


class StoreConnection(Base):
    """
    A production store this staging shop copies data from.
    The access token is stored encrypted; see app.core.encryption.
    """
    __tablename__ = "store_connections"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String, nullable=False, index=True)          # staging shop of record
    name = Column(String, nullable=False)
    store_domain = Column(String, nullable=False)               # production myshopify domain
    encrypted_token = Column(Text, nullable=False)
    environment = Column(String, nullable=False, default="production")
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('shop', 'store_domain', name='uq_store_connection_shop_domain'),
    )

    def __repr__(self):
        return f"<StoreConnection(id={self.id}, name='{self.name}', store_domain='{self.store_domain}')>"
