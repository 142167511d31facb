# app/services/connections.py
"""Store connection CRUD and the decrypted Connection value object."""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.encryption import decrypt_token, encrypt_token
from app.core.exceptions import ConnectionNotFoundError, ValidationError
from app.models.store_connection import StoreConnection
from app.models.sync_log import SyncLog
from app.models.sync_schedule import SyncSchedule
from app.services.resource_mapping import ResourceMappingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Connection:
    """Everything a sync needs to reach the production store."""
    id: int
    shop: str
    name: str
    store_domain: str
    access_token: str
    environment: str = "production"

    @classmethod
    def from_model(cls, row: StoreConnection) -> "Connection":
        """
        Raises:
            TokenDecryptionError: the stored token cannot be decrypted
        """
        return cls(
            id=row.id,
            shop=row.shop,
            name=row.name,
            store_domain=row.store_domain,
            access_token=decrypt_token(row.encrypted_token),
            environment=row.environment,
        )


def _normalize_domain(domain: str) -> str:
    domain = (domain or "").strip().lower()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return domain.rstrip("/")


class ConnectionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_connections(self, shop: Optional[str] = None) -> List[StoreConnection]:
        stmt = select(StoreConnection).order_by(StoreConnection.created_at.desc(), StoreConnection.id.desc())
        if shop:
            stmt = stmt.where(StoreConnection.shop == shop)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_connection(self, connection_id: int) -> StoreConnection:
        row = await self.db.get(StoreConnection, connection_id)
        if row is None:
            raise ConnectionNotFoundError(f"Connection {connection_id} not found")
        return row

    async def get_active_connection(self, connection_id: int) -> StoreConnection:
        row = await self.db.get(StoreConnection, connection_id)
        if row is None or not row.is_active:
            raise ConnectionNotFoundError("Connection not found or inactive")
        return row

    async def create_connection(
        self,
        shop: str,
        name: str,
        store_domain: str,
        access_token: str,
        environment: str = "production",
    ) -> StoreConnection:
        if not access_token:
            raise ValidationError("An access token is required")
        domain = _normalize_domain(store_domain)
        if not domain:
            raise ValidationError("A store domain is required")

        existing = await self.db.execute(
            select(StoreConnection).where(StoreConnection.shop == shop, StoreConnection.store_domain == domain)
        )
        if existing.scalars().first():
            raise ValidationError(f"A connection to {domain} already exists for {shop}")

        row = StoreConnection(
            shop=shop,
            name=name,
            store_domain=domain,
            encrypted_token=encrypt_token(access_token),
            environment=environment,
            is_active=True,
        )
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        logger.info(f"Created connection {row.id} ({name} -> {domain}) for {shop}")
        return row

    async def update_connection(
        self,
        connection_id: int,
        name: Optional[str] = None,
        store_domain: Optional[str] = None,
        access_token: Optional[str] = None,
        environment: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> StoreConnection:
        row = await self.get_connection(connection_id)
        if name is not None:
            row.name = name
        if store_domain is not None:
            row.store_domain = _normalize_domain(store_domain)
        if access_token:
            row.encrypted_token = encrypt_token(access_token)
        if environment is not None:
            row.environment = environment
        if is_active is not None:
            row.is_active = is_active
        await self.db.commit()
        await self.db.refresh(row)
        return row

    async def delete_connection(self, connection_id: int) -> None:
        """Delete a connection together with everything recorded for it."""
        row = await self.get_connection(connection_id)
        await ResourceMappingService(self.db).delete_mappings(connection_id)
        await self.db.execute(delete(SyncSchedule).where(SyncSchedule.connection_id == connection_id))
        await self.db.execute(delete(SyncLog).where(SyncLog.connection_id == connection_id))
        await self.db.delete(row)
        await self.db.commit()
        logger.info(f"Deleted connection {connection_id}")
