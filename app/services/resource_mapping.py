# app/services/resource_mapping.py
"""
Persistent production -> staging id mappings plus the unmapped-reference ledger.

Every write is an upsert on a unique key so that repeated or concurrent syncs of
the same item converge on one row instead of duplicating it.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.models.resource_mapping import ResourceMapping
from app.models.unmapped_reference import UnmappedReference
from app.services.shopify.gid import extract_id, normalize_type, parse_gid

logger = logging.getLogger(__name__)

BATCH_CHUNK_SIZE = 50
ALL_TYPES = "all"


class ResourceMappingService:
    """
    Read/write access to ResourceMapping and UnmappedReference rows for sync
    modules, the reference translator and the diagnostics routes.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Mappings
    # ------------------------------------------------------------------

    async def save_mapping(self, connection_id: int, resource_type: str, mapping: Dict[str, Any]) -> ResourceMapping:
        """
        Upsert a mapping keyed on (connection_id, resource_type, production_id).

        Args:
            mapping: production_id, staging_id, production_gid, staging_gid,
                match_key, match_value and optionally sync_id, title, metadata.
                Ids are derived from the GIDs when omitted.

        Raises:
            ValidationError: match_key/match_value (or the ids) are missing.
        """
        row, _ = await self._upsert_mapping(connection_id, resource_type, mapping)
        return row

    async def save_mappings(
        self,
        connection_id: int,
        resource_type: str,
        mappings: Iterable[Dict[str, Any]],
        chunk_size: int = BATCH_CHUNK_SIZE,
    ) -> Dict[str, Any]:
        """Batched upsert. Failures are reported per item; the batch carries on."""
        mappings = list(mappings)
        result = {"created": 0, "updated": 0, "failed": 0, "errors": []}

        for start in range(0, len(mappings), chunk_size):
            chunk = mappings[start:start + chunk_size]
            for mapping in chunk:
                try:
                    _, created = await self._upsert_mapping(connection_id, resource_type, mapping)
                    result["created" if created else "updated"] += 1
                except (ValidationError, SQLAlchemyError) as e:
                    result["failed"] += 1
                    result["errors"].append({
                        "production_id": mapping.get("production_id") or extract_id(mapping.get("production_gid")),
                        "error": str(e),
                    })
            logger.debug(
                f"Saved mapping chunk {start // chunk_size + 1} for connection {connection_id} "
                f"({resource_type}): {len(chunk)} items"
            )

        return result

    async def _upsert_mapping(
        self, connection_id: int, resource_type: str, mapping: Dict[str, Any]
    ) -> Tuple[ResourceMapping, bool]:
        values = self._mapping_values(resource_type, mapping)

        existing = await self.get_mapping(connection_id, resource_type, values["production_id"])
        created = existing is None
        if existing is None:
            row = ResourceMapping(connection_id=connection_id, resource_type=resource_type, **values)
            self.db.add(row)
            try:
                await self.db.commit()
            except IntegrityError:
                # Another writer inserted the same key first; fall through to update
                await self.db.rollback()
                existing = await self.get_mapping(connection_id, resource_type, values["production_id"])
                if existing is None:
                    raise
                created = False

        if existing is not None:
            for key, value in values.items():
                if key == "production_gid":
                    continue
                setattr(existing, key, value)
            await self.db.commit()
            row = existing

        return row, created

    @staticmethod
    def _mapping_values(resource_type: str, mapping: Dict[str, Any]) -> Dict[str, Any]:
        match_key = mapping.get("match_key")
        match_value = mapping.get("match_value")
        if not match_key or match_value in (None, ""):
            raise ValidationError(
                f"Mapping for {resource_type} requires match_key and match_value "
                f"(got match_key={match_key!r}, match_value={match_value!r})"
            )

        production_gid = mapping.get("production_gid")
        staging_gid = mapping.get("staging_gid")
        production_id = mapping.get("production_id") or extract_id(production_gid)
        staging_id = mapping.get("staging_id") or extract_id(staging_gid)
        if not production_id or not staging_id or not production_gid or not staging_gid:
            raise ValidationError(f"Mapping for {resource_type} requires production and staging ids")

        return {
            "production_id": str(production_id),
            "staging_id": str(staging_id),
            "production_gid": production_gid,
            "staging_gid": staging_gid,
            "match_key": match_key,
            "match_value": str(match_value),
            "sync_id": mapping.get("sync_id"),
            "title": mapping.get("title"),
            "mapping_metadata": mapping.get("metadata"),
            "last_synced_at": datetime.now(timezone.utc),
        }

    async def get_mapping(self, connection_id: int, resource_type: str, production_id: str) -> Optional[ResourceMapping]:
        stmt = select(ResourceMapping).where(
            ResourceMapping.connection_id == connection_id,
            ResourceMapping.resource_type == resource_type,
            ResourceMapping.production_id == str(production_id),
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_mapping_by_production_gid(self, connection_id: int, production_gid: str) -> Optional[ResourceMapping]:
        """None means "unmapped", including for malformed GIDs."""
        parsed = parse_gid(production_gid)
        if not parsed:
            return None
        return await self.get_mapping(connection_id, normalize_type(parsed["type"]), parsed["id"])

    async def get_mapping_by_match(
        self, connection_id: int, resource_type: str, match_key: str, match_value: str
    ) -> Optional[ResourceMapping]:
        stmt = select(ResourceMapping).where(
            ResourceMapping.connection_id == connection_id,
            ResourceMapping.resource_type == resource_type,
            ResourceMapping.match_key == match_key,
            ResourceMapping.match_value == str(match_value),
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_mappings(
        self,
        connection_id: int,
        resource_type: str = ALL_TYPES,
        limit: int = 100,
        offset: int = 0,
        order_by: str = "last_synced_at",
        descending: bool = True,
    ) -> List[ResourceMapping]:
        column = getattr(ResourceMapping, order_by, None)
        if column is None:
            raise ValidationError(f"Cannot order mappings by '{order_by}'")

        stmt = select(ResourceMapping).where(ResourceMapping.connection_id == connection_id)
        if resource_type and resource_type != ALL_TYPES:
            stmt = stmt.where(ResourceMapping.resource_type == resource_type)
        stmt = stmt.order_by(column.desc() if descending else column.asc(), ResourceMapping.id)
        stmt = stmt.limit(limit).offset(offset)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_mappings_count(self, connection_id: int, resource_type: str = ALL_TYPES) -> int:
        stmt = select(func.count(ResourceMapping.id)).where(ResourceMapping.connection_id == connection_id)
        if resource_type and resource_type != ALL_TYPES:
            stmt = stmt.where(ResourceMapping.resource_type == resource_type)
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def delete_mappings(self, connection_id: int) -> int:
        """Remove every mapping and unmapped reference for a connection."""
        result = await self.db.execute(
            delete(ResourceMapping).where(ResourceMapping.connection_id == connection_id)
        )
        await self.db.execute(
            delete(UnmappedReference).where(UnmappedReference.connection_id == connection_id)
        )
        await self.db.commit()
        logger.info(f"Deleted {result.rowcount} mappings for connection {connection_id}")
        return result.rowcount

    # ------------------------------------------------------------------
    # Unmapped references
    # ------------------------------------------------------------------

    async def log_unmapped_reference(
        self,
        connection_id: int,
        production_gid: str,
        context: str,
        found_in_sync_type: str,
    ) -> Optional[UnmappedReference]:
        """
        Record (or refresh) a reference that could not be translated.

        Never raises: this is diagnostic and must not abort the calling sync.
        """
        parsed = parse_gid(production_gid)
        if not parsed:
            logger.warning(f"Not logging unmapped reference, invalid GID: {production_gid!r}")
            return None

        try:
            stmt = select(UnmappedReference).where(
                UnmappedReference.connection_id == connection_id,
                UnmappedReference.production_gid == production_gid,
                UnmappedReference.context == context,
            )
            existing = (await self.db.execute(stmt)).scalars().first()
            now = datetime.now(timezone.utc)

            if existing:
                existing.attempted_at = now
                existing.found_in_sync_type = found_in_sync_type
                reference = existing
            else:
                reference = UnmappedReference(
                    connection_id=connection_id,
                    resource_type=normalize_type(parsed["type"]),
                    production_id=parsed["id"],
                    production_gid=production_gid,
                    context=context,
                    found_in_sync_type=found_in_sync_type,
                    attempted_at=now,
                    resolved=False,
                )
                self.db.add(reference)

            await self.db.commit()
            return reference
        except SQLAlchemyError as e:
            logger.error(f"Error logging unmapped reference {production_gid}: {str(e)}")
            await self.db.rollback()
            return None

    async def get_unmapped_references(
        self,
        connection_id: int,
        resource_type: Optional[str] = None,
        resolved: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[UnmappedReference]:
        stmt = select(UnmappedReference).where(
            UnmappedReference.connection_id == connection_id,
            UnmappedReference.resolved == resolved,
        )
        if resource_type and resource_type != ALL_TYPES:
            stmt = stmt.where(UnmappedReference.resource_type == resource_type)
        stmt = stmt.order_by(UnmappedReference.attempted_at.desc(), UnmappedReference.id).limit(limit).offset(offset)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_unmapped_references_count(
        self, connection_id: int, resource_type: Optional[str] = None, resolved: bool = False
    ) -> int:
        stmt = select(func.count(UnmappedReference.id)).where(
            UnmappedReference.connection_id == connection_id,
            UnmappedReference.resolved == resolved,
        )
        if resource_type and resource_type != ALL_TYPES:
            stmt = stmt.where(UnmappedReference.resource_type == resource_type)
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def mark_unmapped_reference_resolved(self, reference_id: int) -> Optional[UnmappedReference]:
        reference = await self.db.get(UnmappedReference, reference_id)
        if reference is None:
            return None
        reference.resolved = True
        reference.resolved_at = datetime.now(timezone.utc)
        await self.db.commit()
        return reference

    async def get_mapping_stats(self, connection_id: int) -> Dict[str, Any]:
        """Per-type counts of mappings and of unresolved references."""
        mapping_rows = await self.db.execute(
            select(ResourceMapping.resource_type, func.count(ResourceMapping.id))
            .where(ResourceMapping.connection_id == connection_id)
            .group_by(ResourceMapping.resource_type)
        )
        unmapped_rows = await self.db.execute(
            select(UnmappedReference.resource_type, func.count(UnmappedReference.id))
            .where(
                UnmappedReference.connection_id == connection_id,
                UnmappedReference.resolved.is_(False),
            )
            .group_by(UnmappedReference.resource_type)
        )

        mappings_by_type = {resource_type: count for resource_type, count in mapping_rows.all()}
        unmapped_by_type = {resource_type: count for resource_type, count in unmapped_rows.all()}

        return {
            "total_mappings": sum(mappings_by_type.values()),
            "total_unmapped": sum(unmapped_by_type.values()),
            "mappings_by_type": mappings_by_type,
            "unmapped_by_type": unmapped_by_type,
        }
