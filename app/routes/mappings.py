# app/routes/mappings.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.dependencies import get_db
from app.schemas import ResourceMappingRead, UnmappedReferenceRead
from app.services.resource_mapping import ResourceMappingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/mappings", tags=["mappings"])


@router.get("/{connection_id}")
async def list_mappings(
    connection_id: int,
    resource_type: str = "all",
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    service = ResourceMappingService(db)
    try:
        rows = await service.get_mappings(connection_id, resource_type, limit=limit, offset=offset)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    total = await service.get_mappings_count(connection_id, resource_type)
    return {
        "mappings": [ResourceMappingRead.from_orm_model(row).model_dump() for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/{connection_id}/stats")
async def mapping_stats(connection_id: int, db: AsyncSession = Depends(get_db)):
    return await ResourceMappingService(db).get_mapping_stats(connection_id)


@router.get("/{connection_id}/unmapped")
async def list_unmapped_references(
    connection_id: int,
    resource_type: str = "all",
    resolved: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    service = ResourceMappingService(db)
    rows = await service.get_unmapped_references(connection_id, resource_type, resolved, limit, offset)
    total = await service.get_unmapped_references_count(connection_id, resource_type, resolved)
    return {
        "references": [UnmappedReferenceRead.from_orm_model(row).model_dump() for row in rows],
        "total": total,
    }


@router.post("/unmapped/{reference_id}/resolve")
async def resolve_unmapped_reference(reference_id: int, db: AsyncSession = Depends(get_db)):
    reference = await ResourceMappingService(db).mark_unmapped_reference_resolved(reference_id)
    if reference is None:
        raise HTTPException(status_code=404, detail=f"Unmapped reference {reference_id} not found")
    return UnmappedReferenceRead.from_orm_model(reference)


@router.delete("/{connection_id}")
async def delete_mappings(connection_id: int, db: AsyncSession = Depends(get_db)):
    try:
        deleted = await ResourceMappingService(db).delete_mappings(connection_id)
        return {"status": "success", "deleted": deleted}
    except Exception as e:
        logger.error(f"Error deleting mappings for connection {connection_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
