# app/routes/connections.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConnectionNotFoundError, ValidationError
from app.dependencies import get_db
from app.scheduler import get_scheduler
from app.schemas import ConnectionCreate, ConnectionRead, ConnectionUpdate
from app.services.connections import ConnectionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/connections", tags=["connections"])


@router.get("", response_model=List[ConnectionRead])
async def list_connections(shop: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    rows = await ConnectionService(db).list_connections(shop)
    return [ConnectionRead.from_orm_model(row) for row in rows]


@router.post("", response_model=ConnectionRead, status_code=201)
async def create_connection(payload: ConnectionCreate, db: AsyncSession = Depends(get_db)):
    try:
        row = await ConnectionService(db).create_connection(**payload.model_dump())
        return ConnectionRead.from_orm_model(row)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating connection: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{connection_id}", response_model=ConnectionRead)
async def get_connection(connection_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return ConnectionRead.from_orm_model(await ConnectionService(db).get_connection(connection_id))
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/{connection_id}", response_model=ConnectionRead)
async def update_connection(connection_id: int, payload: ConnectionUpdate, db: AsyncSession = Depends(get_db)):
    try:
        row = await ConnectionService(db).update_connection(connection_id, **payload.model_dump(exclude_unset=True))
        return ConnectionRead.from_orm_model(row)
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{connection_id}")
async def delete_connection(connection_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a connection with its mappings, logs and schedule, and stop its timer."""
    try:
        await ConnectionService(db).delete_connection(connection_id)
    except ConnectionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    get_scheduler().remove(connection_id)
    return {"status": "success", "message": f"Connection {connection_id} deleted"}
