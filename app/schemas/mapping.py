# app/schemas/mapping.py
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from .base import BaseSchema


class ResourceMappingRead(BaseSchema):
    id: int
    connection_id: int
    resource_type: str
    production_id: str
    staging_id: str
    production_gid: Optional[str] = None
    staging_gid: Optional[str] = None
    match_key: str
    match_value: str
    title: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="mapping_metadata")
    sync_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None


class UnmappedReferenceRead(BaseSchema):
    id: int
    connection_id: int
    resource_type: str
    production_gid: str
    production_id: str
    context: str
    found_in_sync_type: Optional[str] = None
    attempted_at: Optional[datetime] = None
    resolved: bool
    resolved_at: Optional[datetime] = None
