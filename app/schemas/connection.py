# app/schemas/connection.py
from typing import Optional

from pydantic import Field

from .base import BaseSchema, TimestampedSchema


class ConnectionCreate(BaseSchema):
    shop: str = Field(..., description="Staging shop the connection belongs to")
    name: str
    store_domain: str = Field(..., description="Production store domain, e.g. my-store.myshopify.com")
    access_token: str = Field(..., min_length=1)
    environment: str = "production"


class ConnectionUpdate(BaseSchema):
    name: Optional[str] = None
    store_domain: Optional[str] = None
    access_token: Optional[str] = None
    environment: Optional[str] = None
    is_active: Optional[bool] = None


class ConnectionRead(TimestampedSchema):
    """A connection as returned by the API; the token never leaves the server."""
    id: int
    shop: str
    name: str
    store_domain: str
    environment: str
    is_active: bool
