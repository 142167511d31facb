# app/schemas/schedule.py
from typing import List, Optional

from pydantic import Field

from .base import BaseSchema


class ScheduleUpsert(BaseSchema):
    """Schedule payload; range and vocabulary checks happen in ScheduleService."""
    sync_types: List[str] = Field(default_factory=list)
    frequency: str = "daily"
    hour: int = 2
    minute: int = 0
    day_of_week: Optional[int] = Field(None, description="0 = Sunday, weekly schedules only")
    enabled: bool = True
