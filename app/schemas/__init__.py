"""
Schema exports for the application.
"""

# Base schemas
from .base import BaseSchema, TimestampedSchema

# Connection schemas
from .connection import ConnectionCreate, ConnectionUpdate, ConnectionRead

# Mapping diagnostics
from .mapping import ResourceMappingRead, UnmappedReferenceRead

# Schedules
from .schedule import ScheduleUpsert
