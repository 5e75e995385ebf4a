"""SQLAlchemy ORM Models for BrewOps workforce sync."""

from backend.models.base import Base, TimestampMixin
from backend.models.employee import TipEmployee, UserProfile
from backend.models.square_connection import SquareConnection, SyncStatus
from backend.models.square_mapping import MappingStatus, SquareEmployeeMapping
from backend.models.tenant import Tenant
from backend.models.time_clock import TimeClockBreak, TimeClockEntry, TimeClockSource

__all__ = [
    "Base",
    "TimestampMixin",
    "Tenant",
    "UserProfile",
    "TipEmployee",
    "SquareConnection",
    "SyncStatus",
    "SquareEmployeeMapping",
    "MappingStatus",
    "TimeClockEntry",
    "TimeClockBreak",
    "TimeClockSource",
]
