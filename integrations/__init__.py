"""
BrewOps External Integrations

Square labor/timecard connector used by the workforce sync engine.
"""

from integrations.base import (
    LocationData,
    SyncResult,
    TeamMemberData,
    TimecardBreakData,
    TimecardData,
    TimekeepingIntegration,
)

__all__ = [
    "LocationData",
    "SyncResult",
    "TeamMemberData",
    "TimecardBreakData",
    "TimecardData",
    "TimekeepingIntegration",
]
