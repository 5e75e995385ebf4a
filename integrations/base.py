"""
Base Integration Classes

Abstract base for timekeeping providers and the normalized data models the
sync engine consumes.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LocationData(BaseModel):
    """A business location at the provider."""

    id: str
    name: str | None = None
    status: str | None = None
    timezone: str | None = None
    address: dict | None = None


class TeamMemberData(BaseModel):
    """A worker on the provider's roster."""

    id: str
    given_name: str | None = None
    family_name: str | None = None
    email_address: str | None = None
    status: str | None = None

    @property
    def display_name(self) -> str:
        """Given and family name joined, blanks dropped."""
        parts = [p for p in (self.given_name, self.family_name) if p]
        return " ".join(parts).strip()


class TimecardBreakData(BaseModel):
    """A break inside a timecard."""

    model_config = ConfigDict(extra="ignore")

    id: str
    start_at: datetime
    end_at: datetime | None = None
    name: str | None = None
    is_paid: bool = False

    @field_validator("start_at", "end_at")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return _to_utc(value)

    @field_validator("is_paid", mode="before")
    @classmethod
    def _default_unpaid(cls, value):
        return False if value is None else value


class TimecardData(BaseModel):
    """
    One attendance record from the provider.

    Built from the REST search response and from webhook payloads alike;
    both use the provider's snake_case field names.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    team_member_id: str | None = None
    location_id: str | None = None
    start_at: datetime
    end_at: datetime | None = None
    status: str | None = None
    breaks: list[TimecardBreakData] = Field(default_factory=list)

    @field_validator("start_at", "end_at")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return _to_utc(value)

    @field_validator("breaks", mode="before")
    @classmethod
    def _default_breaks(cls, value):
        return value or []


class SyncResult(BaseModel):
    """Aggregate counts from one sync run."""

    synced: int = 0
    skipped: int = 0
    errors: int = 0


class TimekeepingIntegration(ABC):
    """Read-only, fully paginated access to a provider's labor data."""

    provider_name: str

    def __init__(self, access_token: str):
        self.access_token = access_token

    @abstractmethod
    async def list_locations(self) -> list[LocationData]:
        """Every business location for the merchant."""

    @abstractmethod
    async def list_team_members(
        self,
        location_id: str | None = None,
    ) -> list[TeamMemberData]:
        """Every active team member, optionally limited to one location."""

    @abstractmethod
    async def search_timecards(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        location_id: str | None = None,
    ) -> list[TimecardData]:
        """Every timecard whose workday falls in the date range."""

    async def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()
