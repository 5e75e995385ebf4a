"""
Square Pydantic Schemas

API request/response models for the Square connection endpoints.
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AuthUrlResponse(BaseModel):
    """Where to send the tenant's browser to authorize."""

    auth_url: str


class OAuthCallbackRequest(BaseModel):
    """Authorization code returned by Square."""

    code: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


class ConnectionResponse(BaseModel):
    connected: bool
    merchant_id: str | None = None


class SetLocationRequest(BaseModel):
    location_id: str = Field(..., min_length=1)


class SyncEnabledRequest(BaseModel):
    enabled: bool


class SyncRequest(BaseModel):
    """Optional explicit window; omitted bounds are derived."""

    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def _check_order(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class SyncResultResponse(BaseModel):
    synced: int
    skipped: int
    errors: int


class MappingResponse(BaseModel):
    """One stored team member mapping."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    square_team_member_id: str
    square_team_member_name: str
    user_profile_id: UUID | None = None
    tip_employee_id: UUID | None = None
    status: str
    confirmed_by: UUID | None = None
    confirmed_at: datetime | None = None


class ConfirmMappingRequest(BaseModel):
    """Exactly one of the two links must be set."""

    user_profile_id: UUID | None = None
    tip_employee_id: UUID | None = None
