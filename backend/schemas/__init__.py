"""Pydantic API Schemas for BrewOps."""

from backend.schemas.square import (
    AuthUrlResponse,
    ConfirmMappingRequest,
    ConnectionResponse,
    MappingResponse,
    OAuthCallbackRequest,
    SetLocationRequest,
    SyncEnabledRequest,
    SyncRequest,
    SyncResultResponse,
)

__all__ = [
    "AuthUrlResponse",
    "ConfirmMappingRequest",
    "ConnectionResponse",
    "MappingResponse",
    "OAuthCallbackRequest",
    "SetLocationRequest",
    "SyncEnabledRequest",
    "SyncRequest",
    "SyncResultResponse",
]
