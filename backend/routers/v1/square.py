"""
Square API Routes

Endpoints for connecting a tenant's Square account, choosing the location,
reviewing employee mappings and triggering syncs.
"""

import logging
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.db.session import get_db
from backend.middleware.rbac import CurrentUser, Permission, require_tenant_access
from backend.models.tenant import Tenant
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
from backend.services.employee_mapping import EmployeeMappingService, MappingSuggestion
from backend.services.square_sync import SquareStatus, SquareSyncService
from backend.services.square_tokens import SquareTokenService
from integrations.base import LocationData
from integrations.exceptions import (
    ConnectionNotConfigured,
    LocationNotConfigured,
    MappingNotFound,
    MappingValidationError,
    OAuthExchangeFailed,
    RefreshFailed,
    SquareIntegrationError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS: dict[type[SquareIntegrationError], tuple[int, str | None]] = {
    ConnectionNotConfigured: (status.HTTP_400_BAD_REQUEST, "Square is not connected"),
    LocationNotConfigured: (status.HTTP_400_BAD_REQUEST, "Select a Square location first"),
    RefreshFailed: (status.HTTP_502_BAD_GATEWAY, "Square reconnect required"),
    OAuthExchangeFailed: (status.HTTP_502_BAD_GATEWAY, "Square reconnect required"),
    MappingValidationError: (status.HTTP_422_UNPROCESSABLE_ENTITY, None),
    MappingNotFound: (status.HTTP_404_NOT_FOUND, None),
}


def to_http_error(e: SquareIntegrationError) -> HTTPException:
    """Translate a Square error to a response without leaking platform text."""
    for exc_type, (code, detail) in ERROR_STATUS.items():
        if isinstance(e, exc_type):
            return HTTPException(status_code=code, detail=detail or str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Square request failed")


def upstream_error(tenant_id: UUID, e: httpx.HTTPError) -> HTTPException:
    logger.error(f"Square API call failed for tenant {tenant_id}: {e}")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Square request failed")


async def get_tenant_or_404(tenant_id: UUID, db: AsyncSession) -> Tenant:
    """Helper to get tenant or raise 404."""
    result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
    tenant = result.scalar_one_or_none()
    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tenant {tenant_id} not found",
        )
    return tenant


def get_token_service(db: AsyncSession = Depends(get_db)) -> SquareTokenService:
    return SquareTokenService(db)


def get_sync_service(tokens: SquareTokenService = Depends(get_token_service)) -> SquareSyncService:
    return SquareSyncService(tokens.db, tokens)


def get_mapping_service(
    tokens: SquareTokenService = Depends(get_token_service),
) -> EmployeeMappingService:
    return EmployeeMappingService(tokens.db, tokens)


def _require_oauth_configured() -> None:
    if not get_settings().square_is_configured:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Square OAuth is not configured",
        )


@router.get(
    "/auth-url",
    summary="Start Square OAuth",
    description="Authorization URL for connecting the tenant's Square account.",
)
async def get_auth_url(
    tenant_id: UUID,
    redirect_uri: str = Query(..., min_length=1),
    tokens: SquareTokenService = Depends(get_token_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.INTEGRATION_WRITE)),
) -> AuthUrlResponse:
    _require_oauth_configured()
    await get_tenant_or_404(tenant_id, tokens.db)
    return AuthUrlResponse(auth_url=await tokens.authorize_url(tenant_id, redirect_uri))


@router.post(
    "/callback",
    summary="Complete Square OAuth",
    description="Exchange the authorization code and store the connection.",
)
async def oauth_callback(
    tenant_id: UUID,
    body: OAuthCallbackRequest,
    tokens: SquareTokenService = Depends(get_token_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.INTEGRATION_WRITE)),
) -> ConnectionResponse:
    _require_oauth_configured()
    await get_tenant_or_404(tenant_id, tokens.db)
    try:
        connection = await tokens.complete_authorization(
            tenant_id, body.code, body.redirect_uri, body.state
        )
    except SquareIntegrationError as e:
        logger.error(f"Square OAuth callback failed for tenant {tenant_id}: {e}")
        raise to_http_error(e)
    return ConnectionResponse(connected=connection.is_connected, merchant_id=connection.merchant_id)


@router.post(
    "/disconnect",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect Square",
    description="Remove stored credentials, disable sync and delete all mappings.",
)
async def disconnect(
    tenant_id: UUID,
    tokens: SquareTokenService = Depends(get_token_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.INTEGRATION_WRITE)),
) -> None:
    await get_tenant_or_404(tenant_id, tokens.db)
    await tokens.store.disconnect(tenant_id)


@router.get(
    "/locations",
    summary="List Square locations",
)
async def list_locations(
    tenant_id: UUID,
    tokens: SquareTokenService = Depends(get_token_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.INTEGRATION_READ)),
) -> list[LocationData]:
    try:
        authenticated = await tokens.get_authenticated_client(tenant_id)
        async with authenticated.client as client:
            return await client.list_locations()
    except SquareIntegrationError as e:
        raise to_http_error(e)
    except httpx.HTTPError as e:
        raise upstream_error(tenant_id, e)


@router.post(
    "/location",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Select Square location",
)
async def set_location(
    tenant_id: UUID,
    body: SetLocationRequest,
    tokens: SquareTokenService = Depends(get_token_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.INTEGRATION_WRITE)),
) -> None:
    connection = await tokens.store.get(tenant_id)
    if connection is None or not connection.is_connected:
        raise to_http_error(ConnectionNotConfigured("Square not connected", tenant_id=tenant_id))
    await tokens.store.set_location(tenant_id, body.location_id)


@router.post(
    "/sync-enabled",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Enable or disable automatic sync",
)
async def set_sync_enabled(
    tenant_id: UUID,
    body: SyncEnabledRequest,
    tokens: SquareTokenService = Depends(get_token_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.INTEGRATION_WRITE)),
) -> None:
    connection = await tokens.store.get(tenant_id)
    if connection is None or not connection.is_connected:
        raise to_http_error(ConnectionNotConfigured("Square not connected", tenant_id=tenant_id))
    await tokens.store.set_sync_enabled(tenant_id, body.enabled)


@router.post(
    "/sync",
    summary="Sync timecards now",
    description="Pull timecards for an explicit window, or incrementally when omitted.",
)
async def sync_now(
    tenant_id: UUID,
    body: SyncRequest | None = None,
    sync: SquareSyncService = Depends(get_sync_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.INTEGRATION_SYNC)),
) -> SyncResultResponse:
    body = body or SyncRequest()
    try:
        result = await sync.sync_shifts_for_tenant(tenant_id, body.start_date, body.end_date)
    except SquareIntegrationError as e:
        raise to_http_error(e)
    except httpx.HTTPError as e:
        raise upstream_error(tenant_id, e)
    return SyncResultResponse(**result.model_dump())


@router.post(
    "/mappings/suggest",
    summary="Discover team members",
    description="Propose mappings for Square team members not seen before.",
)
async def suggest_mappings(
    tenant_id: UUID,
    mappings: EmployeeMappingService = Depends(get_mapping_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.MAPPING_CONFIRM)),
) -> list[MappingSuggestion]:
    try:
        return await mappings.suggest_mappings(tenant_id)
    except SquareIntegrationError as e:
        raise to_http_error(e)
    except httpx.HTTPError as e:
        raise upstream_error(tenant_id, e)


@router.get(
    "/mappings",
    summary="List mappings",
)
async def list_mappings(
    tenant_id: UUID,
    mappings: EmployeeMappingService = Depends(get_mapping_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.MAPPING_READ)),
) -> list[MappingResponse]:
    rows = await mappings.get_mappings(tenant_id)
    return [MappingResponse.model_validate(row) for row in rows]


@router.post(
    "/mappings/{mapping_id}/confirm",
    summary="Confirm mapping",
    description="Link the team member to exactly one internal employee.",
)
async def confirm_mapping(
    tenant_id: UUID,
    mapping_id: UUID,
    body: ConfirmMappingRequest,
    mappings: EmployeeMappingService = Depends(get_mapping_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.MAPPING_CONFIRM)),
) -> MappingResponse:
    try:
        mapping = await mappings.confirm_mapping(
            mapping_id,
            body.user_profile_id,
            body.tip_employee_id,
            confirmed_by=user.id,
            tenant_id=tenant_id,
        )
    except SquareIntegrationError as e:
        raise to_http_error(e)
    return MappingResponse.model_validate(mapping)


@router.post(
    "/mappings/{mapping_id}/ignore",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Ignore mapping",
)
async def ignore_mapping(
    tenant_id: UUID,
    mapping_id: UUID,
    mappings: EmployeeMappingService = Depends(get_mapping_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.MAPPING_CONFIRM)),
) -> None:
    try:
        await mappings.ignore_mapping(mapping_id, tenant_id=tenant_id)
    except SquareIntegrationError as e:
        raise to_http_error(e)


@router.delete(
    "/mappings/{mapping_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete mapping",
    description="Forget the team member; the next discovery proposes it again.",
)
async def delete_mapping(
    tenant_id: UUID,
    mapping_id: UUID,
    mappings: EmployeeMappingService = Depends(get_mapping_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.MAPPING_CONFIRM)),
) -> None:
    try:
        await mappings.delete_mapping(mapping_id, tenant_id=tenant_id)
    except SquareIntegrationError as e:
        raise to_http_error(e)


@router.get(
    "/status",
    summary="Connection health",
)
async def get_status(
    tenant_id: UUID,
    sync: SquareSyncService = Depends(get_sync_service),
    user: CurrentUser = Depends(require_tenant_access(Permission.INTEGRATION_READ)),
) -> SquareStatus:
    await get_tenant_or_404(tenant_id, sync.db)
    result = await sync.get_status(tenant_id)
    if result is None:
        counts = await EmployeeMappingService(sync.db, sync.tokens).mapping_counts(tenant_id)
        return SquareStatus(connected=False, mapping_stats=counts)
    return result
