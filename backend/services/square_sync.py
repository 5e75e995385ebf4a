"""
Square Timecard Sync

Pulls timecards for one tenant and drives them through the upsert:

    resolve date range -> fetch -> load confirmed mappings -> apply -> complete

Unmapped team members are skipped, a failing record is logged and counted
without stopping the batch, and the watermark advances even after partial
failure. Connection and configuration errors abort the attempt and are
recorded on the connection for the status view.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from uuid import UUID
from zoneinfo import ZoneInfo

import httpx
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.base import as_utc
from backend.models.square_connection import SquareConnection, SyncStatus
from backend.services.employee_mapping import EmployeeMappingService
from backend.services.square_tokens import SquareTokenService
from backend.services.timecard_upsert import TimecardUpserter, load_confirmed_mappings
from integrations.base import SyncResult, TimecardData
from integrations.exceptions import (
    RECONNECT_ERRORS,
    ConnectionNotConfigured,
    LocationNotConfigured,
    SquareIntegrationError,
)
from integrations.pos.square import DEFAULT_WORKDAY_TIMEZONE

logger = logging.getLogger(__name__)


class SquareStatus(BaseModel):
    """Connection health summary shown to the tenant."""

    connected: bool
    merchant_id: str | None = None
    location_id: str | None = None
    sync_enabled: bool = False
    last_sync_at: datetime | None = None
    last_sync_status: str | None = None
    needs_reconnect: bool = False
    mapping_stats: dict[str, int]


def resolve_date_range(
    connection: SquareConnection,
    start_date: date | None = None,
    end_date: date | None = None,
    lookback_days: int = 30,
    now: datetime | None = None,
    workday_timezone: str = DEFAULT_WORKDAY_TIMEZONE,
) -> tuple[date, date]:
    """
    Query window for a sync, as workdays in ``workday_timezone``.

    Start: explicit, else the workday of the last sync (incremental), else
    ``lookback_days`` ago (bootstrap). End: explicit, else tomorrow so
    in-progress timecards are always included.
    """
    tz = ZoneInfo(workday_timezone)
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    if start_date is None:
        last_sync = as_utc(connection.last_sync_at)
        if last_sync is not None:
            start_date = last_sync.astimezone(tz).date()
        else:
            start_date = (local_now - timedelta(days=lookback_days)).date()
    if end_date is None:
        end_date = (local_now + timedelta(days=1)).date()
    return start_date, end_date


class SquareSyncService:
    """Per-tenant timecard sync."""

    def __init__(
        self,
        db: AsyncSession,
        tokens: SquareTokenService | None = None,
        upserter: TimecardUpserter | None = None,
    ):
        self.db = db
        self.tokens = tokens or SquareTokenService(db)
        self.store = self.tokens.store
        self.settings = self.tokens.settings
        self.upserter = upserter or TimecardUpserter(db)

    async def _fetch_timecards(
        self,
        tenant_id: UUID,
        start_date: date | None,
        end_date: date | None,
    ) -> list[TimecardData]:
        connection = await self.store.get(tenant_id)
        if connection is None or not connection.is_connected:
            raise ConnectionNotConfigured(
                "Square not connected for this tenant", tenant_id=tenant_id
            )
        if not connection.location_id:
            raise LocationNotConfigured(
                "Square location not configured", tenant_id=tenant_id
            )

        start_date, end_date = resolve_date_range(
            connection,
            start_date,
            end_date,
            lookback_days=self.settings.square_bootstrap_lookback_days,
            workday_timezone=self.settings.square_workday_timezone,
        )

        authenticated = await self.tokens.get_authenticated_client(tenant_id)
        async with authenticated.client as client:
            timecards = await client.search_timecards(
                start_date,
                end_date,
                location_id=authenticated.connection.location_id,
                workday_timezone=self.settings.square_workday_timezone,
            )
        logger.info(
            f"Fetched {len(timecards)} Square timecards for tenant {tenant_id} "
            f"({start_date} to {end_date})"
        )
        return timecards

    async def sync_shifts_for_tenant(
        self,
        tenant_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> SyncResult:
        try:
            timecards = await self._fetch_timecards(tenant_id, start_date, end_date)
        except SquareIntegrationError as e:
            status = (
                SyncStatus.RECONNECT_REQUIRED
                if isinstance(e, RECONNECT_ERRORS)
                else SyncStatus.FAILED
            )
            await self.store.record_failure(tenant_id, status, e.code)
            # Persist the failure even though the caller's transaction rolls back
            await self.db.commit()
            raise
        except httpx.HTTPError as e:
            logger.error(f"Square API error for tenant {tenant_id}: {e}")
            unauthorized = (
                isinstance(e, httpx.HTTPStatusError) and e.response.status_code == 401
            )
            await self.store.record_failure(
                tenant_id,
                SyncStatus.RECONNECT_REQUIRED if unauthorized else SyncStatus.FAILED,
                "square_api_error",
            )
            await self.db.commit()
            raise

        mappings = await load_confirmed_mappings(self.db, tenant_id)
        result = SyncResult()

        for timecard in timecards:
            if not timecard.team_member_id or timecard.team_member_id not in mappings:
                result.skipped += 1
                continue
            try:
                async with self.db.begin_nested():
                    await self.upserter.apply(tenant_id, timecard, mappings)
                result.synced += 1
            except Exception as e:
                logger.error(
                    f"Error syncing Square timecard {timecard.id} for tenant {tenant_id}: {e}"
                )
                result.errors += 1

        await self.store.mark_synced(
            tenant_id,
            SyncStatus.PARTIAL if result.errors else SyncStatus.SUCCESS,
        )
        logger.info(
            f"Square sync for tenant {tenant_id}: {result.synced} synced, "
            f"{result.skipped} skipped, {result.errors} errors"
        )
        return result

    async def process_single_timecard(self, tenant_id: UUID, timecard: TimecardData) -> UUID | None:
        """Apply one pushed timecard; mappings are reloaded for the tenant."""
        async with self.db.begin_nested():
            return await self.upserter.apply(tenant_id, timecard)

    async def get_status(self, tenant_id: UUID) -> SquareStatus | None:
        connection = await self.store.get(tenant_id)
        if connection is None:
            return None

        counts = await EmployeeMappingService(self.db, self.tokens).mapping_counts(tenant_id)
        return SquareStatus(
            connected=connection.is_connected,
            merchant_id=connection.merchant_id,
            location_id=connection.location_id,
            sync_enabled=connection.sync_enabled,
            last_sync_at=as_utc(connection.last_sync_at),
            last_sync_status=connection.last_sync_status,
            needs_reconnect=connection.last_sync_status == SyncStatus.RECONNECT_REQUIRED.value,
            mapping_stats=counts,
        )
