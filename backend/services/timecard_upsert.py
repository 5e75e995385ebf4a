"""
Timecard Upsert

Projects one Square timecard and its breaks onto ``time_clock_entries`` /
``time_clock_breaks``. Every write is a single INSERT ... ON CONFLICT DO
UPDATE keyed by (tenant_id, external_id), so the poller and the webhook
can deliver the same timecard concurrently and any number of times.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.db.upsert import insert_for
from backend.models.square_mapping import MappingStatus, SquareEmployeeMapping
from backend.models.time_clock import TimeClockBreak, TimeClockEntry, TimeClockSource
from integrations.base import TimecardBreakData, TimecardData
from integrations.exceptions import RecordApplyFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmedMapping:
    user_profile_id: UUID | None
    tip_employee_id: UUID | None
    name: str


async def load_confirmed_mappings(db: AsyncSession, tenant_id: UUID) -> dict[str, ConfirmedMapping]:
    """Confirmed mappings for a tenant keyed by Square team member ID."""
    result = await db.execute(
        select(
            SquareEmployeeMapping.square_team_member_id,
            SquareEmployeeMapping.user_profile_id,
            SquareEmployeeMapping.tip_employee_id,
            SquareEmployeeMapping.square_team_member_name,
        ).where(
            SquareEmployeeMapping.tenant_id == tenant_id,
            SquareEmployeeMapping.status == MappingStatus.CONFIRMED.value,
        )
    )
    return {
        row.square_team_member_id: ConfirmedMapping(
            user_profile_id=row.user_profile_id,
            tip_employee_id=row.tip_employee_id,
            name=row.square_team_member_name,
        )
        for row in result
    }


class TimecardUpserter:
    """Idempotent writer for synced timecards."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def apply(
        self,
        tenant_id: UUID,
        timecard: TimecardData,
        mappings: dict[str, ConfirmedMapping] | None = None,
    ) -> UUID | None:
        """
        Upsert one timecard and its breaks.

        Returns the internal entry ID, or None when the team member has no
        confirmed mapping. Database failures are raised as
        ``RecordApplyFailed`` carrying the timecard ID.
        """
        if mappings is None:
            mappings = await load_confirmed_mappings(self.db, tenant_id)

        mapping = mappings.get(timecard.team_member_id) if timecard.team_member_id else None
        if mapping is None:
            return None

        try:
            entry_id = await self._upsert_entry(tenant_id, timecard, mapping)
            for brk in timecard.breaks:
                await self._upsert_break(tenant_id, entry_id, brk)
        except SQLAlchemyError as e:
            raise RecordApplyFailed(
                f"Failed to apply Square timecard {timecard.id}: {e}",
                external_id=timecard.id,
                tenant_id=tenant_id,
            ) from e

        return entry_id

    async def _upsert_entry(
        self,
        tenant_id: UUID,
        timecard: TimecardData,
        mapping: ConfirmedMapping,
    ) -> UUID:
        stmt = insert_for(self.db, TimeClockEntry).values(
            tenant_id=tenant_id,
            employee_id=mapping.user_profile_id,
            tip_employee_id=mapping.tip_employee_id,
            employee_name=mapping.name,
            clock_in=timecard.start_at,
            clock_out=timecard.end_at,
            source=TimeClockSource.SQUARE.value,
            external_id=timecard.id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "external_id"],
            index_where=TimeClockEntry.external_id.is_not(None),
            set_={
                "clock_in": stmt.excluded.clock_in,
                "clock_out": stmt.excluded.clock_out,
                "employee_name": stmt.excluded.employee_name,
                "updated_at": func.now(),
            },
        ).returning(TimeClockEntry.id)
        return (await self.db.execute(stmt)).scalar_one()

    async def _upsert_break(
        self,
        tenant_id: UUID,
        entry_id: UUID,
        brk: TimecardBreakData,
    ) -> None:
        stmt = insert_for(self.db, TimeClockBreak).values(
            tenant_id=tenant_id,
            time_clock_entry_id=entry_id,
            break_start=brk.start_at,
            break_end=brk.end_at,
            break_type=brk.name or "break",
            is_paid=brk.is_paid,
            external_id=brk.id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "external_id"],
            index_where=TimeClockBreak.external_id.is_not(None),
            set_={
                "break_start": stmt.excluded.break_start,
                "break_end": stmt.excluded.break_end,
                "is_paid": stmt.excluded.is_paid,
                "break_type": stmt.excluded.break_type,
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)
