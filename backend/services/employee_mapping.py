"""
Square Employee Identity Reconciliation

Proposes links between Square team members and the suite's two employee
sources, persists them as ``suggested`` mappings, and owns the manual
confirm / ignore / delete transitions.

Matching is an ordered list of strategies evaluated top-down; the first
strategy that finds a candidate wins:

1. exact name, authenticated employee  -> exact
2. exact name, tip-only employee       -> exact
3. substring, authenticated employee   -> partial
4. substring, tip-only employee        -> partial
5. nothing                             -> none
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.db.upsert import insert_for
from backend.models.employee import TipEmployee, UserProfile
from backend.models.square_mapping import MappingStatus, SquareEmployeeMapping
from backend.services.square_tokens import SquareTokenService
from integrations.base import TeamMemberData
from integrations.exceptions import MappingNotFound, MappingValidationError

logger = logging.getLogger(__name__)


class MatchConfidence(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


class EmployeeKind(str, Enum):
    USER_PROFILE = "user_profile"
    TIP_EMPLOYEE = "tip_employee"


@dataclass(frozen=True)
class LocalEmployee:
    id: UUID
    name: str | None
    kind: EmployeeKind


class MappingSuggestion(BaseModel):
    """Proposed link for one newly discovered team member."""

    square_team_member_id: str
    square_team_member_name: str
    suggested_user_profile_id: UUID | None = None
    suggested_tip_employee_id: UUID | None = None
    suggested_local_name: str | None = None
    confidence: MatchConfidence = MatchConfidence.NONE


def _exact(external: str, local: str) -> bool:
    return bool(local) and local == external


def _contains(external: str, local: str) -> bool:
    # Blank names would match everything
    if not external or not local:
        return False
    return external in local or local in external


@dataclass(frozen=True)
class MatchStrategy:
    kind: EmployeeKind
    confidence: MatchConfidence
    matches: Callable[[str, str], bool]


MATCH_STRATEGIES: tuple[MatchStrategy, ...] = (
    MatchStrategy(EmployeeKind.USER_PROFILE, MatchConfidence.EXACT, _exact),
    MatchStrategy(EmployeeKind.TIP_EMPLOYEE, MatchConfidence.EXACT, _exact),
    MatchStrategy(EmployeeKind.USER_PROFILE, MatchConfidence.PARTIAL, _contains),
    MatchStrategy(EmployeeKind.TIP_EMPLOYEE, MatchConfidence.PARTIAL, _contains),
)


def match_team_member(
    member: TeamMemberData,
    candidates: list[LocalEmployee],
) -> MappingSuggestion:
    """Best-guess local employee for one team member."""
    name = member.display_name
    needle = name.lower()
    suggestion = MappingSuggestion(
        square_team_member_id=member.id,
        square_team_member_name=name,
    )

    for strategy in MATCH_STRATEGIES:
        for candidate in candidates:
            if candidate.kind is not strategy.kind:
                continue
            if not strategy.matches(needle, (candidate.name or "").lower()):
                continue
            suggestion.suggested_local_name = candidate.name
            suggestion.confidence = strategy.confidence
            if candidate.kind is EmployeeKind.USER_PROFILE:
                suggestion.suggested_user_profile_id = candidate.id
            else:
                suggestion.suggested_tip_employee_id = candidate.id
            return suggestion

    return suggestion


class EmployeeMappingService:
    """Discovery and review of Square team member mappings."""

    def __init__(self, db: AsyncSession, tokens: SquareTokenService | None = None):
        self.db = db
        self.tokens = tokens or SquareTokenService(db)

    async def _local_employees(self, tenant_id: UUID) -> list[LocalEmployee]:
        profiles = await self.db.execute(
            select(UserProfile.id, UserProfile.full_name)
            .where(
                UserProfile.tenant_id == tenant_id,
                UserProfile.is_active.is_(True),
            )
            .order_by(UserProfile.created_at, UserProfile.id)
        )
        tips = await self.db.execute(
            select(TipEmployee.id, TipEmployee.name)
            .where(
                TipEmployee.tenant_id == tenant_id,
                or_(TipEmployee.is_active.is_(None), TipEmployee.is_active.is_(True)),
            )
            .order_by(TipEmployee.created_at, TipEmployee.id)
        )
        return [
            LocalEmployee(id=row.id, name=row.full_name, kind=EmployeeKind.USER_PROFILE)
            for row in profiles
        ] + [
            LocalEmployee(id=row.id, name=row.name, kind=EmployeeKind.TIP_EMPLOYEE)
            for row in tips
        ]

    async def suggest_mappings(self, tenant_id: UUID) -> list[MappingSuggestion]:
        """
        Discover team members with no mapping row and propose a link for each.

        Existing rows of any status are left untouched; a second run with
        no new team members returns an empty list.
        """
        authenticated = await self.tokens.get_authenticated_client(tenant_id)
        async with authenticated.client as client:
            members = await client.list_team_members(authenticated.connection.location_id)

        candidates = await self._local_employees(tenant_id)

        existing = await self.db.execute(
            select(SquareEmployeeMapping.square_team_member_id).where(
                SquareEmployeeMapping.tenant_id == tenant_id
            )
        )
        known = set(existing.scalars().all())

        suggestions: list[MappingSuggestion] = []
        for member in members:
            if member.id in known:
                continue
            known.add(member.id)

            suggestion = match_team_member(member, candidates)

            stmt = insert_for(self.db, SquareEmployeeMapping).values(
                tenant_id=tenant_id,
                square_team_member_id=member.id,
                square_team_member_name=suggestion.square_team_member_name,
                user_profile_id=suggestion.suggested_user_profile_id,
                tip_employee_id=suggestion.suggested_tip_employee_id,
                status=MappingStatus.SUGGESTED.value,
            )
            stmt = stmt.on_conflict_do_nothing(
                index_elements=["tenant_id", "square_team_member_id"]
            ).returning(SquareEmployeeMapping.id)
            inserted = (await self.db.execute(stmt)).scalar_one_or_none()
            if inserted is None:
                # Another request discovered this member first
                continue

            suggestions.append(suggestion)

        logger.info(
            f"Square mapping discovery for tenant {tenant_id}: "
            f"{len(members)} team members, {len(suggestions)} new"
        )
        return suggestions

    async def get_mappings(self, tenant_id: UUID) -> list[SquareEmployeeMapping]:
        result = await self.db.execute(
            select(SquareEmployeeMapping)
            .where(SquareEmployeeMapping.tenant_id == tenant_id)
            .order_by(SquareEmployeeMapping.square_team_member_name.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _get_mapping(self, mapping_id: UUID, tenant_id: UUID | None) -> SquareEmployeeMapping:
        query = select(SquareEmployeeMapping).where(SquareEmployeeMapping.id == mapping_id)
        if tenant_id is not None:
            query = query.where(SquareEmployeeMapping.tenant_id == tenant_id)
        mapping = (await self.db.execute(query)).scalar_one_or_none()
        if mapping is None:
            raise MappingNotFound(f"Mapping {mapping_id} not found", tenant_id=tenant_id)
        return mapping

    async def confirm_mapping(
        self,
        mapping_id: UUID,
        user_profile_id: UUID | None,
        tip_employee_id: UUID | None,
        confirmed_by: UUID,
        tenant_id: UUID | None = None,
    ) -> SquareEmployeeMapping:
        """Link the team member to exactly one internal employee."""
        if (user_profile_id is None) == (tip_employee_id is None):
            raise MappingValidationError(
                "Provide exactly one of user_profile_id or tip_employee_id",
                tenant_id=tenant_id,
            )

        mapping = await self._get_mapping(mapping_id, tenant_id)

        if user_profile_id is not None:
            owner = await self.db.scalar(
                select(UserProfile.tenant_id).where(UserProfile.id == user_profile_id)
            )
        else:
            owner = await self.db.scalar(
                select(TipEmployee.tenant_id).where(TipEmployee.id == tip_employee_id)
            )
        if owner != mapping.tenant_id:
            raise MappingValidationError(
                "Employee does not belong to this tenant", tenant_id=mapping.tenant_id
            )

        mapping.user_profile_id = user_profile_id
        mapping.tip_employee_id = tip_employee_id
        mapping.status = MappingStatus.CONFIRMED.value
        mapping.confirmed_by = confirmed_by
        mapping.confirmed_at = datetime.now(timezone.utc)
        await self.db.flush()
        logger.info(
            f"Mapping {mapping_id} ({mapping.square_team_member_id}) confirmed by {confirmed_by}"
        )
        return mapping

    async def ignore_mapping(self, mapping_id: UUID, tenant_id: UUID | None = None) -> None:
        mapping = await self._get_mapping(mapping_id, tenant_id)
        mapping.status = MappingStatus.IGNORED.value
        mapping.confirmed_by = None
        mapping.confirmed_at = None
        await self.db.flush()

    async def delete_mapping(self, mapping_id: UUID, tenant_id: UUID | None = None) -> None:
        mapping = await self._get_mapping(mapping_id, tenant_id)
        await self.db.delete(mapping)
        await self.db.flush()

    async def mapping_counts(self, tenant_id: UUID) -> dict[str, int]:
        result = await self.db.execute(
            select(SquareEmployeeMapping.status, func.count())
            .where(SquareEmployeeMapping.tenant_id == tenant_id)
            .group_by(SquareEmployeeMapping.status)
        )
        counts = {status.value: 0 for status in MappingStatus}
        for status, count in result.all():
            counts[status] = count
        return counts
