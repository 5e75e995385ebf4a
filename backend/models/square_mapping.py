"""
Square Employee Mapping Model

Links a Square team member to exactly one internal employee record once a
manager confirms the suggestion produced by the reconciliation engine.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class MappingStatus(str, Enum):
    """Mapping review state."""

    SUGGESTED = "suggested"
    CONFIRMED = "confirmed"
    IGNORED = "ignored"


class SquareEmployeeMapping(TimestampMixin, Base):
    """One row per (tenant, Square team member)."""

    __tablename__ = "square_employee_mappings"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    square_team_member_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    square_team_member_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        comment="Display name captured when the team member was discovered",
    )

    # Internal links (at most one; exactly one once confirmed)
    user_profile_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("user_profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    tip_employee_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tip_employees.id", ondelete="SET NULL"),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=MappingStatus.SUGGESTED.value,
        nullable=False,
        comment="suggested|confirmed|ignored",
    )
    confirmed_by: Mapped[UUID | None] = mapped_column(
        nullable=True,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "square_team_member_id",
            name="uq_square_mapping_tenant_member",
        ),
        CheckConstraint(
            "status IN ('suggested', 'confirmed', 'ignored')",
            name="ck_square_mapping_status",
        ),
        CheckConstraint(
            "NOT (user_profile_id IS NOT NULL AND tip_employee_id IS NOT NULL)",
            name="ck_square_mapping_single_link",
        ),
        CheckConstraint(
            "status <> 'confirmed' OR user_profile_id IS NOT NULL OR tip_employee_id IS NOT NULL",
            name="ck_square_mapping_confirmed_link",
        ),
        Index("ix_square_mappings_tenant_status", "tenant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<SquareEmployeeMapping {self.square_team_member_name} ({self.status})>"
