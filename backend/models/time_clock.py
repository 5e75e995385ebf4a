"""
Time Clock Models

The suite's attendance ledger. Rows are either entered manually or
synced from Square; synced rows carry the Square ID in ``external_id``,
which is unique per tenant and serves as the upsert key.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class TimeClockSource(str, Enum):
    """Where a time-clock row came from."""

    MANUAL = "manual"
    SQUARE = "square"


class TimeClockEntry(TimestampMixin, Base):
    """One clock-in/clock-out span for an employee."""

    __tablename__ = "time_clock_entries"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("user_profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    tip_employee_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("tip_employees.id", ondelete="SET NULL"),
        nullable=True,
    )
    employee_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    clock_in: Mapped[datetime] = mapped_column(
        nullable=False,
    )
    clock_out: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    source: Mapped[str] = mapped_column(
        String(20),
        default=TimeClockSource.MANUAL.value,
        nullable=False,
        comment="manual|square",
    )
    external_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Square timecard ID for synced rows",
    )

    breaks: Mapped[list["TimeClockBreak"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TimeClockBreak.break_start",
    )

    __table_args__ = (
        Index(
            "uq_time_clock_entries_tenant_external",
            "tenant_id",
            "external_id",
            unique=True,
            postgresql_where=text("external_id IS NOT NULL"),
            sqlite_where=text("external_id IS NOT NULL"),
        ),
        Index("ix_time_clock_entries_tenant_clock_in", "tenant_id", "clock_in"),
    )

    def __repr__(self) -> str:
        return f"<TimeClockEntry {self.employee_name} {self.clock_in} ({self.source})>"


class TimeClockBreak(TimestampMixin, Base):
    """A break within a time-clock entry."""

    __tablename__ = "time_clock_breaks"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    time_clock_entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("time_clock_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    break_start: Mapped[datetime] = mapped_column(
        nullable=False,
    )
    break_end: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    break_type: Mapped[str] = mapped_column(
        String(100),
        default="break",
        nullable=False,
    )
    is_paid: Mapped[bool] = mapped_column(
        default=False,
    )
    external_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Square break ID for synced rows",
    )

    entry: Mapped["TimeClockEntry"] = relationship(
        back_populates="breaks",
    )

    __table_args__ = (
        Index(
            "uq_time_clock_breaks_tenant_external",
            "tenant_id",
            "external_id",
            unique=True,
            postgresql_where=text("external_id IS NOT NULL"),
            sqlite_where=text("external_id IS NOT NULL"),
        ),
        Index("ix_time_clock_breaks_entry_id", "time_clock_entry_id"),
    )
