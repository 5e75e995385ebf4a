"""
Employee Models

The suite keeps two kinds of employee record:

- ``UserProfile``: an employee with a login (authenticated user).
- ``TipEmployee``: a lightweight record used for tip pooling only; no login.

Square team members are reconciled against both.
"""

from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class UserProfile(TimestampMixin, Base):
    """Authenticated employee record."""

    __tablename__ = "user_profiles"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    role: Mapped[str] = mapped_column(
        String(30),
        default="employee",
        comment="owner|manager|employee",
    )
    is_active: Mapped[bool] = mapped_column(
        default=True,
    )

    __table_args__ = (
        Index("ix_user_profiles_tenant_active", "tenant_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<UserProfile {self.full_name}>"


class TipEmployee(TimestampMixin, Base):
    """Lightweight tip-only employee record."""

    __tablename__ = "tip_employees"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    # Legacy rows predate the flag; NULL is treated as active
    is_active: Mapped[bool | None] = mapped_column(
        nullable=True,
        default=True,
    )

    __table_args__ = (
        Index("ix_tip_employees_tenant_id", "tenant_id"),
    )

    def __repr__(self) -> str:
        return f"<TipEmployee {self.name}>"
