"""
Tenant Model

Multi-tenant root entity. Every coffee shop account is a tenant; all
employees, time-clock rows and the Square connection are scoped to one.
"""

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from backend.models.square_connection import SquareConnection


class Tenant(TimestampMixin, Base):
    """A coffee shop account."""

    __tablename__ = "tenants"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    slug: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        unique=True,
    )
    is_active: Mapped[bool] = mapped_column(
        default=True,
    )

    square_connection: Mapped["SquareConnection | None"] = relationship(
        back_populates="tenant",
        cascade="all, delete-orphan",
        uselist=False,
    )

    __table_args__ = (
        Index("ix_tenants_is_active", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Tenant {self.name} ({self.id})>"
