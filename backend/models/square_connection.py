"""
Square Connection Model

Per-tenant OAuth connection to Square. Tracks the token lifecycle, the
selected business location and the polling watermark.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from backend.models.tenant import Tenant


class SyncStatus(str, Enum):
    """Outcome of the most recent sync attempt."""

    SUCCESS = "success"  # Every fetched record applied or skipped
    PARTIAL = "partial"  # Some records failed to apply
    FAILED = "failed"  # Attempt aborted before applying anything
    RECONNECT_REQUIRED = "reconnect_required"  # Credentials unusable


class SquareConnection(TimestampMixin, Base):
    """
    OAuth connection between a tenant and a Square merchant.

    Tokens are Fernet-encrypted at rest. Access and refresh token are
    either both present or both absent; disconnect clears every field.
    """

    __tablename__ = "square_connections"

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
    )
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Merchant identification
    merchant_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Square merchant ID from the OAuth exchange",
    )

    # OAuth tokens (encrypted at rest using Fernet)
    access_token_encrypted: Mapped[bytes | None] = mapped_column(
        LargeBinary,
        nullable=True,
        comment="Fernet-encrypted OAuth access token",
    )
    refresh_token_encrypted: Mapped[bytes | None] = mapped_column(
        LargeBinary,
        nullable=True,
        comment="Fernet-encrypted OAuth refresh token",
    )
    token_expires_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
        comment="Access token expiration timestamp",
    )
    oauth_state: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Pending OAuth state parameter for CSRF protection",
    )

    # Sync configuration
    location_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Selected Square business location",
    )
    sync_enabled: Mapped[bool] = mapped_column(
        default=False,
    )

    # Sync tracking
    last_sync_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
        comment="Timestamp of last completed sync (incremental watermark)",
    )
    last_sync_status: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
        comment="success|partial|failed|reconnect_required",
    )
    last_error_code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Error taxonomy code of the last failed attempt",
    )

    tenant: Mapped["Tenant"] = relationship(
        back_populates="square_connection",
    )

    __table_args__ = (
        CheckConstraint(
            "(access_token_encrypted IS NULL) = (refresh_token_encrypted IS NULL)",
            name="ck_square_connections_token_pair",
        ),
        Index("ix_square_connections_merchant_id", "merchant_id"),
        Index("ix_square_connections_sync_enabled", "sync_enabled"),
    )

    def __repr__(self) -> str:
        return f"<SquareConnection merchant={self.merchant_id} tenant={self.tenant_id}>"

    @property
    def is_connected(self) -> bool:
        return self.access_token_encrypted is not None
