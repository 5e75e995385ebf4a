"""
Square Credential Store

Persists each tenant's Square connection: merchant, encrypted tokens,
expiry, selected location, sync flag and the incremental-sync watermark.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.square_connection import SquareConnection, SyncStatus
from backend.models.square_mapping import SquareEmployeeMapping
from integrations.oauth_manager import OAuthTokenManager, OAuthTokens

logger = logging.getLogger(__name__)


class SquareCredentialStore:
    """Row-scoped access to ``square_connections``."""

    def __init__(self, db: AsyncSession, token_manager: OAuthTokenManager):
        self.db = db
        self.tokens = token_manager

    async def get(self, tenant_id: UUID) -> SquareConnection | None:
        result = await self.db.execute(
            select(SquareConnection)
            .where(SquareConnection.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, tenant_id: UUID) -> SquareConnection:
        connection = await self.get(tenant_id)
        if connection is None:
            connection = SquareConnection(tenant_id=tenant_id, sync_enabled=False)
            self.db.add(connection)
            await self.db.flush()
        return connection

    def decrypt(self, connection: SquareConnection) -> tuple[str | None, str | None]:
        """Plaintext (access_token, refresh_token) for a connection."""
        if connection.access_token_encrypted is None:
            return None, None
        return self.tokens.decrypt_tokens(
            connection.access_token_encrypted,
            connection.refresh_token_encrypted,
        )

    async def save_tokens(self, tenant_id: UUID, tokens: OAuthTokens) -> SquareConnection:
        """Store the result of a successful authorization-code exchange."""
        connection = await self.get_or_create(tenant_id)
        enc_access, enc_refresh = self.tokens.encrypt_tokens(
            tokens.access_token, tokens.refresh_token
        )
        connection.merchant_id = tokens.merchant_id
        connection.access_token_encrypted = enc_access
        connection.refresh_token_encrypted = enc_refresh
        connection.token_expires_at = tokens.expires_at
        connection.oauth_state = None
        connection.last_error_code = None
        if connection.last_sync_status == SyncStatus.RECONNECT_REQUIRED.value:
            connection.last_sync_status = None
        await self.db.flush()
        logger.info(f"Stored Square tokens for tenant {tenant_id} (merchant {tokens.merchant_id})")
        return connection

    async def update_tokens(self, tenant_id: UUID, tokens: OAuthTokens) -> None:
        """Persist a refreshed access token; keep the old refresh token unless rotated."""
        connection = await self.get(tenant_id)
        if connection is None:
            return
        _, current_refresh = self.decrypt(connection)
        enc_access, enc_refresh = self.tokens.encrypt_tokens(
            tokens.access_token, tokens.refresh_token or current_refresh
        )
        connection.access_token_encrypted = enc_access
        connection.refresh_token_encrypted = enc_refresh
        connection.token_expires_at = tokens.expires_at
        await self.db.flush()

    async def set_oauth_state(self, tenant_id: UUID, state: str) -> None:
        connection = await self.get_or_create(tenant_id)
        connection.oauth_state = state
        await self.db.flush()

    async def set_location(self, tenant_id: UUID, location_id: str) -> None:
        connection = await self.get_or_create(tenant_id)
        connection.location_id = location_id
        if connection.last_error_code == "location_not_configured":
            connection.last_error_code = None
        await self.db.flush()

    async def set_sync_enabled(self, tenant_id: UUID, enabled: bool) -> None:
        connection = await self.get_or_create(tenant_id)
        connection.sync_enabled = enabled
        await self.db.flush()

    async def mark_synced(self, tenant_id: UUID, status: SyncStatus) -> None:
        """Advance the watermark to now."""
        connection = await self.get(tenant_id)
        if connection is None:
            return
        connection.last_sync_at = datetime.now(timezone.utc)
        connection.last_sync_status = status.value
        connection.last_error_code = None
        await self.db.flush()

    async def record_failure(self, tenant_id: UUID, status: SyncStatus, error_code: str) -> None:
        """Record an aborted attempt. The watermark is not advanced."""
        connection = await self.get(tenant_id)
        if connection is None:
            return
        connection.last_sync_status = status.value
        connection.last_error_code = error_code
        await self.db.flush()

    async def disconnect(self, tenant_id: UUID) -> None:
        """Clear every credential field, disable sync, drop all mappings."""
        connection = await self.get(tenant_id)
        if connection is not None:
            connection.merchant_id = None
            connection.access_token_encrypted = None
            connection.refresh_token_encrypted = None
            connection.token_expires_at = None
            connection.oauth_state = None
            connection.location_id = None
            connection.sync_enabled = False
            connection.last_sync_at = None
            connection.last_sync_status = None
            connection.last_error_code = None

        await self.db.execute(
            delete(SquareEmployeeMapping).where(SquareEmployeeMapping.tenant_id == tenant_id)
        )
        await self.db.flush()
        logger.info(f"Disconnected Square for tenant {tenant_id}")

    async def find_by_merchant(self, merchant_id: str) -> SquareConnection | None:
        """Sync-enabled connection for a merchant, if any."""
        result = await self.db.execute(
            select(SquareConnection)
            .where(
                SquareConnection.merchant_id == merchant_id,
                SquareConnection.sync_enabled.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_syncable(self) -> list[UUID]:
        """Tenants with sync enabled, a token and a location."""
        result = await self.db.execute(
            select(SquareConnection.tenant_id).where(
                SquareConnection.sync_enabled.is_(True),
                SquareConnection.access_token_encrypted.is_not(None),
                SquareConnection.location_id.is_not(None),
            )
        )
        return list(result.scalars().all())
