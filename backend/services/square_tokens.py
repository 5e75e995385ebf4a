"""
Square Token Lifecycle

Authorization-code exchange, transparent refresh ahead of expiry, and
construction of ready-to-use per-tenant API clients.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import Settings, get_settings
from backend.models.square_connection import SquareConnection
from backend.services.square_credentials import SquareCredentialStore
from integrations.exceptions import ConnectionNotConfigured, OAuthExchangeFailed
from integrations.oauth_manager import (
    OAuthTokenManager,
    SquareOAuthClient,
    build_authorize_url,
)
from integrations.pos.square import SquareClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], SquareClient]


@dataclass
class AuthenticatedClient:
    """A Square client plus the connection it was built from."""

    client: SquareClient
    connection: SquareConnection


def default_client_factory(settings: Settings) -> ClientFactory:
    def factory(access_token: str) -> SquareClient:
        return SquareClient(
            access_token,
            base_url=settings.square_base_url,
            api_version=settings.square_api_version,
            timeout=settings.square_request_timeout_seconds,
        )

    return factory


class SquareTokenService:
    """
    Owns the Square OAuth token lifecycle for a tenant.

    ``get_authenticated_client`` refreshes synchronously when the stored
    token is expired or inside the refresh window, then re-reads the
    connection before building the client.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        oauth_client: SquareOAuthClient | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.token_manager = OAuthTokenManager(
            self.settings.encryption_key,
            refresh_window=timedelta(minutes=self.settings.square_token_refresh_window_minutes),
        )
        self.store = SquareCredentialStore(db, self.token_manager)
        self.oauth_client = oauth_client or SquareOAuthClient(
            client_id=self.settings.square_app_id,
            client_secret=self.settings.square_app_secret,
            base_url=self.settings.square_base_url,
            default_lifetime=timedelta(days=self.settings.square_default_token_lifetime_days),
            timeout=self.settings.square_request_timeout_seconds,
        )
        self.client_factory = client_factory or default_client_factory(self.settings)

    async def authorize_url(self, tenant_id: UUID, redirect_uri: str) -> str:
        """Start the OAuth flow; the CSRF state is stored on the connection."""
        state = secrets.token_urlsafe(32)
        await self.store.set_oauth_state(tenant_id, state)
        return build_authorize_url(
            self.settings.square_base_url,
            self.settings.square_app_id,
            state,
            redirect_uri,
        )

    async def complete_authorization(
        self,
        tenant_id: UUID,
        code: str,
        redirect_uri: str,
        state: str,
    ) -> SquareConnection:
        """
        Exchange an authorization code and persist the new connection.

        ``state`` must equal the value stored by ``authorize_url``; the code is
        never exchanged otherwise.
        """
        connection = await self.store.get(tenant_id)
        expected = connection.oauth_state if connection else None
        if not expected or not state or not secrets.compare_digest(expected, state):
            raise OAuthExchangeFailed("OAuth state mismatch", tenant_id=tenant_id)

        tokens = await self.oauth_client.exchange_code(code, redirect_uri)
        return await self.store.save_tokens(tenant_id, tokens)

    async def refresh_access_token(self, tenant_id: UUID) -> None:
        """Refresh-token grant; persists the new access token and expiry."""
        connection = await self.store.get(tenant_id)
        _, refresh_token = self.store.decrypt(connection) if connection else (None, None)
        if not refresh_token:
            raise ConnectionNotConfigured(
                "No Square refresh token for tenant", tenant_id=tenant_id
            )

        tokens = await self.oauth_client.refresh(refresh_token)
        await self.store.update_tokens(tenant_id, tokens)
        logger.info(f"Refreshed Square token for tenant {tenant_id}, expires {tokens.expires_at}")

    async def get_authenticated_client(self, tenant_id: UUID) -> AuthenticatedClient:
        connection = await self.store.get(tenant_id)
        if connection is None or not connection.is_connected:
            raise ConnectionNotConfigured(
                "Square not connected for this tenant", tenant_id=tenant_id
            )

        if self.token_manager.needs_refresh(connection.token_expires_at):
            await self.refresh_access_token(tenant_id)
            connection = await self.store.get(tenant_id)
            if connection is None or not connection.is_connected:
                raise ConnectionNotConfigured(
                    "Square connection vanished during refresh", tenant_id=tenant_id
                )

        access_token, _ = self.store.decrypt(connection)
        return AuthenticatedClient(
            client=self.client_factory(access_token),
            connection=connection,
        )
