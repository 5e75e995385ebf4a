"""
OAuth Token Manager

Token encryption at rest, refresh-window checks, and the Square OAuth
token endpoint (authorization-code and refresh-token grants).
"""

import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx
from cryptography.fernet import Fernet
from pydantic import BaseModel

from integrations.exceptions import OAuthExchangeFailed, RefreshFailed

logger = logging.getLogger(__name__)

SQUARE_OAUTH_SCOPES = [
    "TIMECARDS_READ",
    "TIMECARDS_SETTINGS_READ",
    "EMPLOYEES_READ",
    "MERCHANT_PROFILE_READ",
]


class TokenEncryption:
    """Handles encryption/decryption of OAuth tokens."""

    def __init__(self, encryption_key: str | bytes):
        if isinstance(encryption_key, str):
            encryption_key = encryption_key.encode()
        self.cipher = Fernet(encryption_key)

    def encrypt(self, token: str) -> bytes:
        """Encrypt a token string."""
        return self.cipher.encrypt(token.encode())

    def decrypt(self, encrypted_token: bytes) -> str:
        """Decrypt an encrypted token."""
        return self.cipher.decrypt(encrypted_token).decode()


class OAuthTokenManager:
    """
    Token-at-rest handling for the Square connection.

    Handles:
    - Token encryption at rest
    - Deciding when a token is inside the refresh window
    """

    def __init__(self, encryption_key: str | bytes, refresh_window: timedelta = timedelta(hours=1)):
        self.encryption = TokenEncryption(encryption_key)
        self.refresh_window = refresh_window

    def encrypt_tokens(
        self,
        access_token: str,
        refresh_token: str | None = None,
    ) -> tuple[bytes, bytes | None]:
        """
        Encrypt tokens for storage.

        Returns:
            Tuple of (encrypted_access, encrypted_refresh)
        """
        encrypted_access = self.encryption.encrypt(access_token)
        encrypted_refresh = None
        if refresh_token:
            encrypted_refresh = self.encryption.encrypt(refresh_token)
        return encrypted_access, encrypted_refresh

    def decrypt_tokens(
        self,
        encrypted_access: bytes,
        encrypted_refresh: bytes | None = None,
    ) -> tuple[str, str | None]:
        """
        Decrypt stored tokens.

        Returns:
            Tuple of (access_token, refresh_token)
        """
        access_token = self.encryption.decrypt(encrypted_access)
        refresh_token = None
        if encrypted_refresh:
            refresh_token = self.encryption.decrypt(encrypted_refresh)
        return access_token, refresh_token

    def needs_refresh(
        self,
        expires_at: datetime | None,
        now: datetime | None = None,
    ) -> bool:
        """True when the token is expired or expires within the window."""
        if not expires_at:
            return False
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return expires_at <= now + self.refresh_window


class OAuthTokens(BaseModel):
    """Result of a token grant."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime
    merchant_id: str | None = None


def build_authorize_url(
    base_url: str,
    client_id: str,
    state: str,
    redirect_uri: str,
) -> str:
    """Square authorization URL the tenant's browser is sent to."""
    params = {
        "client_id": client_id,
        "response_type": "code",
        "scope": " ".join(SQUARE_OAUTH_SCOPES),
        "state": state,
        "redirect_uri": redirect_uri,
    }
    return f"{base_url}/oauth2/authorize?{urlencode(params)}"


class SquareOAuthClient:
    """App-level client for the Square ``/oauth2/token`` endpoint."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str,
        default_lifetime: timedelta = timedelta(days=30),
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url
        self.default_lifetime = default_lifetime
        self.timeout = timeout
        self._transport = transport

    async def _obtain_token(self, payload: dict) -> dict:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as http:
            response = await http.post(
                "/oauth2/token",
                json={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    **payload,
                },
            )
            response.raise_for_status()
            return response.json()

    def _expires_at(self, data: dict) -> datetime:
        raw = data.get("expires_at")
        if raw:
            try:
                parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=timezone.utc)
                return parsed
            except (ValueError, TypeError):
                logger.warning(f"Unparseable Square token expiry: {raw!r}")
        return datetime.now(timezone.utc) + self.default_lifetime

    async def exchange_code(self, code: str, redirect_uri: str) -> OAuthTokens:
        """Authorization-code grant. Requires tokens and merchant ID in the reply."""
        try:
            data = await self._obtain_token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                }
            )
        except httpx.HTTPError as e:
            logger.error(f"Square code exchange failed: {e}")
            raise OAuthExchangeFailed("Square rejected the authorization code") from e

        if not data.get("access_token") or not data.get("refresh_token") or not data.get("merchant_id"):
            raise OAuthExchangeFailed("Incomplete OAuth response from Square")

        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=self._expires_at(data),
            merchant_id=data["merchant_id"],
        )

    async def refresh(self, refresh_token: str) -> OAuthTokens:
        """
        Refresh-token grant. ``refresh_token`` in the result is None unless rotated.

        Only a 4xx rejection is a ``RefreshFailed``; outages and timeouts
        propagate as ``httpx.HTTPError``.
        """
        try:
            data = await self._obtain_token(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                }
            )
        except httpx.HTTPStatusError as e:
            if not e.response.is_client_error:
                logger.error(f"Square token endpoint unavailable: {e}")
                raise
            logger.error(f"Square token refresh rejected: {e}")
            raise RefreshFailed("Square rejected the refresh token") from e

        if not data.get("access_token"):
            raise RefreshFailed("Square refresh response had no access token")

        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=self._expires_at(data),
            merchant_id=data.get("merchant_id"),
        )
