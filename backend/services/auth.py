"""
Authentication Service

JWT creation and validation for the management API.
"""

from datetime import datetime, timedelta, timezone

import jwt

from backend.config import get_settings


def create_access_token(
    sub: str,
    email: str,
    tenant_id: str,
    role: str,
) -> str:
    """
    Create a JWT access token.

    Claims match the contract in backend/middleware/rbac.py _validate_token():
      - sub: str(user_profile.id)
      - email: user_profile.email
      - tenant_id: str(user_profile.tenant_id)
      - role: user_profile.role
      - type: "access"
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "email": email,
        "tenant_id": tenant_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(payload, settings.secret_key, algorithm="HS256")


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises jwt.InvalidTokenError on failure."""
    return jwt.decode(token, get_settings().secret_key, algorithms=["HS256"])
