"""
Unit Tests for RBAC Middleware

Tests role-permission mappings, CurrentUser helper methods,
JWT token validation and tenant scoping.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest
from fastapi import HTTPException
from starlette.requests import Request

from backend.config import get_settings
from backend.middleware.rbac import (
    ROLE_PERMISSIONS,
    CurrentUser,
    Permission,
    Role,
    _validate_token,
    get_current_user,
    require_tenant_access,
)
from backend.services.auth import create_access_token

settings = get_settings()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_user(role: Role, tenant_id=None) -> CurrentUser:
    return CurrentUser(
        id=uuid4(),
        email="test@example.com",
        tenant_id=tenant_id or uuid4(),
        role=role,
        permissions=ROLE_PERMISSIONS[role],
    )


def _request(headers: dict[str, str] | None = None, path_params: dict | None = None) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": raw_headers,
            "path_params": path_params or {},
        }
    )


# ===========================================================================
# Role-permission mapping
# ===========================================================================

class TestRolePermissions:

    def test_owner_has_all_permissions(self):
        assert ROLE_PERMISSIONS[Role.OWNER] == set(Permission)

    def test_manager_can_sync_and_review_but_not_connect(self):
        manager = ROLE_PERMISSIONS[Role.MANAGER]
        assert Permission.INTEGRATION_SYNC in manager
        assert Permission.MAPPING_CONFIRM in manager
        assert Permission.INTEGRATION_WRITE not in manager

    def test_employee_has_no_permissions(self):
        assert ROLE_PERMISSIONS[Role.EMPLOYEE] == set()

    def test_every_role_is_mapped(self):
        assert set(ROLE_PERMISSIONS) == set(Role)


class TestCurrentUser:

    def test_has_permission(self):
        user = _make_user(Role.MANAGER)
        assert user.has_permission(Permission.MAPPING_READ) is True
        assert user.has_permission(Permission.INTEGRATION_WRITE) is False


# ===========================================================================
# Token validation
# ===========================================================================

class TestValidateToken:

    def test_valid_token_builds_user(self):
        user_id, tenant_id = uuid4(), uuid4()
        token = create_access_token(str(user_id), "maya@test.com", str(tenant_id), "manager")

        user = _validate_token(token)

        assert user.id == user_id
        assert user.tenant_id == tenant_id
        assert user.role == Role.MANAGER
        assert user.permissions == ROLE_PERMISSIONS[Role.MANAGER]

    def test_expired_token_rejected(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": str(uuid4()),
                "tenant_id": str(uuid4()),
                "role": "owner",
                "type": "access",
                "iat": now - timedelta(hours=2),
                "exp": now - timedelta(hours=1),
            },
            settings.secret_key,
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc:
            _validate_token(token)
        assert exc.value.status_code == 401

    def test_wrong_key_rejected(self):
        token = jwt.encode(
            {"sub": str(uuid4()), "tenant_id": str(uuid4()), "type": "access"},
            "some-other-secret",
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc:
            _validate_token(token)
        assert exc.value.status_code == 401

    def test_non_access_token_rejected(self):
        token = jwt.encode(
            {"sub": str(uuid4()), "tenant_id": str(uuid4()), "type": "refresh"},
            settings.secret_key,
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc:
            _validate_token(token)
        assert exc.value.detail == "Invalid token type"

    @pytest.mark.parametrize(
        "claims",
        [
            {"sub": "not-a-uuid", "tenant_id": "00000000-0000-0000-0000-000000000001"},
            {"sub": "00000000-0000-0000-0000-000000000001"},
            {"sub": "00000000-0000-0000-0000-000000000001",
             "tenant_id": "00000000-0000-0000-0000-000000000001", "role": "superuser"},
        ],
    )
    def test_malformed_claims_rejected(self, claims):
        token = jwt.encode({**claims, "type": "access"}, settings.secret_key, algorithm="HS256")
        with pytest.raises(HTTPException) as exc:
            _validate_token(token)
        assert exc.value.status_code == 401


# ===========================================================================
# Request dependencies
# ===========================================================================

class TestDependencies:

    @pytest.mark.asyncio
    async def test_missing_bearer_is_401(self):
        with pytest.raises(HTTPException) as exc:
            await get_current_user(_request())
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_bearer_token_is_decoded(self):
        tenant_id = uuid4()
        token = create_access_token(str(uuid4()), "a@test.com", str(tenant_id), "owner")

        user = await get_current_user(_request({"Authorization": f"Bearer {token}"}))

        assert user.tenant_id == tenant_id

    @pytest.mark.asyncio
    async def test_tenant_mismatch_is_403(self):
        user = _make_user(Role.OWNER)
        check = require_tenant_access(Permission.INTEGRATION_READ)

        with pytest.raises(HTTPException) as exc:
            await check(_request(path_params={"tenant_id": str(uuid4())}), user)
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_own_tenant_allowed(self):
        user = _make_user(Role.OWNER)
        check = require_tenant_access(Permission.INTEGRATION_READ)

        assert await check(_request(path_params={"tenant_id": str(user.tenant_id)}), user) is user
