"""
Role-Based Access Control Middleware

Roles, permissions and tenant scoping for the management API.
"""

import logging
from enum import Enum
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request
from pydantic import BaseModel, Field

from backend.services.auth import decode_token

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """System roles."""
    OWNER = "owner"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class Permission(str, Enum):
    """Granular permissions."""
    # Square connection
    INTEGRATION_READ = "integration:read"
    INTEGRATION_WRITE = "integration:write"
    INTEGRATION_SYNC = "integration:sync"

    # Employee mappings
    MAPPING_READ = "mapping:read"
    MAPPING_CONFIRM = "mapping:confirm"


# Role-permission mapping
ROLE_PERMISSIONS: dict[Role, set[Permission]] = {
    Role.OWNER: set(Permission),  # All permissions
    Role.MANAGER: {
        Permission.INTEGRATION_READ, Permission.INTEGRATION_SYNC,
        Permission.MAPPING_READ, Permission.MAPPING_CONFIRM,
    },
    Role.EMPLOYEE: set(),
}


class CurrentUser(BaseModel):
    """Authenticated user context."""
    id: UUID
    email: str
    tenant_id: UUID
    role: Role
    permissions: set[Permission] = Field(default_factory=set)

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.permissions


async def get_current_user(request: Request) -> CurrentUser:
    """Extract and validate the bearer token from the request."""
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")

    token = auth_header.split(" ", 1)[1]
    return _validate_token(token)


def require_permission(*permissions: Permission):
    """Dependency that checks for specific permissions."""

    async def check(user: CurrentUser = Depends(get_current_user)):
        for perm in permissions:
            if not user.has_permission(perm):
                raise HTTPException(
                    status_code=403,
                    detail=f"Missing permission: {perm.value}",
                )
        return user

    return check


def require_tenant_access(*permissions: Permission, tenant_id_param: str = "tenant_id"):
    """Dependency that verifies the user belongs to the path's tenant and holds ``permissions``."""

    async def check(request: Request, user: CurrentUser = Depends(require_permission(*permissions))):
        tenant_id = request.path_params.get(tenant_id_param)
        if tenant_id and str(user.tenant_id) != tenant_id:
            raise HTTPException(
                status_code=403,
                detail="Access denied to this tenant",
            )
        return user

    return check


def _validate_token(token: str) -> CurrentUser:
    """Validate JWT token and return user context."""
    try:
        payload = decode_token(token)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    try:
        role = Role(payload.get("role", Role.EMPLOYEE.value))
        user_id = UUID(payload["sub"])
        tenant_id = UUID(payload["tenant_id"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Malformed token claims")

    return CurrentUser(
        id=user_id,
        email=payload.get("email", ""),
        tenant_id=tenant_id,
        role=role,
        permissions=ROLE_PERMISSIONS.get(role, set()),
    )
