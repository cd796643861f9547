"""FastAPI dependencies.

Identity is supplied by the upstream gateway in trusted headers
(``x-aifm-user-id``, ``x-aifm-user-name``, ``x-aifm-role``,
``x-aifm-tenant-id``). This module turns them into an ``AuthContext``;
nothing below the HTTP layer reads headers.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from fundadmin.core.approval.models import AuthContext
from fundadmin.core.approval.service import ApprovalService
from fundadmin.core.rbac import Role, SYSTEM_USER_ID, parse_role
from fundadmin.services import factory

# Roles that may see every request of a tenant, not only their own worklist
OVERSIGHT_ROLES = {
    Role.ADMIN,
    Role.EXECUTIVE,
    Role.COMPLIANCE,
    Role.COMPLIANCE_MANAGER,
}


def get_approval_service() -> ApprovalService:
    """Approval service dependency."""
    return factory.get_approval_service()


def get_auth_context(
    x_aifm_user_id: Optional[str] = Header(None),
    x_aifm_user_name: Optional[str] = Header(None),
    x_aifm_role: Optional[str] = Header(None),
) -> AuthContext:
    """Build the caller's identity from gateway headers."""
    if not x_aifm_user_id or not x_aifm_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers",
        )

    if x_aifm_user_id == SYSTEM_USER_ID:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Reserved user id: system",
        )

    role = parse_role(x_aifm_role)
    if role is None or role == Role.SYSTEM:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_aifm_role}",
        )

    return AuthContext(
        user_id=x_aifm_user_id,
        user_name=x_aifm_user_name or x_aifm_user_id,
        role=role.value,
    )


def get_tenant_id(x_aifm_tenant_id: Optional[str] = Header(None)) -> str:
    """Tenant scope of the current request."""
    if not x_aifm_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing tenant header",
        )
    return x_aifm_tenant_id


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    # Check X-Forwarded-For header (set by reverse proxies)
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # Take the first IP (original client)
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def require_oversight_role(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Restrict tenant-wide views to roles that oversee all approvals."""
    if Role(auth.role) not in OVERSIGHT_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions for tenant-wide approval views",
        )
    return auth


