"""
Admin Dependencies - permission-based dependency injection.

Every admin endpoint verifies:
- The caller is a known, active admin (401/403 if not)
- The caller holds the required permission through the resolver (403 if not)

Denials are written to the audit trail in an isolated session. An audit
failure never turns a denial into an allow.
"""
from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_audit_session_factory, get_current_admin, get_db
from ..errors import PermissionError
from ..models.admin_user import AdminUser
from ..services.admin.permission_resolver import PermissionResolver
from ..services.audit import record_isolated


def require_admin_permission(permission: str) -> Callable:
    """
    Enforce a single permission on an admin endpoint.

    Args:
        permission: The required permission code, e.g. "team.update"

    Returns:
        Dependency that yields the calling admin once the check passes
    """
    async def dependency(
        request: Request,
        admin: AdminUser = Depends(get_current_admin),
        db: AsyncSession = Depends(get_db),
        audit_session_factory: Callable[[], AsyncSession] = Depends(get_audit_session_factory),
    ) -> AdminUser:
        resolution = await PermissionResolver(db).resolve(admin.id, permission)
        if resolution.allowed:
            return admin

        await record_isolated(
            audit_session_factory,
            action="security.permission_denied",
            entity_type="permission",
            entity_id=permission,
            actor_id=admin.id,
            actor_type="user",
            after={
                "required_permission": permission,
                "request_method": request.method,
                "request_path": request.url.path,
            },
            reason=resolution.reason,
        )
        raise PermissionError(
            f"Permission denied: {permission} required",
            details={"required_permission": permission},
        )

    return dependency
