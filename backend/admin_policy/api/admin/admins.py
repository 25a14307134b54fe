"""Admin API: administrator accounts, role bindings and direct overrides."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...admin import require_admin_permission
from ...dependencies import get_db
from ...models.admin_user import AdminUser
from ...policy.catalog import TEAM_UPDATE, TEAM_VIEW
from ...schemas.admin import (
    AdminUserCreate,
    AdminUserResponse,
    AdminUserStatusUpdate,
    OverrideResponse,
    OverrideUpsert,
    RoleBindingCreate,
    RoleBindingResponse,
)
from ...services.admin import AdminAccessService

router = APIRouter(prefix="/admin/admins", tags=["admin-accounts"])


@router.post("", response_model=AdminUserResponse, status_code=status.HTTP_201_CREATED)
async def create_admin(
    data: AdminUserCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
):
    return await AdminAccessService(db).create_admin(data, actor_id=admin.id)


@router.get("", response_model=list[AdminUserResponse])
async def list_admins(
    include_inactive: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(TEAM_VIEW)),
):
    return await AdminAccessService(db).list_admins(include_inactive=include_inactive)


@router.get("/{admin_id}", response_model=AdminUserResponse)
async def get_admin(
    admin_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(TEAM_VIEW)),
):
    return await AdminAccessService(db).get_admin(admin_id)


@router.patch("/{admin_id}/status", response_model=AdminUserResponse)
async def set_admin_status(
    admin_id: UUID,
    data: AdminUserStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
):
    return await AdminAccessService(db).set_active(admin_id, data.is_active, actor_id=admin.id)


@router.get("/{admin_id}/roles", response_model=list[RoleBindingResponse])
async def list_role_bindings(
    admin_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(TEAM_VIEW)),
):
    return await AdminAccessService(db).list_bindings(admin_id)


@router.post(
    "/{admin_id}/roles",
    response_model=RoleBindingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_role_binding(
    admin_id: UUID,
    data: RoleBindingCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
):
    return await AdminAccessService(db).add_binding(admin_id, data, actor_id=admin.id)


@router.post("/{admin_id}/roles/{role_code}/primary", response_model=RoleBindingResponse)
async def set_primary_role(
    admin_id: UUID,
    role_code: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
):
    return await AdminAccessService(db).set_primary(admin_id, role_code, actor_id=admin.id)


@router.delete("/{admin_id}/roles/{role_code}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role_binding(
    admin_id: UUID,
    role_code: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
) -> Response:
    await AdminAccessService(db).remove_binding(admin_id, role_code, actor_id=admin.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{admin_id}/overrides", response_model=list[OverrideResponse])
async def list_overrides(
    admin_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(TEAM_VIEW)),
):
    return await AdminAccessService(db).list_overrides(admin_id)


@router.put("/{admin_id}/overrides/{permission_code}", response_model=OverrideResponse)
async def put_override(
    admin_id: UUID,
    permission_code: str,
    data: OverrideUpsert,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
):
    return await AdminAccessService(db).put_override(
        admin_id, permission_code, data, actor_id=admin.id
    )


@router.delete(
    "/{admin_id}/overrides/{permission_code}", status_code=status.HTTP_204_NO_CONTENT
)
async def revoke_override(
    admin_id: UUID,
    permission_code: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
) -> Response:
    await AdminAccessService(db).revoke_override(admin_id, permission_code, actor_id=admin.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
