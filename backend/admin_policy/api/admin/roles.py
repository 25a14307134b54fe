"""Admin API: roles."""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...admin import require_admin_permission
from ...dependencies import get_db
from ...models.admin_user import AdminUser
from ...policy.catalog import TEAM_UPDATE, TEAM_VIEW
from ...schemas.role import RoleCreate, RoleDuplicate, RoleResponse, RoleUpdate
from ...services.admin import RoleService

router = APIRouter(prefix="/admin/roles", tags=["admin-roles"])


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
):
    return await RoleService(db).create_role(data, actor_id=admin.id)


@router.get("", response_model=list[RoleResponse])
async def list_roles(
    include_inactive: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(TEAM_VIEW)),
):
    return await RoleService(db).list_roles(include_inactive=include_inactive)


@router.get("/{code}", response_model=RoleResponse)
async def get_role(
    code: str,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(TEAM_VIEW)),
):
    return await RoleService(db).get_role(code)


@router.patch("/{code}", response_model=RoleResponse)
async def update_role(
    code: str,
    data: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
):
    return await RoleService(db).update_role(code, data, actor_id=admin.id)


@router.post("/{code}/duplicate", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_role(
    code: str,
    data: RoleDuplicate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
):
    return await RoleService(db).duplicate_role(code, data, actor_id=admin.id)


@router.delete("/{code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    code: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(TEAM_UPDATE)),
) -> Response:
    await RoleService(db).delete_role(code, actor_id=admin.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
