"""Admin API: permission catalog."""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...admin import require_admin_permission
from ...dependencies import get_db
from ...models.admin_user import AdminUser
from ...policy.catalog import SETTINGS_UPDATE, SETTINGS_VIEW
from ...schemas.permission import PermissionCreate, PermissionResponse, PermissionUpdate
from ...services.admin import CatalogService

router = APIRouter(prefix="/admin/permissions", tags=["admin-permissions"])


@router.post("", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    data: PermissionCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(SETTINGS_UPDATE)),
):
    return await CatalogService(db).create_permission(data, actor_id=admin.id)


@router.get("", response_model=list[PermissionResponse])
async def list_permissions(
    resource: str | None = Query(None, description="Filter by resource code"),
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(SETTINGS_VIEW)),
):
    return await CatalogService(db).list_permissions(resource=resource)


@router.get("/{code}", response_model=PermissionResponse)
async def get_permission(
    code: str,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(SETTINGS_VIEW)),
):
    return await CatalogService(db).get_permission(code)


@router.patch("/{code}", response_model=PermissionResponse)
async def update_permission(
    code: str,
    data: PermissionUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(SETTINGS_UPDATE)),
):
    return await CatalogService(db).update_permission(code, data, actor_id=admin.id)


@router.delete("/{code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    code: str,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(SETTINGS_UPDATE)),
) -> Response:
    await CatalogService(db).delete_permission(code, actor_id=admin.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
