"""Admin API: approval inbox."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...admin import require_admin_permission
from ...dependencies import get_db
from ...models.admin_user import AdminUser
from ...policy.catalog import APPROVALS_APPROVE, APPROVALS_VIEW
from ...schemas.approval import (
    ApprovalDecision,
    ApprovalExpireStale,
    ApprovalRequestResponse,
)
from ...services.admin import ApprovalService

router = APIRouter(prefix="/admin/approvals", tags=["admin-approvals"])


@router.get("/inbox", response_model=list[ApprovalRequestResponse])
async def inbox(
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(APPROVALS_VIEW)),
):
    """Pending requests routed to the caller or to a role the caller holds."""
    return await ApprovalService(db).list_pending_for(admin.id)


@router.get("", response_model=list[ApprovalRequestResponse])
async def list_requests(
    status: str | None = Query(None, pattern="^(pending|approved|rejected|expired)$"),
    admin_id: UUID | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(APPROVALS_VIEW)),
):
    return await ApprovalService(db).list_requests(
        status=status, admin_id=admin_id, limit=limit, offset=offset
    )


@router.get("/{request_id}", response_model=ApprovalRequestResponse)
async def get_request(
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(APPROVALS_VIEW)),
):
    return await ApprovalService(db).get(request_id)


@router.post("/{request_id}/approve", response_model=ApprovalRequestResponse)
async def approve_request(
    request_id: UUID,
    data: ApprovalDecision,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(APPROVALS_APPROVE)),
):
    return await ApprovalService(db).approve(request_id, admin.id, notes=data.notes)


@router.post("/{request_id}/reject", response_model=ApprovalRequestResponse)
async def reject_request(
    request_id: UUID,
    data: ApprovalDecision,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(APPROVALS_APPROVE)),
):
    return await ApprovalService(db).reject(request_id, admin.id, notes=data.notes)


@router.post("/{request_id}/expire", response_model=ApprovalRequestResponse)
async def expire_request(
    request_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(APPROVALS_APPROVE)),
):
    return await ApprovalService(db).expire(request_id)


@router.post("/expire-stale")
async def expire_stale(
    data: ApprovalExpireStale,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(APPROVALS_APPROVE)),
) -> dict:
    expired = await ApprovalService(db).expire_stale(data.older_than)
    return {"expired": expired}
