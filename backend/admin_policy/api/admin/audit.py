"""Admin API: audit trail listing."""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...admin import require_admin_permission
from ...crud.audit_log import AuditLogRepository
from ...dependencies import get_db
from ...models.admin_user import AdminUser
from ...policy.catalog import ACTIVITY_LOG_VIEW
from ...schemas.audit_log import AuditLogResponse

router = APIRouter(prefix="/admin/audit-logs", tags=["admin-audit"])


@router.get("", response_model=list[AuditLogResponse])
async def list_audit_logs(
    actor_id: UUID | None = Query(None),
    actor_type: str | None = Query(None),
    action: str | None = Query(None),
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(ACTIVITY_LOG_VIEW)),
):
    return await AuditLogRepository(db).list_by_filters(
        actor_id=actor_id,
        actor_type=actor_type,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
    )
