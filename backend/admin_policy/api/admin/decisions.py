"""Admin API: authorization decisions and effective permissions.

Decisions are open to any active admin acting for themselves; the acting
admin is always the caller.
"""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...admin import require_admin_permission
from ...dependencies import get_authorization_service, get_current_admin, get_db
from ...errors import NotFoundError
from ...models.admin_user import AdminUser
from ...policy.catalog import TEAM_VIEW
from ...schemas.admin import EffectivePermissionsResponse
from ...schemas.decision import ActionRequest, AuthorizeResponse, EscalationOutcomeResponse
from ...services.admin import AuthorizationService, PermissionResolver

router = APIRouter(prefix="/admin", tags=["admin-decisions"])


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(
    data: ActionRequest,
    admin: AdminUser = Depends(get_current_admin),
    service: AuthorizationService = Depends(get_authorization_service),
):
    resolution = await service.authorize(
        admin.id, data.resource_code, data.action_code, data.context
    )
    return AuthorizeResponse(
        decision=resolution.decision,
        constraints=resolution.constraints,
        reason=resolution.reason,
        requires_approval=resolution.requires_approval,
    )


@router.post("/escalations/evaluate", response_model=EscalationOutcomeResponse)
async def evaluate_escalation(
    data: ActionRequest,
    admin: AdminUser = Depends(get_current_admin),
    service: AuthorizationService = Depends(get_authorization_service),
):
    outcome = await service.evaluate_escalation(
        admin.id, data.resource_code, data.action_code, data.context
    )
    return EscalationOutcomeResponse(
        kind=outcome.kind,
        may_proceed=outcome.may_proceed,
        rule_id=outcome.rule_id,
        target=(
            {"role_code": outcome.target.role_code, "admin_id": outcome.target.admin_id}
            if outcome.target
            else None
        ),
        request_id=outcome.request_id,
        reason=outcome.reason,
    )


@router.get("/admins/{admin_id}/effective-permissions", response_model=EffectivePermissionsResponse)
async def effective_permissions(
    admin_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(TEAM_VIEW)),
):
    resolver = PermissionResolver(db)
    if await resolver.admin_repo.get_by_id(admin_id) is None:
        raise NotFoundError("Admin not found")
    primary = await resolver.primary_role(admin_id)
    return EffectivePermissionsResponse(
        admin_id=admin_id,
        permissions=sorted(await resolver.effective_permissions(admin_id)),
        accessible_resources=await resolver.accessible_resources(admin_id),
        primary_role=primary.code if primary else None,
    )
