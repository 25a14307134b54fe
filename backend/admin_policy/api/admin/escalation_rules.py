"""Admin API: escalation rules."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...admin import require_admin_permission
from ...dependencies import get_db
from ...models.admin_user import AdminUser
from ...policy.catalog import SETTINGS_UPDATE, SETTINGS_VIEW
from ...schemas.escalation_rule import (
    EscalationRuleCreate,
    EscalationRuleResponse,
    EscalationRuleUpdate,
)
from ...services.admin import EscalationRuleService

router = APIRouter(prefix="/admin/escalation-rules", tags=["admin-escalation-rules"])


@router.post("", response_model=EscalationRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    data: EscalationRuleCreate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(SETTINGS_UPDATE)),
):
    return await EscalationRuleService(db).create_rule(data, actor_id=admin.id)


@router.get("", response_model=list[EscalationRuleResponse])
async def list_rules(
    resource_code: str | None = Query(None),
    action_code: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(SETTINGS_VIEW)),
):
    return await EscalationRuleService(db).list_rules(
        resource_code=resource_code, action_code=action_code
    )


@router.get("/{rule_id}", response_model=EscalationRuleResponse)
async def get_rule(
    rule_id: UUID,
    db: AsyncSession = Depends(get_db),
    _: AdminUser = Depends(require_admin_permission(SETTINGS_VIEW)),
):
    return await EscalationRuleService(db).get_rule(rule_id)


@router.patch("/{rule_id}", response_model=EscalationRuleResponse)
async def update_rule(
    rule_id: UUID,
    data: EscalationRuleUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(SETTINGS_UPDATE)),
):
    return await EscalationRuleService(db).update_rule(rule_id, data, actor_id=admin.id)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(require_admin_permission(SETTINGS_UPDATE)),
) -> Response:
    await EscalationRuleService(db).delete_rule(rule_id, actor_id=admin.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
