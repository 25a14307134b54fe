"""Administration of escalation rules with write-time validation."""
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ...crud.admin_user import AdminUserRepository
from ...crud.escalation_rule import EscalationRuleRepository
from ...crud.permission import PermissionRepository
from ...crud.role import RoleRepository
from ...errors import ConfigurationError, NotFoundError, ValidationError
from ...models.escalation_rule import EscalationRule
from ...policy.catalog import permission_code
from ...policy.triggers import TriggerType, validate_trigger_conditions
from ...schemas.escalation_rule import EscalationRuleCreate, EscalationRuleUpdate
from ..audit import AuditService


def rule_snapshot(rule: EscalationRule) -> dict:
    return {
        "name": rule.name,
        "trigger_type": rule.trigger_type,
        "resource_code": rule.resource_code,
        "action_code": rule.action_code,
        "trigger_conditions": rule.trigger_conditions,
        "escalate_to_role_code": rule.escalate_to_role_code,
        "escalate_to_admin_id": str(rule.escalate_to_admin_id) if rule.escalate_to_admin_id else None,
        "action_type": rule.action_type,
        "priority": rule.priority,
        "is_active": rule.is_active,
    }


class EscalationRuleService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.rule_repo = EscalationRuleRepository(session)
        self.permission_repo = PermissionRepository(session)
        self.role_repo = RoleRepository(session)
        self.admin_repo = AdminUserRepository(session)
        self.audit_service = AuditService(session)

    async def _validate(
        self,
        *,
        resource_code: str,
        action_code: str,
        trigger_type: TriggerType,
        trigger_conditions: dict,
        escalate_to_role_code: str | None,
        escalate_to_admin_id: uuid.UUID | None,
    ) -> None:
        code = permission_code(resource_code, action_code)
        if await self.permission_repo.get_by_code(code) is None:
            raise ValidationError(f"Unknown permission '{code}'")

        try:
            validate_trigger_conditions(trigger_type, trigger_conditions)
        except ConfigurationError as exc:
            raise ValidationError(exc.message, details=exc.details) from exc

        if escalate_to_role_code is not None:
            if await self.role_repo.get_by_code(escalate_to_role_code) is None:
                raise ValidationError(f"Unknown escalation role '{escalate_to_role_code}'")
        elif escalate_to_admin_id is not None:
            if await self.admin_repo.get_by_id(escalate_to_admin_id) is None:
                raise ValidationError("Unknown escalation admin")
        else:
            raise ValidationError("An escalation target is required")

    async def create_rule(
        self, data: EscalationRuleCreate, actor_id: uuid.UUID | None = None
    ) -> EscalationRule:
        await self._validate(
            resource_code=data.resource_code,
            action_code=data.action_code,
            trigger_type=data.trigger_type,
            trigger_conditions=data.trigger_conditions,
            escalate_to_role_code=data.escalate_to_role_code,
            escalate_to_admin_id=data.escalate_to_admin_id,
        )
        rule = await self.rule_repo.create(
            name=data.name,
            description=data.description,
            trigger_type=data.trigger_type.value,
            resource_code=data.resource_code,
            action_code=data.action_code,
            trigger_conditions=data.trigger_conditions,
            escalate_to_role_code=data.escalate_to_role_code,
            escalate_to_admin_id=data.escalate_to_admin_id,
            action_type=data.action_type.value,
            priority=data.priority,
            is_active=data.is_active,
        )
        await self.audit_service.log_create(
            "escalation_rule", rule.id, rule_snapshot(rule), actor_id=actor_id
        )
        await self.session.commit()
        return rule

    async def list_rules(
        self, resource_code: str | None = None, action_code: str | None = None
    ) -> list[EscalationRule]:
        return await self.rule_repo.list_all(resource_code=resource_code, action_code=action_code)

    async def get_rule(self, rule_id: uuid.UUID) -> EscalationRule:
        rule = await self.rule_repo.get_by_id(rule_id)
        if rule is None:
            raise NotFoundError("Escalation rule not found")
        return rule

    async def update_rule(
        self,
        rule_id: uuid.UUID,
        data: EscalationRuleUpdate,
        actor_id: uuid.UUID | None = None,
    ) -> EscalationRule:
        rule = await self.get_rule(rule_id)
        before = rule_snapshot(rule)

        trigger_type = data.trigger_type or TriggerType(rule.trigger_type)
        trigger_conditions = (
            data.trigger_conditions
            if data.trigger_conditions is not None
            else rule.trigger_conditions
        )
        role_code, target_admin = rule.escalate_to_role_code, rule.escalate_to_admin_id
        if data.escalate_to_role_code is not None:
            role_code, target_admin = data.escalate_to_role_code, None
        elif data.escalate_to_admin_id is not None:
            role_code, target_admin = None, data.escalate_to_admin_id

        await self._validate(
            resource_code=rule.resource_code,
            action_code=rule.action_code,
            trigger_type=trigger_type,
            trigger_conditions=trigger_conditions,
            escalate_to_role_code=role_code,
            escalate_to_admin_id=target_admin,
        )

        rule.trigger_type = trigger_type.value
        rule.trigger_conditions = trigger_conditions
        rule.escalate_to_role_code = role_code
        rule.escalate_to_admin_id = target_admin
        if data.name is not None:
            rule.name = data.name
        if data.description is not None:
            rule.description = data.description
        if data.action_type is not None:
            rule.action_type = data.action_type.value
        if data.priority is not None:
            rule.priority = data.priority
        if data.is_active is not None:
            rule.is_active = data.is_active
        await self.rule_repo.update(rule)

        await self.audit_service.log_update(
            "escalation_rule", rule.id, before, rule_snapshot(rule), actor_id=actor_id
        )
        await self.session.commit()
        return rule

    async def delete_rule(self, rule_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> None:
        rule = await self.get_rule(rule_id)
        before = rule_snapshot(rule)
        await self.rule_repo.delete(rule)
        await self.audit_service.log_delete("escalation_rule", rule_id, before, actor_id=actor_id)
        await self.session.commit()
