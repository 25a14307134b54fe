"""
Escalation Rule Engine.

Runs after the resolver has allowed an action. Active rules for the
resource/action are evaluated in priority order (then creation time, then
id) and the first satisfied rule decides the outcome:

    block            -> BLOCK
    notify           -> NOTIFY (the caller proceeds)
    require_approval -> REQUIRE_APPROVAL with a new pending ApprovalRequest

Anything the engine cannot evaluate fails closed as BLOCK.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, tzinfo
from typing import Any, Mapping

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...crud.action_counter import ActionCounterRepository
from ...crud.admin_user import AdminUserRepository
from ...crud.approval_request import ApprovalRequestRepository
from ...crud.escalation_rule import EscalationRuleRepository
from ...crud.role import RoleRepository
from ...errors import ConfigurationError
from ...models.base import utcnow
from ...models.escalation_rule import EscalationRule
from ...policy.decisions import EscalationOutcome, EscalationTarget, OutcomeKind
from ...policy.triggers import (
    EscalationAction,
    TriggerType,
    trigger_satisfied,
)

logger = logging.getLogger(__name__)

REASON_CONFIGURATION_ERROR = "configuration_error"
REASON_MISCONFIGURED_TARGET = "escalation_misconfigured"
REASON_RULE_BLOCKED = "rule_blocked"


class EscalationEngine:
    def __init__(self, session: AsyncSession, *, tz: tzinfo | None = None):
        self.session = session
        self.tz = tz
        self.rule_repo = EscalationRuleRepository(session)
        self.counter_repo = ActionCounterRepository(session)
        self.approval_repo = ApprovalRequestRepository(session)
        self.role_repo = RoleRepository(session)
        self.admin_repo = AdminUserRepository(session)

    def _policy_tz(self) -> tzinfo:
        return self.tz if self.tz is not None else settings.tzinfo

    async def evaluate(
        self,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        context: Mapping[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> EscalationOutcome:
        """Evaluate the escalation rules for one in-flight action.

        Every evaluated action is counted against the server's current day in
        the policy timezone, whether or not a count rule exists yet. Writes
        (counter increment, approval request) are flushed into the caller's
        session; the caller commits.
        """
        context = context or {}
        try:
            action_count = await self._count_action(admin_id, resource_code, action_code, now)
            rules = await self.rule_repo.list_matching(resource_code, action_code)
            for rule in rules:
                satisfied = trigger_satisfied(
                    TriggerType(rule.trigger_type),
                    rule.trigger_conditions or {},
                    context,
                    action_count=action_count,
                )
                if satisfied:
                    return await self._apply(rule, admin_id, resource_code, action_code, context)
        except ConfigurationError as exc:
            logger.error(
                "escalation_blocked reason=%s admin_id=%s resource=%s action=%s error=%s details=%s",
                REASON_CONFIGURATION_ERROR,
                admin_id,
                resource_code,
                action_code,
                exc.message,
                exc.details,
            )
            return EscalationOutcome(kind=OutcomeKind.BLOCK, reason=REASON_CONFIGURATION_ERROR)
        except ValueError as exc:
            # Unknown trigger or action type stored on a rule.
            logger.error(
                "escalation_blocked reason=%s admin_id=%s resource=%s action=%s error=%s",
                REASON_CONFIGURATION_ERROR,
                admin_id,
                resource_code,
                action_code,
                exc,
            )
            return EscalationOutcome(kind=OutcomeKind.BLOCK, reason=REASON_CONFIGURATION_ERROR)

        return EscalationOutcome.proceed()

    async def _count_action(
        self,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        now: datetime | None,
    ) -> int:
        """Increment the day's counter once; the day comes from the server clock."""
        day = (now or utcnow()).astimezone(self._policy_tz()).date()
        count = await self.counter_repo.increment(admin_id, resource_code, action_code, day)
        logger.debug(
            "action_counted admin_id=%s resource=%s action=%s day=%s count=%d",
            admin_id,
            resource_code,
            action_code,
            day,
            count,
        )
        return count

    async def _apply(
        self,
        rule: EscalationRule,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        context: Mapping[str, Any],
    ) -> EscalationOutcome:
        action = EscalationAction(rule.action_type)
        target = EscalationTarget(
            role_code=rule.escalate_to_role_code,
            admin_id=rule.escalate_to_admin_id,
        )
        logger.info(
            "escalation_rule_matched rule_id=%s admin_id=%s resource=%s action=%s outcome=%s",
            rule.id,
            admin_id,
            resource_code,
            action_code,
            action.value,
        )

        if not await self._target_is_live(target):
            logger.error(
                "escalation_misconfigured rule_id=%s target_role=%s target_admin=%s",
                rule.id,
                target.role_code,
                target.admin_id,
            )
            return EscalationOutcome(
                kind=OutcomeKind.BLOCK,
                rule_id=rule.id,
                target=target,
                reason=REASON_MISCONFIGURED_TARGET,
            )

        if action is EscalationAction.BLOCK:
            return EscalationOutcome(
                kind=OutcomeKind.BLOCK,
                rule_id=rule.id,
                target=target,
                reason=REASON_RULE_BLOCKED,
            )
        if action is EscalationAction.NOTIFY:
            return EscalationOutcome(kind=OutcomeKind.NOTIFY, rule_id=rule.id, target=target)

        request = await self.approval_repo.create(
            rule_id=rule.id,
            admin_id=admin_id,
            resource_code=resource_code,
            action_code=action_code,
            context_snapshot=jsonable_encoder(dict(context)),
            escalate_to_role_code=target.role_code,
            escalate_to_admin_id=target.admin_id,
        )
        return EscalationOutcome(
            kind=OutcomeKind.REQUIRE_APPROVAL,
            rule_id=rule.id,
            target=target,
            request_id=request.id,
        )

    async def _target_is_live(self, target: EscalationTarget) -> bool:
        if target.role_code is not None:
            role = await self.role_repo.get_by_code(target.role_code)
            return role is not None and role.is_active
        if target.admin_id is not None:
            admin = await self.admin_repo.get_by_id(target.admin_id)
            return admin is not None and admin.is_active
        return False
