"""
Authorization Service - the externally exposed decision operations.

    authorize(admin, resource, action, context?)          -> Resolution
    evaluate_escalation(admin, resource, action, context) -> EscalationOutcome

Every decision is appended to the audit trail in an isolated session after
the caller's work is committed, and notification events are published last.
Neither an audit failure nor a publish failure changes a decision.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, tzinfo
from typing import Any, Callable, Mapping

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...database import AsyncSessionLocal
from ...domain.ports.events import EventPublisher
from ...errors import ConfigurationError
from ...policy.catalog import permission_code
from ...policy.constraints import check_constraints, parse_constraints
from ...policy.decisions import Decision, EscalationOutcome, OutcomeKind, Resolution
from ...policy.triggers import action_timestamp
from ..audit import record_isolated
from .escalation_engine import REASON_MISCONFIGURED_TARGET, EscalationEngine
from .permission_resolver import PermissionResolver

logger = logging.getLogger(__name__)

EVENT_ESCALATION_NOTIFY = "escalation.notify"
EVENT_APPROVAL_CREATED = "approval.created"


class AuthorizationService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        publisher: EventPublisher | None = None,
        audit_session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        tz: tzinfo | None = None,
    ):
        self.session = session
        self.publisher = publisher
        self.audit_session_factory = audit_session_factory
        self.tz = tz
        self.resolver = PermissionResolver(session)
        self.engine = EscalationEngine(session, tz=tz)

    def _policy_tz(self) -> tzinfo:
        return self.tz if self.tz is not None else settings.tzinfo

    async def authorize(
        self,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        context: Mapping[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> Resolution:
        """Decide whether the admin may perform the action.

        With a context, the grant's constraints are checked against it; a
        failing check turns ALLOW into DENY with the constraint's reason.
        """
        code = permission_code(resource_code, action_code)
        resolution = await self.resolver.resolve(admin_id, code, now=now)

        if resolution.allowed and context is not None:
            resolution = self._apply_constraints(admin_id, code, resolution, context, now)

        await self._audit(
            action="decision.authorize",
            admin_id=admin_id,
            code=code,
            after={
                "decision": resolution.decision.value,
                "constraints": resolution.constraints,
                "requires_approval": resolution.requires_approval,
                "context": jsonable_encoder(dict(context)) if context is not None else None,
            },
            reason=resolution.reason,
        )
        return resolution

    def _apply_constraints(
        self,
        admin_id: uuid.UUID,
        code: str,
        resolution: Resolution,
        context: Mapping[str, Any],
        now: datetime | None,
    ) -> Resolution:
        try:
            constraints = parse_constraints(resolution.constraints)
            at = now or action_timestamp(context)
        except ConfigurationError as exc:
            logger.error(
                "configuration_error admin_id=%s permission=%s error=%s",
                admin_id,
                code,
                exc.message,
            )
            return Resolution.deny("configuration_error")

        check = check_constraints(
            constraints,
            context,
            admin_id=admin_id,
            now=at,
            tz=self._policy_tz(),
        )
        if not check.allowed:
            logger.info(
                "permission_denied admin_id=%s permission=%s reason=%s",
                admin_id,
                code,
                check.reason,
            )
            return Resolution.deny(check.reason or "constraint_failed")
        return Resolution(
            decision=Decision.ALLOW,
            constraints=resolution.constraints,
            requires_approval=check.requires_approval,
        )

    async def evaluate_escalation(
        self,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        context: Mapping[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> EscalationOutcome:
        """Run the escalation rules for an action the admin is authorized to take.

        An admin who does not hold the permission gets BLOCK; rules are never
        evaluated (and nothing is counted) for unauthorized actions.
        """
        context = dict(context or {})
        code = permission_code(resource_code, action_code)

        resolution = await self.resolver.resolve(admin_id, code, now=now)
        if not resolution.allowed:
            outcome = EscalationOutcome(
                kind=OutcomeKind.BLOCK,
                reason=f"permission_denied:{resolution.reason}",
            )
        else:
            outcome = await self.engine.evaluate(
                admin_id, resource_code, action_code, context, now=now
            )
        await self.session.commit()

        audit_action = (
            "escalation.misconfigured"
            if outcome.reason == REASON_MISCONFIGURED_TARGET
            else "decision.escalation"
        )
        await self._audit(
            action=audit_action,
            admin_id=admin_id,
            code=code,
            after={**outcome.as_dict(), "context": jsonable_encoder(context)},
            reason=outcome.reason,
        )
        await self._publish(outcome, admin_id, resource_code, action_code, context)
        return outcome

    async def _audit(
        self,
        *,
        action: str,
        admin_id: uuid.UUID,
        code: str,
        after: dict[str, Any],
        reason: str | None,
    ) -> None:
        await record_isolated(
            self.audit_session_factory,
            action=action,
            entity_type="permission",
            entity_id=code,
            actor_id=admin_id,
            actor_type="user",
            after=after,
            reason=reason,
        )

    async def _publish(
        self,
        outcome: EscalationOutcome,
        admin_id: uuid.UUID,
        resource_code: str,
        action_code: str,
        context: dict[str, Any],
    ) -> None:
        if outcome.kind is OutcomeKind.NOTIFY:
            event_type = EVENT_ESCALATION_NOTIFY
        elif outcome.kind is OutcomeKind.REQUIRE_APPROVAL:
            event_type = EVENT_APPROVAL_CREATED
        else:
            return
        if self.publisher is None:
            logger.debug("event_skipped reason=no_publisher event_type=%s", event_type)
            return
        await self.publisher.publish(
            event_type,
            {
                **outcome.as_dict(),
                "admin_id": str(admin_id),
                "resource_code": resource_code,
                "action_code": action_code,
                "context": jsonable_encoder(context),
            },
        )
