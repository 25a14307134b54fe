"""
Tests for AuthorizationService: decisions, audit isolation, notification
publishing and concurrent counting.
"""
import asyncio
import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from admin_policy.crud.action_counter import ActionCounterRepository
from admin_policy.models import AuditLog
from admin_policy.policy.decisions import Decision, OutcomeKind
from admin_policy.services.admin.authorization_service import (
    EVENT_APPROVAL_CREATED,
    EVENT_ESCALATION_NOTIFY,
    AuthorizationService,
)
from tests.policy_helpers import (
    add_admin,
    add_override,
    add_permissions,
    add_role,
    add_rule,
    bind,
)


@pytest.fixture
async def agent(session):
    await add_permissions(session, "orders.view", "orders.refund", "finance.approve")
    await add_role(session, "support_agent", ["orders.view", "orders.refund"])
    await add_role(session, "finance_manager", ["finance.approve"])
    admin = await add_admin(session)
    await bind(session, admin, "support_agent", is_primary=True)
    await session.commit()
    return admin


def make_service(session, session_factory, publisher=None) -> AuthorizationService:
    return AuthorizationService(
        session,
        publisher=publisher,
        audit_session_factory=session_factory,
        tz=timezone.utc,
    )


async def audit_entries(session_factory, action: str) -> list[AuditLog]:
    async with session_factory() as audit_session:
        result = await audit_session.execute(select(AuditLog).where(AuditLog.action == action))
        return list(result.scalars().all())


class TestAuthorize:
    @pytest.mark.anyio
    async def test_allow_is_audited(self, session, session_factory, agent):
        service = make_service(session, session_factory)

        resolution = await service.authorize(agent.id, "orders", "view")

        assert resolution.decision is Decision.ALLOW
        [entry] = await audit_entries(session_factory, "decision.authorize")
        assert entry.actor_id == agent.id
        assert entry.entity_id == "orders.view"
        assert entry.after["decision"] == "allow"

    @pytest.mark.anyio
    async def test_deny_is_audited_with_reason(self, session, session_factory, agent):
        service = make_service(session, session_factory)

        resolution = await service.authorize(agent.id, "finance", "approve")

        assert resolution.decision is Decision.DENY
        [entry] = await audit_entries(session_factory, "decision.authorize")
        assert entry.reason == "not_granted"

    @pytest.mark.anyio
    async def test_context_is_checked_against_constraints(self, session, session_factory, agent):
        await add_override(session, agent, "orders.refund", constraints={"amount_limit": 100})
        await session.commit()
        service = make_service(session, session_factory)

        small = await service.authorize(agent.id, "orders", "refund", {"amount": 50})
        large = await service.authorize(agent.id, "orders", "refund", {"amount": 150})

        assert small.allowed
        assert small.constraints == {"amount_limit": 100.0}
        assert not large.allowed
        assert large.reason == "amount_exceeded"

    @pytest.mark.anyio
    async def test_audit_failure_does_not_change_decision(self, session, agent, caplog):
        """A broken audit store is logged; the decision still comes back."""
        failing_session = MagicMock()
        failing_session.add = MagicMock()
        failing_session.flush = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk full")))
        failing_session.commit = AsyncMock()
        failing_session.__aenter__ = AsyncMock(return_value=failing_session)
        failing_session.__aexit__ = AsyncMock(return_value=None)
        service = make_service(session, MagicMock(return_value=failing_session))

        with caplog.at_level("ERROR"):
            resolution = await service.authorize(agent.id, "orders", "view")

        assert resolution.allowed
        assert "audit_write_failed" in caplog.text
        failing_session.commit.assert_not_called()


class TestEvaluateEscalation:
    @pytest.mark.anyio
    async def test_unauthorized_action_is_blocked_without_rules(self, session, session_factory, agent):
        await add_rule(
            session,
            resource_code="finance",
            action_code="approve",
            trigger_type="count",
            trigger_conditions={"count_per_day": 0},
            action_type="notify",
            escalate_to_role_code="finance_manager",
        )
        await session.commit()
        service = make_service(session, session_factory)

        outcome = await service.evaluate_escalation(
            agent.id, "finance", "approve", {"timestamp": "2026-10-18T09:00:00+00:00"}
        )

        assert outcome.kind is OutcomeKind.BLOCK
        assert outcome.reason == "permission_denied:not_granted"
        count = await ActionCounterRepository(session).get_count(
            agent.id, "finance", "approve", date(2026, 10, 18)
        )
        assert count == 0

    @pytest.mark.anyio
    async def test_notify_publishes_event(self, session, session_factory, agent, publisher):
        rule = await add_rule(
            session,
            resource_code="orders",
            action_code="refund",
            trigger_type="threshold",
            trigger_conditions={"amount": 100},
            action_type="notify",
            escalate_to_role_code="finance_manager",
        )
        await session.commit()
        service = make_service(session, session_factory, publisher)

        outcome = await service.evaluate_escalation(agent.id, "orders", "refund", {"amount": 250})

        assert outcome.kind is OutcomeKind.NOTIFY
        [(event_type, payload)] = publisher.events
        assert event_type == EVENT_ESCALATION_NOTIFY
        assert payload["rule_id"] == str(rule.id)
        assert payload["admin_id"] == str(agent.id)
        assert payload["target"]["role_code"] == "finance_manager"
        assert payload["context"] == {"amount": 250}

    @pytest.mark.anyio
    async def test_approval_request_is_committed_and_announced(
        self, session, session_factory, agent, publisher
    ):
        await add_rule(
            session,
            resource_code="orders",
            action_code="refund",
            trigger_type="threshold",
            trigger_conditions={"amount": 500},
            action_type="require_approval",
            escalate_to_role_code="finance_manager",
        )
        await session.commit()
        service = make_service(session, session_factory, publisher)

        outcome = await service.evaluate_escalation(agent.id, "orders", "refund", {"amount": 600})

        assert outcome.kind is OutcomeKind.REQUIRE_APPROVAL
        assert publisher.events[0][0] == EVENT_APPROVAL_CREATED
        assert publisher.events[0][1]["request_id"] == str(outcome.request_id)
        [entry] = await audit_entries(session_factory, "decision.escalation")
        assert entry.after["kind"] == "require_approval"

    @pytest.mark.anyio
    async def test_proceed_publishes_nothing(self, session, session_factory, agent, publisher):
        service = make_service(session, session_factory, publisher)

        outcome = await service.evaluate_escalation(agent.id, "orders", "refund", {"amount": 600})

        assert outcome.kind is OutcomeKind.PROCEED
        assert publisher.events == []

    @pytest.mark.anyio
    async def test_misconfigured_target_is_audited_separately(
        self, session, session_factory, agent, publisher
    ):
        await add_rule(
            session,
            resource_code="orders",
            action_code="refund",
            trigger_type="threshold",
            trigger_conditions={"amount": 1},
            action_type="notify",
            escalate_to_admin_id=uuid.uuid4(),
        )
        await session.commit()
        service = make_service(session, session_factory, publisher)

        outcome = await service.evaluate_escalation(agent.id, "orders", "refund", {"amount": 5})

        assert outcome.kind is OutcomeKind.BLOCK
        assert publisher.events == []
        [entry] = await audit_entries(session_factory, "escalation.misconfigured")
        assert entry.reason == "escalation_misconfigured"

    @pytest.mark.anyio
    async def test_concurrent_actions_at_the_limit(self, session, session_factory, agent):
        """Two simultaneous refunds with one slot left: one proceeds, one notifies."""
        await add_rule(
            session,
            resource_code="orders",
            action_code="refund",
            trigger_type="count",
            trigger_conditions={"count_per_day": 3},
            action_type="notify",
            escalate_to_role_code="finance_manager",
        )
        counters = ActionCounterRepository(session)
        for _ in range(2):
            await counters.increment(agent.id, "orders", "refund", date(2026, 10, 18))
        await session.commit()
        afternoon = datetime(2026, 10, 18, 15, tzinfo=timezone.utc)

        async def attempt() -> OutcomeKind:
            async with session_factory() as own_session:
                service = make_service(own_session, session_factory)
                outcome = await service.evaluate_escalation(
                    agent.id, "orders", "refund", {}, now=afternoon
                )
                return outcome.kind

        kinds = await asyncio.gather(attempt(), attempt())

        assert sorted(kind.value for kind in kinds) == ["notify", "proceed"]
        async with session_factory() as check_session:
            count = await ActionCounterRepository(check_session).get_count(
                agent.id, "orders", "refund", date(2026, 10, 18)
            )
        assert count == 4
