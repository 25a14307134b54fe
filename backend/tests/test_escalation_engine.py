"""Tests for EscalationEngine rule evaluation."""
import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from admin_policy.crud.action_counter import ActionCounterRepository
from admin_policy.models import ApprovalRequest
from admin_policy.policy.decisions import OutcomeKind
from admin_policy.services.admin.escalation_engine import (
    REASON_CONFIGURATION_ERROR,
    REASON_MISCONFIGURED_TARGET,
    REASON_RULE_BLOCKED,
    EscalationEngine,
)
from tests.policy_helpers import add_admin, add_permissions, add_role, add_rule

REFUND = {"resource_code": "orders", "action_code": "refund"}
NOON = datetime(2026, 10, 18, 12, tzinfo=timezone.utc)


@pytest.fixture
async def setup(session):
    await add_permissions(session, "orders.refund", "finance.approve")
    await add_role(session, "finance_manager", ["finance.approve"])
    admin = await add_admin(session)
    engine = EscalationEngine(session, tz=timezone.utc)
    return engine, admin


class TestRuleSelection:
    @pytest.mark.anyio
    async def test_no_rules_proceeds(self, setup):
        engine, admin = setup

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 10})

        assert outcome.kind is OutcomeKind.PROCEED
        assert outcome.may_proceed

    @pytest.mark.anyio
    async def test_large_refund_requires_approval(self, session, setup):
        """A 600 refund against a 500 threshold goes to the finance managers."""
        engine, admin = setup
        rule = await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 500},
            action_type="require_approval",
            escalate_to_role_code="finance_manager",
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 600, "order_id": "A-1"})

        assert outcome.kind is OutcomeKind.REQUIRE_APPROVAL
        assert not outcome.may_proceed
        assert outcome.rule_id == rule.id
        assert outcome.target.role_code == "finance_manager"

        request = await session.get(ApprovalRequest, outcome.request_id)
        assert request.status == "pending"
        assert request.admin_id == admin.id
        assert request.escalate_to_role_code == "finance_manager"
        assert request.context_snapshot == {"amount": 600, "order_id": "A-1"}

    @pytest.mark.anyio
    async def test_threshold_boundary_proceeds(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 500},
            action_type="block",
            escalate_to_role_code="finance_manager",
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 500})

        assert outcome.kind is OutcomeKind.PROCEED

    @pytest.mark.anyio
    async def test_lowest_priority_value_wins(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 100},
            action_type="notify",
            escalate_to_role_code="finance_manager",
            priority=20,
        )
        blocking = await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 100},
            action_type="block",
            escalate_to_role_code="finance_manager",
            priority=10,
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 150})

        assert outcome.kind is OutcomeKind.BLOCK
        assert outcome.reason == REASON_RULE_BLOCKED
        assert outcome.rule_id == blocking.id

    @pytest.mark.anyio
    async def test_notify_lets_the_action_proceed(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 100},
            action_type="notify",
            escalate_to_role_code="finance_manager",
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 150})

        assert outcome.kind is OutcomeKind.NOTIFY
        assert outcome.may_proceed

    @pytest.mark.anyio
    async def test_inactive_rule_is_ignored(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 1},
            action_type="block",
            escalate_to_role_code="finance_manager",
            is_active=False,
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 150})

        assert outcome.kind is OutcomeKind.PROCEED

    @pytest.mark.anyio
    async def test_rule_missing_required_key_never_triggers(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"limit": 1},
            action_type="block",
            escalate_to_role_code="finance_manager",
            priority=1,
        )
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 100},
            action_type="notify",
            escalate_to_role_code="finance_manager",
            priority=2,
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 150})

        assert outcome.kind is OutcomeKind.NOTIFY


class TestFailClosed:
    @pytest.mark.anyio
    async def test_missing_target_role_blocks(self, session, setup, caplog):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 100},
            action_type="require_approval",
            escalate_to_role_code="vanished_role",
        )

        with caplog.at_level("ERROR"):
            outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 150})

        assert outcome.kind is OutcomeKind.BLOCK
        assert outcome.reason == REASON_MISCONFIGURED_TARGET
        assert "escalation_misconfigured" in caplog.text
        pending = await session.execute(select(ApprovalRequest))
        assert pending.scalars().all() == []

    @pytest.mark.anyio
    async def test_inactive_target_admin_blocks(self, session, setup):
        engine, admin = setup
        approver = await add_admin(session, is_active=False)
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 100},
            action_type="notify",
            escalate_to_admin_id=approver.id,
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 150})

        assert outcome.kind is OutcomeKind.BLOCK
        assert outcome.reason == REASON_MISCONFIGURED_TARGET

    @pytest.mark.anyio
    async def test_unknown_target_admin_blocks(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 100},
            action_type="notify",
            escalate_to_admin_id=uuid.uuid4(),
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 150})

        assert outcome.reason == REASON_MISCONFIGURED_TARGET

    @pytest.mark.anyio
    async def test_malformed_condition_blocks(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": "five hundred"},
            action_type="notify",
            escalate_to_role_code="finance_manager",
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": 150})

        assert outcome.kind is OutcomeKind.BLOCK
        assert outcome.reason == REASON_CONFIGURATION_ERROR

    @pytest.mark.anyio
    async def test_nan_amount_blocks_threshold_rule(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="threshold",
            trigger_conditions={"amount": 500},
            action_type="block",
            escalate_to_role_code="finance_manager",
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"amount": float("nan")})

        assert outcome.kind is OutcomeKind.BLOCK
        assert outcome.reason == REASON_CONFIGURATION_ERROR

    @pytest.mark.anyio
    async def test_malformed_pattern_blocks(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="pattern",
            trigger_conditions={"predicate": {"op": "regex", "field": "note"}},
            action_type="notify",
            escalate_to_role_code="finance_manager",
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {"note": "x"})

        assert outcome.reason == REASON_CONFIGURATION_ERROR


class TestCounting:
    @pytest.mark.anyio
    async def test_counter_increments_once_per_evaluation(self, session, setup):
        engine, admin = setup
        for priority in (1, 2):
            await add_rule(
                session,
                **REFUND,
                trigger_type="count",
                trigger_conditions={"count_per_day": 5},
                action_type="notify",
                escalate_to_role_code="finance_manager",
                priority=priority,
            )

        await engine.evaluate(admin.id, "orders", "refund", {}, now=NOON)
        await engine.evaluate(admin.id, "orders", "refund", {}, now=NOON)

        count = await ActionCounterRepository(session).get_count(
            admin.id, "orders", "refund", date(2026, 10, 18)
        )
        assert count == 2

    @pytest.mark.anyio
    async def test_count_triggers_after_limit(self, session, setup):
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="count",
            trigger_conditions={"count_per_day": 2},
            action_type="require_approval",
            escalate_to_role_code="finance_manager",
        )

        kinds = [
            (await engine.evaluate(admin.id, "orders", "refund", {}, now=NOON)).kind
            for _ in range(3)
        ]

        assert kinds == [OutcomeKind.PROCEED, OutcomeKind.PROCEED, OutcomeKind.REQUIRE_APPROVAL]

    @pytest.mark.anyio
    async def test_context_timestamp_does_not_pick_the_counter_day(self, session, setup):
        """A caller cannot reach a fresh counter by sending other dates."""
        engine, admin = setup
        await add_rule(
            session,
            **REFUND,
            trigger_type="count",
            trigger_conditions={"count_per_day": 1},
            action_type="block",
            escalate_to_role_code="finance_manager",
        )

        kinds = [
            (
                await engine.evaluate(
                    admin.id, "orders", "refund", {"timestamp": f"2020-01-0{day}T12:00:00+00:00"}, now=NOON
                )
            ).kind
            for day in (1, 2, 3, 4)
        ]

        assert kinds == [OutcomeKind.PROCEED, OutcomeKind.BLOCK, OutcomeKind.BLOCK, OutcomeKind.BLOCK]
        repo = ActionCounterRepository(session)
        assert await repo.get_count(admin.id, "orders", "refund", date(2026, 10, 18)) == 4
        assert await repo.get_count(admin.id, "orders", "refund", date(2020, 1, 1)) == 0

    @pytest.mark.anyio
    async def test_day_follows_policy_timezone(self, session, setup):
        _, admin = setup
        engine = EscalationEngine(session, tz=timezone(timedelta(hours=3)))

        await engine.evaluate(
            admin.id, "orders", "refund", {}, now=datetime(2026, 10, 18, 22, 30, tzinfo=timezone.utc)
        )

        repo = ActionCounterRepository(session)
        assert await repo.get_count(admin.id, "orders", "refund", date(2026, 10, 19)) == 1
        assert await repo.get_count(admin.id, "orders", "refund", date(2026, 10, 18)) == 0

    @pytest.mark.anyio
    async def test_actions_before_a_count_rule_exists_are_counted(self, session, setup):
        engine, admin = setup
        await engine.evaluate(admin.id, "orders", "refund", {}, now=NOON)
        await engine.evaluate(admin.id, "orders", "refund", {}, now=NOON)
        await add_rule(
            session,
            **REFUND,
            trigger_type="count",
            trigger_conditions={"count_per_day": 2},
            action_type="notify",
            escalate_to_role_code="finance_manager",
        )

        outcome = await engine.evaluate(admin.id, "orders", "refund", {}, now=NOON)

        assert outcome.kind is OutcomeKind.NOTIFY

    @pytest.mark.anyio
    async def test_unsupported_dialect_blocks(self, setup, caplog):
        engine, admin = setup
        mysql_session = MagicMock()
        mysql_session.get_bind.return_value.dialect.name = "mysql"
        engine.counter_repo = ActionCounterRepository(mysql_session)

        with caplog.at_level("ERROR"):
            outcome = await engine.evaluate(admin.id, "orders", "refund", {}, now=NOON)

        assert outcome.kind is OutcomeKind.BLOCK
        assert outcome.reason == REASON_CONFIGURATION_ERROR
        assert "Atomic counters are not supported on 'mysql'" in caplog.text
