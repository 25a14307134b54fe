"""Tests for the administration services: catalog, roles, admins, rules."""
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from admin_policy.domain.invariants import InvariantViolation
from admin_policy.errors import ConflictError, NotFoundError, ValidationError
from admin_policy.models import AuditLog
from admin_policy.models.base import utcnow
from admin_policy.policy.catalog import Severity
from admin_policy.policy.triggers import EscalationAction, TriggerType
from admin_policy.schemas.admin import AdminUserCreate, OverrideUpsert, RoleBindingCreate
from admin_policy.schemas.escalation_rule import EscalationRuleCreate, EscalationRuleUpdate
from admin_policy.schemas.permission import PermissionCreate, PermissionUpdate
from admin_policy.schemas.role import RoleCreate, RoleDuplicate, RoleUpdate
from admin_policy.services.admin import (
    AdminAccessService,
    CatalogService,
    EscalationRuleService,
    PermissionResolver,
    RoleService,
)
from tests.policy_helpers import add_admin, add_permissions, add_role, add_rule, bind


class TestCatalogService:
    @pytest.mark.anyio
    async def test_create_permission_derives_code_and_severity(self, session):
        permission = await CatalogService(session).create_permission(
            PermissionCreate(resource="finance", action="refund", display_name="Refund")
        )

        assert permission.code == "finance.refund"
        assert permission.severity == Severity.CRITICAL.value

    @pytest.mark.anyio
    async def test_unknown_resource_is_rejected(self, session):
        with pytest.raises(ValidationError):
            await CatalogService(session).create_permission(
                PermissionCreate(resource="spaceships", action="view", display_name="x")
            )

    @pytest.mark.anyio
    async def test_duplicate_is_conflict(self, session):
        service = CatalogService(session)
        data = PermissionCreate(resource="orders", action="view", display_name="View orders")
        await service.create_permission(data)

        with pytest.raises(ConflictError):
            await service.create_permission(data)

    @pytest.mark.anyio
    async def test_update_is_audited(self, session):
        service = CatalogService(session)
        await service.create_permission(
            PermissionCreate(resource="orders", action="view", display_name="View orders")
        )

        await service.update_permission("orders.view", PermissionUpdate(severity=Severity.MEDIUM))

        result = await session.execute(select(AuditLog).where(AuditLog.action == "permission.update"))
        entry = result.scalar_one()
        assert entry.before["severity"] == "low"
        assert entry.after["severity"] == "medium"

    @pytest.mark.anyio
    async def test_referenced_permission_cannot_be_deleted(self, session):
        service = CatalogService(session)
        await service.create_permission(
            PermissionCreate(resource="orders", action="view", display_name="View orders")
        )
        await add_role(session, "viewer", ["orders.view"])
        await session.commit()

        with pytest.raises(ConflictError):
            await service.delete_permission("orders.view")

    @pytest.mark.anyio
    async def test_unreferenced_permission_is_deleted(self, session):
        service = CatalogService(session)
        await service.create_permission(
            PermissionCreate(resource="orders", action="view", display_name="View orders")
        )

        await service.delete_permission("orders.view")

        with pytest.raises(NotFoundError):
            await service.get_permission("orders.view")


class TestRoleService:
    @pytest.mark.anyio
    async def test_create_and_update_bundle(self, session):
        await add_permissions(session, "orders.view", "orders.update", "support.view")
        service = RoleService(session)

        created = await service.create_role(
            RoleCreate(code="ops", name="Ops", permission_codes={"orders.view"})
        )
        updated = await service.update_role(
            "ops", RoleUpdate(permission_codes={"orders.update", "support.view"})
        )

        assert created["permission_codes"] == ["orders.view"]
        assert updated["permission_codes"] == ["orders.update", "support.view"]

    @pytest.mark.anyio
    async def test_unknown_codes_are_rejected(self, session):
        with pytest.raises(ValidationError) as exc_info:
            await RoleService(session).create_role(
                RoleCreate(code="ops", name="Ops", permission_codes={"orders.fly"})
            )
        assert exc_info.value.details == {"missing": ["orders.fly"]}

    @pytest.mark.anyio
    async def test_duplicate_copies_bundle(self, session):
        await add_permissions(session, "orders.view")
        await add_role(session, "ops", ["orders.view"])
        await session.commit()

        copy = await RoleService(session).duplicate_role("ops", RoleDuplicate(code="ops_night", name="Ops night"))

        assert copy["code"] == "ops_night"
        assert copy["permission_codes"] == ["orders.view"]

    @pytest.mark.anyio
    async def test_bound_role_cannot_be_deleted(self, session):
        await add_role(session, "ops")
        admin = await add_admin(session)
        await bind(session, admin, "ops")
        await session.commit()

        with pytest.raises(ConflictError):
            await RoleService(session).delete_role("ops")

    @pytest.mark.anyio
    async def test_rule_target_role_cannot_be_deleted(self, session):
        await add_permissions(session, "orders.refund")
        await add_role(session, "reviewers")
        await add_rule(
            session,
            resource_code="orders",
            action_code="refund",
            trigger_type="threshold",
            trigger_conditions={"amount": 1},
            action_type="notify",
            escalate_to_role_code="reviewers",
        )
        await session.commit()

        with pytest.raises(ConflictError):
            await RoleService(session).delete_role("reviewers")


class TestAdminAccessService:
    @pytest.mark.anyio
    async def test_create_admin_normalizes_email(self, session):
        service = AdminAccessService(session)

        admin = await service.create_admin(AdminUserCreate(email="Ops@Example.com", display_name="Ops"))

        assert admin.email == "ops@example.com"
        with pytest.raises(ConflictError):
            await service.create_admin(AdminUserCreate(email="ops@example.com", display_name="Again"))

    @pytest.mark.anyio
    async def test_first_binding_is_primary(self, session):
        await add_role(session, "ops")
        await add_role(session, "finance")
        admin = await add_admin(session)
        await session.commit()
        service = AdminAccessService(session)

        first = await service.add_binding(admin.id, RoleBindingCreate(role_code="ops"))
        second = await service.add_binding(admin.id, RoleBindingCreate(role_code="finance"))

        assert first.is_primary
        assert not second.is_primary

    @pytest.mark.anyio
    async def test_new_primary_clears_previous(self, session):
        await add_role(session, "ops")
        await add_role(session, "finance")
        admin = await add_admin(session)
        await session.commit()
        service = AdminAccessService(session)
        await service.add_binding(admin.id, RoleBindingCreate(role_code="ops"))

        await service.add_binding(admin.id, RoleBindingCreate(role_code="finance", is_primary=True))

        primaries = [b.role_code for b in await service.list_bindings(admin.id) if b.is_primary]
        assert primaries == ["finance"]

    @pytest.mark.anyio
    async def test_set_primary(self, session):
        await add_role(session, "ops")
        await add_role(session, "finance")
        admin = await add_admin(session)
        await session.commit()
        service = AdminAccessService(session)
        await service.add_binding(admin.id, RoleBindingCreate(role_code="ops"))
        await service.add_binding(admin.id, RoleBindingCreate(role_code="finance"))

        await service.set_primary(admin.id, "finance")

        primaries = [b.role_code for b in await service.list_bindings(admin.id) if b.is_primary]
        assert primaries == ["finance"]

    @pytest.mark.anyio
    async def test_removing_primary_promotes_oldest_remaining(self, session):
        for code in ("ops", "finance", "support"):
            await add_role(session, code)
        admin = await add_admin(session)
        await session.commit()
        service = AdminAccessService(session)
        for code in ("ops", "finance", "support"):
            await service.add_binding(admin.id, RoleBindingCreate(role_code=code))

        await service.remove_binding(admin.id, "ops")

        bindings = await service.list_bindings(admin.id)
        assert [(b.role_code, b.is_primary) for b in bindings] == [
            ("finance", True),
            ("support", False),
        ]

    @pytest.mark.anyio
    async def test_removing_primary_skips_expired_bindings(self, session):
        for code in ("ops", "finance", "support"):
            await add_role(session, code)
        admin = await add_admin(session)
        now = utcnow()
        ops = await bind(session, admin, "ops", is_primary=True)
        lapsed = await bind(session, admin, "finance", expires_at=now - timedelta(hours=1))
        support = await bind(session, admin, "support")
        ops.assigned_at = now - timedelta(days=3)
        lapsed.assigned_at = now - timedelta(days=2)
        support.assigned_at = now - timedelta(days=1)
        await session.commit()
        service = AdminAccessService(session)

        await service.remove_binding(admin.id, "ops")

        bindings = await service.list_bindings(admin.id)
        assert [(b.role_code, b.is_primary) for b in bindings] == [
            ("finance", False),
            ("support", True),
        ]

    @pytest.mark.anyio
    async def test_duplicate_binding_is_invariant_violation(self, session):
        await add_role(session, "ops")
        admin = await add_admin(session)
        await session.commit()
        service = AdminAccessService(session)
        await service.add_binding(admin.id, RoleBindingCreate(role_code="ops"))

        with pytest.raises(InvariantViolation):
            await service.add_binding(admin.id, RoleBindingCreate(role_code="ops"))

    @pytest.mark.anyio
    async def test_binding_unknown_role(self, session):
        admin = await add_admin(session)
        await session.commit()

        with pytest.raises(ValidationError):
            await AdminAccessService(session).add_binding(admin.id, RoleBindingCreate(role_code="ghost"))

    @pytest.mark.anyio
    async def test_override_write_replaces_previous(self, session):
        await add_permissions(session, "orders.refund")
        await add_role(session, "support_agent", ["orders.refund"])
        admin = await add_admin(session)
        await bind(session, admin, "support_agent")
        await session.commit()
        service = AdminAccessService(session)

        await service.put_override(
            admin.id, "orders.refund", OverrideUpsert(grant_type="grant", constraints={"amount_limit": 50})
        )
        await service.put_override(admin.id, "orders.refund", OverrideUpsert(grant_type="deny"))

        overrides = await service.list_overrides(admin.id)
        assert [(o.permission_code, o.grant_type) for o in overrides] == [("orders.refund", "deny")]
        assert not (await PermissionResolver(session).resolve(admin.id, "orders.refund")).allowed

    @pytest.mark.anyio
    async def test_override_with_bad_constraints_is_rejected(self, session):
        await add_permissions(session, "orders.refund")
        admin = await add_admin(session)
        await session.commit()

        with pytest.raises(ValidationError):
            await AdminAccessService(session).put_override(
                admin.id,
                "orders.refund",
                OverrideUpsert(grant_type="grant", constraints={"unheard_of": 1}),
            )

    @pytest.mark.anyio
    async def test_revoke_override(self, session):
        await add_permissions(session, "orders.refund")
        admin = await add_admin(session)
        await session.commit()
        service = AdminAccessService(session)
        await service.put_override(admin.id, "orders.refund", OverrideUpsert(grant_type="grant"))

        await service.revoke_override(admin.id, "orders.refund")

        assert await service.list_overrides(admin.id) == []
        with pytest.raises(NotFoundError):
            await service.revoke_override(admin.id, "orders.refund")

    @pytest.mark.anyio
    async def test_deactivation_is_audited(self, session):
        admin = await add_admin(session)
        await session.commit()

        await AdminAccessService(session).set_active(admin.id, False)

        result = await session.execute(
            select(AuditLog).where(AuditLog.action == "admin_user.deactivate")
        )
        assert result.scalar_one().after["is_active"] is False


class TestEscalationRuleService:
    def rule_data(self, **overrides) -> EscalationRuleCreate:
        values = {
            "name": "Large refunds",
            "trigger_type": TriggerType.THRESHOLD,
            "resource_code": "orders",
            "action_code": "refund",
            "trigger_conditions": {"amount": 500},
            "escalate_to_role_code": "finance_manager",
            "action_type": EscalationAction.REQUIRE_APPROVAL,
        }
        values.update(overrides)
        return EscalationRuleCreate(**values)

    @pytest.fixture
    async def catalog(self, session):
        await add_permissions(session, "orders.refund")
        await add_role(session, "finance_manager")
        await session.commit()

    @pytest.mark.anyio
    async def test_create_rule(self, session, catalog):
        rule = await EscalationRuleService(session).create_rule(self.rule_data())

        assert rule.trigger_type == "threshold"
        assert rule.action_type == "require_approval"

    @pytest.mark.anyio
    async def test_missing_trigger_key_is_rejected(self, session, catalog):
        with pytest.raises(ValidationError):
            await EscalationRuleService(session).create_rule(self.rule_data(trigger_conditions={}))

    @pytest.mark.anyio
    async def test_unknown_target_role_is_rejected(self, session, catalog):
        with pytest.raises(ValidationError):
            await EscalationRuleService(session).create_rule(
                self.rule_data(escalate_to_role_code="nobody")
            )

    @pytest.mark.anyio
    async def test_unknown_permission_is_rejected(self, session, catalog):
        with pytest.raises(ValidationError):
            await EscalationRuleService(session).create_rule(self.rule_data(action_code="teleport"))

    def test_two_targets_are_rejected_by_schema(self) -> None:
        with pytest.raises(ValueError):
            self.rule_data(escalate_to_admin_id=uuid.uuid4())

    @pytest.mark.anyio
    async def test_update_switches_target(self, session, catalog):
        approver = await add_admin(session)
        await session.commit()
        service = EscalationRuleService(session)
        rule = await service.create_rule(self.rule_data())

        updated = await service.update_rule(
            rule.id, EscalationRuleUpdate(escalate_to_admin_id=approver.id, priority=5)
        )

        assert updated.escalate_to_role_code is None
        assert updated.escalate_to_admin_id == approver.id
        assert updated.priority == 5

    @pytest.mark.anyio
    async def test_delete_rule(self, session, catalog):
        service = EscalationRuleService(session)
        rule = await service.create_rule(self.rule_data())

        await service.delete_rule(rule.id)

        with pytest.raises(NotFoundError):
            await service.get_rule(rule.id)
