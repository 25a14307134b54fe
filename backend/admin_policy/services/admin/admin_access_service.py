"""
Administrator accounts, role bindings and direct permission overrides.

Binding rules:
- one binding per (admin, role)
- the first binding an admin receives is primary
- at most one primary binding per admin; reassigning clears the old flag
  (flushed) before setting the new one, inside one transaction
- removing the primary promotes the oldest unexpired binding

Override rules:
- one override per (admin, permission); a later write replaces it
"""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ...crud.admin_role_binding import AdminRoleBindingRepository, is_current
from ...crud.admin_user import AdminUserRepository
from ...crud.permission import PermissionRepository
from ...crud.permission_override import PermissionOverrideRepository
from ...crud.role import RoleRepository
from ...domain.invariants import (
    validate_single_primary,
    validate_unique_override,
    validate_unique_role_binding,
)
from ...errors import ConfigurationError, ConflictError, NotFoundError, ValidationError
from ...models.admin_role_binding import AdminRoleBinding
from ...models.admin_user import AdminUser
from ...models.base import utcnow
from ...models.permission_override import DirectPermissionOverride
from ...policy.constraints import parse_constraints
from ...schemas.admin import AdminUserCreate, OverrideUpsert, RoleBindingCreate
from ..audit import AuditService

logger = logging.getLogger(__name__)


def admin_snapshot(admin: AdminUser) -> dict:
    return {
        "email": admin.email,
        "display_name": admin.display_name,
        "is_active": admin.is_active,
    }


def binding_snapshot(binding: AdminRoleBinding) -> dict:
    return {
        "role_code": binding.role_code,
        "is_primary": binding.is_primary,
        "expires_at": binding.expires_at.isoformat() if binding.expires_at else None,
    }


def override_snapshot(override: DirectPermissionOverride) -> dict:
    return {
        "permission_code": override.permission_code,
        "grant_type": override.grant_type,
        "constraints": override.constraints,
        "reason": override.reason,
        "expires_at": override.expires_at.isoformat() if override.expires_at else None,
    }


class AdminAccessService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.admin_repo = AdminUserRepository(session)
        self.binding_repo = AdminRoleBindingRepository(session)
        self.override_repo = PermissionOverrideRepository(session)
        self.permission_repo = PermissionRepository(session)
        self.role_repo = RoleRepository(session)
        self.audit_service = AuditService(session)

    # Accounts

    async def create_admin(
        self, data: AdminUserCreate, actor_id: uuid.UUID | None = None
    ) -> AdminUser:
        email = data.email.strip().lower()
        if await self.admin_repo.get_by_email(email) is not None:
            raise ConflictError(f"Admin '{email}' already exists")
        admin = await self.admin_repo.create(
            email=email, display_name=data.display_name, is_active=data.is_active
        )
        await self.audit_service.log_create(
            "admin_user", admin.id, admin_snapshot(admin), actor_id=actor_id
        )
        await self.session.commit()
        return admin

    async def list_admins(self, include_inactive: bool = True) -> list[AdminUser]:
        return await self.admin_repo.list_all(include_inactive=include_inactive)

    async def get_admin(self, admin_id: uuid.UUID) -> AdminUser:
        admin = await self.admin_repo.get_by_id(admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        return admin

    async def set_active(
        self, admin_id: uuid.UUID, is_active: bool, actor_id: uuid.UUID | None = None
    ) -> AdminUser:
        admin = await self.get_admin(admin_id)
        before = admin_snapshot(admin)
        admin.is_active = is_active
        await self.admin_repo.update(admin)
        await self.audit_service.log(
            action="admin_user.activate" if is_active else "admin_user.deactivate",
            entity_type="admin_user",
            entity_id=admin.id,
            actor_id=actor_id,
            before=before,
            after=admin_snapshot(admin),
        )
        await self.session.commit()
        return admin

    # Role bindings

    async def list_bindings(self, admin_id: uuid.UUID) -> list[AdminRoleBinding]:
        await self.get_admin(admin_id)
        return await self.binding_repo.list_for_admin(admin_id)

    async def add_binding(
        self,
        admin_id: uuid.UUID,
        data: RoleBindingCreate,
        actor_id: uuid.UUID | None = None,
    ) -> AdminRoleBinding:
        await self.get_admin(admin_id)
        if await self.role_repo.get_by_code(data.role_code) is None:
            raise ValidationError(f"Unknown role '{data.role_code}'")

        existing = await self.binding_repo.list_for_admin(admin_id)
        validate_unique_role_binding(
            any(b.role_code == data.role_code for b in existing),
            admin_id=admin_id,
            role_code=data.role_code,
        )

        make_primary = data.is_primary or not existing
        if make_primary and existing:
            await self.binding_repo.clear_primary(admin_id)
        binding = await self.binding_repo.create(
            admin_id,
            data.role_code,
            is_primary=make_primary,
            expires_at=data.expires_at,
            assigned_by=actor_id,
        )
        await self._check_single_primary(admin_id)

        await self.audit_service.log(
            action="role_binding.create",
            entity_type="admin_user",
            entity_id=admin_id,
            actor_id=actor_id,
            after=binding_snapshot(binding),
        )
        await self.session.commit()
        return binding

    async def remove_binding(
        self, admin_id: uuid.UUID, role_code: str, actor_id: uuid.UUID | None = None
    ) -> None:
        binding = await self.binding_repo.get(admin_id, role_code)
        if binding is None:
            raise NotFoundError(f"Admin does not hold role '{role_code}'")
        before = binding_snapshot(binding)
        was_primary = binding.is_primary
        await self.binding_repo.delete(binding)

        if was_primary:
            now = utcnow()
            remaining = [
                b for b in await self.binding_repo.list_for_admin(admin_id) if is_current(b, now)
            ]
            if remaining:
                # Oldest unexpired binding takes over.
                remaining[0].is_primary = True
                await self.binding_repo.update(remaining[0])
                logger.info(
                    "primary_role_promoted admin_id=%s role_code=%s",
                    admin_id,
                    remaining[0].role_code,
                )

        await self.audit_service.log(
            action="role_binding.delete",
            entity_type="admin_user",
            entity_id=admin_id,
            actor_id=actor_id,
            before=before,
        )
        await self.session.commit()

    async def set_primary(
        self, admin_id: uuid.UUID, role_code: str, actor_id: uuid.UUID | None = None
    ) -> AdminRoleBinding:
        binding = await self.binding_repo.get(admin_id, role_code)
        if binding is None:
            raise NotFoundError(f"Admin does not hold role '{role_code}'")
        if not binding.is_primary:
            await self.binding_repo.clear_primary(admin_id)
            binding.is_primary = True
            await self.binding_repo.update(binding)
        await self._check_single_primary(admin_id)

        await self.audit_service.log(
            action="role_binding.set_primary",
            entity_type="admin_user",
            entity_id=admin_id,
            actor_id=actor_id,
            after=binding_snapshot(binding),
        )
        await self.session.commit()
        return binding

    async def _check_single_primary(self, admin_id: uuid.UUID) -> None:
        bindings = await self.binding_repo.list_for_admin(admin_id)
        validate_single_primary(
            [b.role_code for b in bindings if b.is_primary], admin_id=admin_id
        )

    # Direct overrides

    async def list_overrides(self, admin_id: uuid.UUID) -> list[DirectPermissionOverride]:
        await self.get_admin(admin_id)
        return await self.override_repo.list_for_admin(admin_id)

    async def put_override(
        self,
        admin_id: uuid.UUID,
        permission_code: str,
        data: OverrideUpsert,
        actor_id: uuid.UUID | None = None,
    ) -> DirectPermissionOverride:
        await self.get_admin(admin_id)
        if await self.permission_repo.get_by_code(permission_code) is None:
            raise ValidationError(f"Unknown permission '{permission_code}'")
        try:
            constraints = parse_constraints(data.constraints).to_dict()
        except ConfigurationError as exc:
            raise ValidationError(exc.message, details=exc.details) from exc

        validate_unique_override(
            await self.override_repo.count_for_pair(admin_id, permission_code),
            admin_id=admin_id,
            permission_code=permission_code,
        )
        previous = await self.override_repo.get(admin_id, permission_code)
        before = override_snapshot(previous) if previous is not None else None

        override = await self.override_repo.upsert(
            admin_id,
            permission_code,
            grant_type=data.grant_type,
            constraints=constraints,
            reason=data.reason,
            granted_by=actor_id,
            expires_at=data.expires_at,
        )
        await self.audit_service.log(
            action=f"permission_override.{data.grant_type}",
            entity_type="admin_user",
            entity_id=admin_id,
            actor_id=actor_id,
            before=before,
            after=override_snapshot(override),
            reason=data.reason,
        )
        await self.session.commit()
        return override

    async def revoke_override(
        self, admin_id: uuid.UUID, permission_code: str, actor_id: uuid.UUID | None = None
    ) -> None:
        override = await self.override_repo.get(admin_id, permission_code)
        if override is None:
            raise NotFoundError(f"No override for '{permission_code}'")
        before = override_snapshot(override)
        await self.override_repo.delete(override)
        await self.audit_service.log(
            action="permission_override.revoke",
            entity_type="admin_user",
            entity_id=admin_id,
            actor_id=actor_id,
            before=before,
        )
        await self.session.commit()
