import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.admin_role_binding import AdminRoleBinding
from ..models.base import as_utc
from ..models.role import Role


def is_current(binding: AdminRoleBinding, now: datetime) -> bool:
    expires_at = as_utc(binding.expires_at)
    return expires_at is None or expires_at > now


class AdminRoleBindingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        admin_id: uuid.UUID,
        role_code: str,
        *,
        is_primary: bool = False,
        expires_at: datetime | None = None,
        assigned_by: uuid.UUID | None = None,
    ) -> AdminRoleBinding:
        binding = AdminRoleBinding(
            admin_id=admin_id,
            role_code=role_code,
            is_primary=is_primary,
            expires_at=expires_at,
            assigned_by=assigned_by,
        )
        self.session.add(binding)
        await self.session.flush()
        return binding

    async def get(self, admin_id: uuid.UUID, role_code: str) -> AdminRoleBinding | None:
        result = await self.session.execute(
            select(AdminRoleBinding).where(
                AdminRoleBinding.admin_id == admin_id,
                AdminRoleBinding.role_code == role_code,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_admin(self, admin_id: uuid.UUID) -> list[AdminRoleBinding]:
        result = await self.session.execute(
            select(AdminRoleBinding)
            .where(AdminRoleBinding.admin_id == admin_id)
            .order_by(AdminRoleBinding.assigned_at, AdminRoleBinding.id)
        )
        return list(result.scalars().all())

    async def list_active_for_admin(
        self, admin_id: uuid.UUID, now: datetime
    ) -> list[tuple[AdminRoleBinding, Role]]:
        """Unexpired bindings whose role is active, oldest first."""
        result = await self.session.execute(
            select(AdminRoleBinding, Role)
            .join(Role, Role.code == AdminRoleBinding.role_code)
            .where(AdminRoleBinding.admin_id == admin_id, Role.is_active)
            .order_by(AdminRoleBinding.assigned_at, AdminRoleBinding.id)
        )
        return [(binding, role) for binding, role in result.all() if is_current(binding, now)]

    async def clear_primary(self, admin_id: uuid.UUID) -> None:
        await self.session.execute(
            update(AdminRoleBinding)
            .where(AdminRoleBinding.admin_id == admin_id, AdminRoleBinding.is_primary)
            .values(is_primary=False)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.flush()

    async def update(self, binding: AdminRoleBinding) -> AdminRoleBinding:
        await self.session.flush()
        return binding

    async def delete(self, binding: AdminRoleBinding) -> None:
        await self.session.delete(binding)
        await self.session.flush()
