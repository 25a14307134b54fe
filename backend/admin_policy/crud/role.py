from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.admin_role_binding import AdminRoleBinding
from ..models.escalation_rule import EscalationRule
from ..models.role import Role
from ..models.role_permission import RolePermission


class RoleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        code: str,
        name: str,
        description: str | None = None,
        is_system: bool = False,
        is_active: bool = True,
    ) -> Role:
        role = Role(
            code=code,
            name=name,
            description=description,
            is_system=is_system,
            is_active=is_active,
        )
        self.session.add(role)
        await self.session.flush()
        return role

    async def get_by_code(self, code: str) -> Role | None:
        result = await self.session.execute(select(Role).where(Role.code == code))
        return result.scalar_one_or_none()

    async def list_all(self, include_inactive: bool = False) -> list[Role]:
        query = select(Role)
        if not include_inactive:
            query = query.where(Role.is_active)
        result = await self.session.execute(query.order_by(Role.code))
        return list(result.scalars().all())

    async def update(self, role: Role) -> Role:
        await self.session.flush()
        return role

    async def delete(self, role: Role) -> None:
        await self.session.execute(
            delete(RolePermission).where(RolePermission.role_code == role.code)
        )
        await self.session.delete(role)
        await self.session.flush()

    async def get_permission_codes(self, role_code: str) -> set[str]:
        result = await self.session.execute(
            select(RolePermission.permission_code).where(
                RolePermission.role_code == role_code
            )
        )
        return set(result.scalars().all())

    async def get_permission_codes_for_roles(self, role_codes: set[str]) -> dict[str, set[str]]:
        if not role_codes:
            return {}
        result = await self.session.execute(
            select(RolePermission.role_code, RolePermission.permission_code).where(
                RolePermission.role_code.in_(role_codes)
            )
        )
        grouped: dict[str, set[str]] = {code: set() for code in role_codes}
        for role_code, permission_code in result.all():
            grouped[role_code].add(permission_code)
        return grouped

    async def replace_permissions(self, role_code: str, permission_codes: set[str]) -> None:
        """Replace the role's permission set wholesale."""
        await self.session.execute(
            delete(RolePermission).where(RolePermission.role_code == role_code)
        )
        for permission_code in sorted(permission_codes):
            self.session.add(
                RolePermission(role_code=role_code, permission_code=permission_code)
            )
        await self.session.flush()

    async def count_bindings(self, role_code: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(AdminRoleBinding)
            .where(AdminRoleBinding.role_code == role_code)
        )
        return int(result.scalar_one())

    async def count_rule_targets(self, role_code: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(EscalationRule)
            .where(EscalationRule.escalate_to_role_code == role_code)
        )
        return int(result.scalar_one())
