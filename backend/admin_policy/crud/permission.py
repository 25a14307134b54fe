from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.escalation_rule import EscalationRule
from ..models.permission import Permission
from ..models.permission_override import DirectPermissionOverride
from ..models.role_permission import RolePermission


class PermissionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        code: str,
        resource: str,
        action: str,
        severity: str,
        display_name: str,
        description: str | None = None,
        is_system: bool = False,
    ) -> Permission:
        permission = Permission(
            code=code,
            resource=resource,
            action=action,
            severity=severity,
            display_name=display_name,
            description=description,
            is_system=is_system,
        )
        self.session.add(permission)
        await self.session.flush()
        return permission

    async def get_by_code(self, code: str) -> Permission | None:
        result = await self.session.execute(
            select(Permission).where(Permission.code == code)
        )
        return result.scalar_one_or_none()

    async def list_all(self, resource: str | None = None) -> list[Permission]:
        query = select(Permission)
        if resource is not None:
            query = query.where(Permission.resource == resource)
        result = await self.session.execute(query.order_by(Permission.code))
        return list(result.scalars().all())

    async def existing_codes(self, codes: set[str]) -> set[str]:
        if not codes:
            return set()
        result = await self.session.execute(
            select(Permission.code).where(Permission.code.in_(codes))
        )
        return set(result.scalars().all())

    async def is_referenced(self, permission: Permission) -> bool:
        """True while a role, an override or an escalation rule points at the code."""
        referenced = select(
            or_(
                exists().where(RolePermission.permission_code == permission.code),
                exists().where(DirectPermissionOverride.permission_code == permission.code),
                exists().where(
                    EscalationRule.resource_code == permission.resource,
                    EscalationRule.action_code == permission.action,
                ),
            )
        )
        result = await self.session.execute(referenced)
        return bool(result.scalar())

    async def update(self, permission: Permission) -> Permission:
        await self.session.flush()
        return permission

    async def delete(self, permission: Permission) -> None:
        await self.session.delete(permission)
        await self.session.flush()
