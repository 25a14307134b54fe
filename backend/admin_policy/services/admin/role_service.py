"""Administration of roles and their permission bundles."""
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ...crud.permission import PermissionRepository
from ...crud.role import RoleRepository
from ...errors import ConflictError, NotFoundError, ValidationError
from ...models.role import Role
from ...schemas.role import RoleCreate, RoleDuplicate, RoleUpdate
from ..audit import AuditService


def role_view(role: Role, permission_codes: set[str]) -> dict:
    return {
        "id": role.id,
        "code": role.code,
        "name": role.name,
        "description": role.description,
        "is_system": role.is_system,
        "is_active": role.is_active,
        "permission_codes": sorted(permission_codes),
        "created_at": role.created_at,
        "updated_at": role.updated_at,
    }


def role_snapshot(role: Role, permission_codes: set[str]) -> dict:
    return {
        "code": role.code,
        "name": role.name,
        "description": role.description,
        "is_active": role.is_active,
        "permission_codes": sorted(permission_codes),
    }


class RoleService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.role_repo = RoleRepository(session)
        self.permission_repo = PermissionRepository(session)
        self.audit_service = AuditService(session)

    async def _require_known_codes(self, codes: set[str]) -> None:
        missing = codes - await self.permission_repo.existing_codes(codes)
        if missing:
            raise ValidationError(
                "Unknown permission codes",
                details={"missing": sorted(missing)},
            )

    async def _get(self, code: str) -> Role:
        role = await self.role_repo.get_by_code(code)
        if role is None:
            raise NotFoundError(f"Role '{code}' not found")
        return role

    async def create_role(self, data: RoleCreate, actor_id: uuid.UUID | None = None) -> dict:
        if await self.role_repo.get_by_code(data.code) is not None:
            raise ConflictError(f"Role '{data.code}' already exists")
        await self._require_known_codes(data.permission_codes)

        role = await self.role_repo.create(
            code=data.code,
            name=data.name,
            description=data.description,
            is_active=data.is_active,
        )
        await self.role_repo.replace_permissions(role.code, data.permission_codes)
        await self.audit_service.log_create(
            "role", role.code, role_snapshot(role, data.permission_codes), actor_id=actor_id
        )
        await self.session.commit()
        return role_view(role, data.permission_codes)

    async def list_roles(self, include_inactive: bool = True) -> list[dict]:
        roles = await self.role_repo.list_all(include_inactive=include_inactive)
        codes = await self.role_repo.get_permission_codes_for_roles({r.code for r in roles})
        return [role_view(role, codes.get(role.code, set())) for role in roles]

    async def get_role(self, code: str) -> dict:
        role = await self._get(code)
        return role_view(role, await self.role_repo.get_permission_codes(code))

    async def update_role(
        self, code: str, data: RoleUpdate, actor_id: uuid.UUID | None = None
    ) -> dict:
        role = await self._get(code)
        current_codes = await self.role_repo.get_permission_codes(code)
        before = role_snapshot(role, current_codes)

        if data.name is not None:
            role.name = data.name
        if data.description is not None:
            role.description = data.description
        if data.is_active is not None:
            role.is_active = data.is_active
        if data.permission_codes is not None:
            await self._require_known_codes(data.permission_codes)
            await self.role_repo.replace_permissions(code, data.permission_codes)
            current_codes = set(data.permission_codes)
        await self.role_repo.update(role)

        await self.audit_service.log_update(
            "role", code, before, role_snapshot(role, current_codes), actor_id=actor_id
        )
        await self.session.commit()
        await self.session.refresh(role)
        return role_view(role, current_codes)

    async def duplicate_role(
        self, code: str, data: RoleDuplicate, actor_id: uuid.UUID | None = None
    ) -> dict:
        source = await self._get(code)
        codes = await self.role_repo.get_permission_codes(code)
        return await self.create_role(
            RoleCreate(
                code=data.code,
                name=data.name,
                description=source.description,
                permission_codes=codes,
                is_active=source.is_active,
            ),
            actor_id=actor_id,
        )

    async def delete_role(self, code: str, actor_id: uuid.UUID | None = None) -> None:
        role = await self._get(code)
        if role.is_system:
            raise ConflictError(f"System role '{code}' cannot be deleted")
        if await self.role_repo.count_bindings(code):
            raise ConflictError(f"Role '{code}' is still assigned to administrators")
        if await self.role_repo.count_rule_targets(code):
            raise ConflictError(f"Role '{code}' is still an escalation target")

        before = role_snapshot(role, await self.role_repo.get_permission_codes(code))
        await self.role_repo.delete(role)
        await self.audit_service.log_delete("role", code, before, actor_id=actor_id)
        await self.session.commit()
