"""Administration of the permission catalog rows."""
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ...crud.permission import PermissionRepository
from ...domain.invariants import validate_permission_code
from ...errors import ConflictError, NotFoundError, ValidationError
from ...models.permission import Permission
from ...policy import catalog
from ...schemas.permission import PermissionCreate, PermissionUpdate
from ..audit import AuditService


def permission_snapshot(permission: Permission) -> dict:
    return {
        "code": permission.code,
        "resource": permission.resource,
        "action": permission.action,
        "severity": permission.severity,
        "display_name": permission.display_name,
        "description": permission.description,
        "is_system": permission.is_system,
    }


class CatalogService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.permission_repo = PermissionRepository(session)
        self.audit_service = AuditService(session)

    async def create_permission(
        self, data: PermissionCreate, actor_id: uuid.UUID | None = None
    ) -> Permission:
        try:
            catalog.validate_resource(data.resource)
            catalog.validate_action(data.action)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        code = catalog.permission_code(data.resource, data.action)
        validate_permission_code(code, resource=data.resource, action=data.action)
        if await self.permission_repo.get_by_code(code) is not None:
            raise ConflictError(f"Permission '{code}' already exists")

        severity = data.severity or catalog.default_severity(data.action)
        permission = await self.permission_repo.create(
            code=code,
            resource=data.resource,
            action=data.action,
            severity=severity.value,
            display_name=data.display_name,
            description=data.description,
        )
        await self.audit_service.log_create(
            "permission", code, permission_snapshot(permission), actor_id=actor_id
        )
        await self.session.commit()
        return permission

    async def list_permissions(self, resource: str | None = None) -> list[Permission]:
        return await self.permission_repo.list_all(resource=resource)

    async def get_permission(self, code: str) -> Permission:
        permission = await self.permission_repo.get_by_code(code)
        if permission is None:
            raise NotFoundError(f"Permission '{code}' not found")
        return permission

    async def update_permission(
        self, code: str, data: PermissionUpdate, actor_id: uuid.UUID | None = None
    ) -> Permission:
        permission = await self.get_permission(code)
        before = permission_snapshot(permission)
        if data.severity is not None:
            permission.severity = data.severity.value
        if data.display_name is not None:
            permission.display_name = data.display_name
        if data.description is not None:
            permission.description = data.description
        await self.permission_repo.update(permission)
        await self.audit_service.log_update(
            "permission", code, before, permission_snapshot(permission), actor_id=actor_id
        )
        await self.session.commit()
        return permission

    async def delete_permission(self, code: str, actor_id: uuid.UUID | None = None) -> None:
        permission = await self.get_permission(code)
        if await self.permission_repo.is_referenced(permission):
            raise ConflictError(
                f"Permission '{code}' is still referenced by a role, override or escalation rule"
            )
        before = permission_snapshot(permission)
        await self.permission_repo.delete(permission)
        await self.audit_service.log_delete("permission", code, before, actor_id=actor_id)
        await self.session.commit()
