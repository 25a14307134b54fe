import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import as_utc
from ..models.permission_override import DirectPermissionOverride


class PermissionOverrideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self, admin_id: uuid.UUID, permission_code: str
    ) -> DirectPermissionOverride | None:
        result = await self.session.execute(
            select(DirectPermissionOverride).where(
                DirectPermissionOverride.admin_id == admin_id,
                DirectPermissionOverride.permission_code == permission_code,
            )
        )
        return result.scalar_one_or_none()

    async def count_for_pair(self, admin_id: uuid.UUID, permission_code: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(DirectPermissionOverride)
            .where(
                DirectPermissionOverride.admin_id == admin_id,
                DirectPermissionOverride.permission_code == permission_code,
            )
        )
        return int(result.scalar_one())

    async def list_for_admin(self, admin_id: uuid.UUID) -> list[DirectPermissionOverride]:
        result = await self.session.execute(
            select(DirectPermissionOverride)
            .where(DirectPermissionOverride.admin_id == admin_id)
            .order_by(DirectPermissionOverride.permission_code)
        )
        return list(result.scalars().all())

    async def list_active_for_admin(
        self, admin_id: uuid.UUID, now: datetime
    ) -> list[DirectPermissionOverride]:
        overrides = await self.list_for_admin(admin_id)
        return [
            o for o in overrides
            if o.expires_at is None or as_utc(o.expires_at) > now
        ]

    async def upsert(
        self,
        admin_id: uuid.UUID,
        permission_code: str,
        *,
        grant_type: str,
        constraints: dict[str, Any],
        reason: str | None,
        granted_by: uuid.UUID | None,
        expires_at: datetime | None,
    ) -> DirectPermissionOverride:
        """Write the single override for the pair, replacing any previous one."""
        override = await self.get(admin_id, permission_code)
        if override is None:
            override = DirectPermissionOverride(
                admin_id=admin_id, permission_code=permission_code
            )
            self.session.add(override)
        override.grant_type = grant_type
        override.constraints = constraints
        override.reason = reason
        override.granted_by = granted_by
        override.expires_at = expires_at
        await self.session.flush()
        return override

    async def delete(self, override: DirectPermissionOverride) -> None:
        await self.session.delete(override)
        await self.session.flush()
