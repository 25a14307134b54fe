import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.admin_user import AdminUser


class AdminUserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, email: str, display_name: str, is_active: bool = True) -> AdminUser:
        admin = AdminUser(email=email, display_name=display_name, is_active=is_active)
        self.session.add(admin)
        await self.session.flush()
        return admin

    async def get_by_id(self, admin_id: uuid.UUID) -> AdminUser | None:
        return await self.session.get(AdminUser, admin_id)

    async def get_by_email(self, email: str) -> AdminUser | None:
        result = await self.session.execute(
            select(AdminUser).where(AdminUser.email == email)
        )
        return result.scalar_one_or_none()

    async def list_all(self, include_inactive: bool = True) -> list[AdminUser]:
        query = select(AdminUser)
        if not include_inactive:
            query = query.where(AdminUser.is_active)
        result = await self.session.execute(query.order_by(AdminUser.email))
        return list(result.scalars().all())

    async def update(self, admin: AdminUser) -> AdminUser:
        await self.session.flush()
        return admin
