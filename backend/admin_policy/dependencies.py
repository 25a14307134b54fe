import uuid
from collections.abc import AsyncGenerator
from typing import Callable

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .crud.admin_user import AdminUserRepository
from .database import AsyncSessionLocal, get_session
from .domain.ports.events import EventPublisher
from .errors import AuthError, PermissionError
from .infrastructure.redis import RedisEventPublisher
from .models.admin_user import AdminUser
from .services.admin import AuthorizationService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def get_audit_session_factory() -> Callable[[], AsyncSession]:
    return AsyncSessionLocal


def get_event_publisher() -> EventPublisher:
    return RedisEventPublisher(settings.notification_channel)


async def get_current_admin(
    x_admin_id: str | None = Header(default=None, alias="X-Admin-Id"),
    db: AsyncSession = Depends(get_db),
) -> AdminUser:
    """The calling admin, as asserted by the upstream gateway."""
    if not x_admin_id:
        raise AuthError("Missing X-Admin-Id header")
    try:
        admin_id = uuid.UUID(x_admin_id)
    except ValueError as exc:
        raise AuthError("Malformed X-Admin-Id header") from exc

    admin = await AdminUserRepository(db).get_by_id(admin_id)
    if admin is None:
        raise AuthError("Unknown admin")
    if not admin.is_active:
        raise PermissionError("Admin account is inactive")
    return admin


def get_authorization_service(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
    audit_session_factory: Callable[[], AsyncSession] = Depends(get_audit_session_factory),
) -> AuthorizationService:
    return AuthorizationService(
        db,
        publisher=publisher,
        audit_session_factory=audit_session_factory,
    )
