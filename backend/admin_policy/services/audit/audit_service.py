import logging
import uuid
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...crud.audit_log import AuditLogRepository
from ...models.audit_log import ALLOWED_ACTOR_TYPES, AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service for appending entries to the audit trail.

    Entries written through this service join the caller's transaction. Use
    `record_isolated` for entries that must survive (or must not disturb) the
    caller's transaction, such as authorization decisions.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit_repo = AuditLogRepository(session)

    def _validate_actor_type(self, actor_type: str) -> None:
        """
        Only 'user', 'system' and 'anonymous' actors may appear in the trail.

        Raises:
            ValueError: If actor_type is invalid
        """
        if actor_type not in ALLOWED_ACTOR_TYPES:
            raise ValueError(
                f"Invalid actor_type '{actor_type}'. "
                f"Must be one of: {', '.join(sorted(ALLOWED_ACTOR_TYPES))}"
            )

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str | uuid.UUID,
        actor_id: uuid.UUID | None = None,
        actor_type: str = "user",
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> AuditLog:
        """Log an audit event.

        Args:
            action: The action performed (e.g., 'role.update')
            entity_type: The type of entity (e.g., 'role')
            entity_id: The ID or code of the entity
            actor_id: The admin performing the action (None for system/anonymous)
            actor_type: Type of actor - 'user', 'system', or 'anonymous'
            before: State before the change
            after: State after the change
            reason: Optional reason for the change

        Raises:
            ValueError: If actor_type is invalid
        """
        self._validate_actor_type(actor_type)

        return await self.audit_repo.create(
            actor_id=actor_id,
            actor_type=actor_type,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            before=before,
            after=after,
            reason=reason,
        )

    async def log_create(
        self,
        entity_type: str,
        entity_id: str | uuid.UUID,
        entity_data: dict[str, Any],
        actor_id: uuid.UUID | None = None,
        reason: str | None = None,
    ) -> None:
        """Log a create event."""
        await self.log(
            action=f"{entity_type}.create",
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            after=entity_data,
            reason=reason,
        )

    async def log_update(
        self,
        entity_type: str,
        entity_id: str | uuid.UUID,
        before_data: dict[str, Any],
        after_data: dict[str, Any],
        actor_id: uuid.UUID | None = None,
        reason: str | None = None,
    ) -> None:
        """Log an update event."""
        await self.log(
            action=f"{entity_type}.update",
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            before=before_data,
            after=after_data,
            reason=reason,
        )

    async def log_delete(
        self,
        entity_type: str,
        entity_id: str | uuid.UUID,
        entity_data: dict[str, Any],
        actor_id: uuid.UUID | None = None,
        reason: str | None = None,
    ) -> None:
        """Log a delete event."""
        await self.log(
            action=f"{entity_type}.delete",
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            before=entity_data,
            reason=reason,
        )


async def record_isolated(
    session_factory: Callable[[], AsyncSession],
    *,
    action: str,
    entity_type: str,
    entity_id: str | uuid.UUID,
    actor_id: uuid.UUID | None = None,
    actor_type: str = "user",
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    reason: str | None = None,
) -> bool:
    """Write one audit entry in its own session and transaction.

    A failed write is logged at error level and reported as False; it never
    reaches the caller's decision.
    """
    try:
        async with session_factory() as audit_session:
            await AuditService(audit_session).log(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                actor_type=actor_type,
                before=before,
                after=after,
                reason=reason,
            )
            await audit_session.commit()
    except (SQLAlchemyError, ValueError) as exc:
        logger.error(
            "audit_write_failed action=%s entity_type=%s entity_id=%s error=%s",
            action,
            entity_type,
            entity_id,
            exc,
        )
        return False
    return True
