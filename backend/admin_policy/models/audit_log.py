import uuid
from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base, utcnow

ALLOWED_ACTOR_TYPES = frozenset({"user", "system", "anonymous"})


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # No foreign key: the trail outlives the admins it mentions.
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    actor_type: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # SECURITY: Only 'user', 'system', or 'anonymous' allowed
    action: Mapped[str] = mapped_column(
        String(100), nullable=False, index=True
    )  # e.g., 'decision.authorize', 'role.update'
    entity_type: Mapped[str] = mapped_column(
        String(100), nullable=False, index=True
    )  # e.g., 'permission', 'escalation_rule'
    entity_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    before: Mapped[dict | None] = mapped_column(JSON)  # state before change
    after: Mapped[dict | None] = mapped_column(JSON)  # state after change / decision
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        CheckConstraint(
            "actor_type IN ('user', 'system', 'anonymous')",
            name="valid_actor_type"
        ),
    )

    @validates("actor_type")
    def validate_actor_type(self, key: str, value: str) -> str:
        """Reject actor types outside the allowed set at ORM level.

        Raises:
            ValueError: If actor_type is not in the allowed set
        """
        if value not in ALLOWED_ACTOR_TYPES:
            raise ValueError(
                f"Invalid actor_type '{value}'. "
                f"Must be one of: {', '.join(sorted(ALLOWED_ACTOR_TYPES))}"
            )
        return value
