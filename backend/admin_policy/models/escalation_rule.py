import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class EscalationRule(Base):
    __tablename__ = "escalation_rules"
    __table_args__ = (
        CheckConstraint(
            "trigger_type IN ('threshold', 'count', 'time', 'pattern')",
            name="valid_trigger_type",
        ),
        CheckConstraint(
            "action_type IN ('require_approval', 'notify', 'block')",
            name="valid_escalation_action_type",
        ),
        # Exactly one escalation target.
        CheckConstraint(
            "(escalate_to_role_code IS NULL) <> (escalate_to_admin_id IS NULL)",
            name="single_escalation_target",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    trigger_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    trigger_conditions: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    # Targets are plain references; a dangling target blocks at evaluation.
    escalate_to_role_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    escalate_to_admin_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
