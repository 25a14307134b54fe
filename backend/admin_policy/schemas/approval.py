import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ApprovalDecision(BaseModel):
    notes: str | None = Field(None, max_length=2000)


class ApprovalExpireStale(BaseModel):
    older_than: datetime


class ApprovalRequestResponse(BaseModel):
    id: uuid.UUID
    rule_id: uuid.UUID | None
    admin_id: uuid.UUID
    resource_code: str
    action_code: str
    context_snapshot: dict[str, Any]
    escalate_to_role_code: str | None
    escalate_to_admin_id: uuid.UUID | None
    status: str
    created_at: datetime
    resolved_at: datetime | None
    resolved_by: uuid.UUID | None
    decision_notes: str | None

    class Config:
        from_attributes = True
