import uuid
from typing import Any

from pydantic import BaseModel, Field

from ..policy.decisions import Decision, OutcomeKind


class ActionRequest(BaseModel):
    resource_code: str = Field(..., min_length=1, max_length=50)
    action_code: str = Field(..., min_length=1, max_length=50)
    context: dict[str, Any] | None = None


class AuthorizeResponse(BaseModel):
    decision: Decision
    constraints: dict[str, Any]
    reason: str | None = None
    requires_approval: bool = False


class EscalationTargetResponse(BaseModel):
    role_code: str | None = None
    admin_id: uuid.UUID | None = None


class EscalationOutcomeResponse(BaseModel):
    kind: OutcomeKind
    may_proceed: bool
    rule_id: uuid.UUID | None = None
    target: EscalationTargetResponse | None = None
    request_id: uuid.UUID | None = None
    reason: str | None = None
