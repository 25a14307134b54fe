import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ..policy.triggers import EscalationAction, TriggerType


class EscalationRuleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    trigger_type: TriggerType
    resource_code: str = Field(..., min_length=1, max_length=50)
    action_code: str = Field(..., min_length=1, max_length=50)
    trigger_conditions: dict[str, Any] = Field(default_factory=dict)
    escalate_to_role_code: str | None = Field(None, min_length=1, max_length=100)
    escalate_to_admin_id: uuid.UUID | None = None
    action_type: EscalationAction
    priority: int = 0
    is_active: bool = True


class EscalationRuleCreate(EscalationRuleBase):
    @model_validator(mode="after")
    def _single_target(self) -> "EscalationRuleCreate":
        if (self.escalate_to_role_code is None) == (self.escalate_to_admin_id is None):
            raise ValueError("Exactly one of escalate_to_role_code or escalate_to_admin_id is required")
        return self


class EscalationRuleUpdate(BaseModel):
    """Partial update. Giving either target replaces the current target."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    trigger_type: TriggerType | None = None
    trigger_conditions: dict[str, Any] | None = None
    escalate_to_role_code: str | None = Field(None, min_length=1, max_length=100)
    escalate_to_admin_id: uuid.UUID | None = None
    action_type: EscalationAction | None = None
    priority: int | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def _single_target(self) -> "EscalationRuleUpdate":
        if self.escalate_to_role_code is not None and self.escalate_to_admin_id is not None:
            raise ValueError("Give at most one of escalate_to_role_code or escalate_to_admin_id")
        return self


class EscalationRuleResponse(EscalationRuleBase):
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
