import uuid
from datetime import datetime
from pydantic import BaseModel, Field

from ..policy.catalog import Severity


class PermissionBase(BaseModel):
    resource: str = Field(..., min_length=1, max_length=50)
    action: str = Field(..., min_length=1, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class PermissionCreate(PermissionBase):
    # Defaults to the action's catalog severity.
    severity: Severity | None = None


class PermissionUpdate(BaseModel):
    severity: Severity | None = None
    display_name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None


class PermissionResponse(PermissionBase):
    id: uuid.UUID
    code: str
    severity: Severity
    is_system: bool
    created_at: datetime

    class Config:
        from_attributes = True
