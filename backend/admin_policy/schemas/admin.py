import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class AdminUserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    display_name: str = Field(..., min_length=1, max_length=255)
    is_active: bool = True


class AdminUserStatusUpdate(BaseModel):
    is_active: bool


class AdminUserResponse(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class RoleBindingCreate(BaseModel):
    role_code: str = Field(..., min_length=1, max_length=100)
    is_primary: bool = False
    expires_at: datetime | None = None


class RoleBindingResponse(BaseModel):
    id: uuid.UUID
    admin_id: uuid.UUID
    role_code: str
    is_primary: bool
    expires_at: datetime | None
    assigned_by: uuid.UUID | None
    assigned_at: datetime

    class Config:
        from_attributes = True


class OverrideUpsert(BaseModel):
    grant_type: Literal["grant", "deny"]
    constraints: dict[str, Any] = Field(default_factory=dict)
    reason: str | None = None
    expires_at: datetime | None = None


class OverrideResponse(BaseModel):
    id: uuid.UUID
    admin_id: uuid.UUID
    permission_code: str
    grant_type: str
    constraints: dict[str, Any]
    reason: str | None
    granted_by: uuid.UUID | None
    created_at: datetime
    expires_at: datetime | None

    class Config:
        from_attributes = True


class EffectivePermissionsResponse(BaseModel):
    admin_id: uuid.UUID
    permissions: list[str]
    accessible_resources: list[str]
    primary_role: str | None
