import uuid
from datetime import datetime
from pydantic import BaseModel, Field


class RoleBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z][a-z0-9_]*$")
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class RoleCreate(RoleBase):
    permission_codes: set[str] = Field(default_factory=set)
    is_active: bool = True


class RoleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None
    # Replaces the whole permission set when given.
    permission_codes: set[str] | None = None


class RoleDuplicate(BaseModel):
    code: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z][a-z0-9_]*$")
    name: str = Field(..., min_length=1, max_length=255)


class RoleResponse(RoleBase):
    id: uuid.UUID
    is_system: bool
    is_active: bool
    permission_codes: list[str]
    created_at: datetime
    updated_at: datetime
