import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from ..auth.roles import Role


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str | None = None
    role: Role
    organization_id: uuid.UUID | None = None
    banned: bool = False
    ban_expires: datetime | None = None

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    role: Role
    organization_id: uuid.UUID


class RoleChange(BaseModel):
    role: Role


class BanRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)
    expires_at: datetime | None = None


class CapabilitiesResponse(BaseModel):
    can_create: bool
    can_edit: bool
    can_ban: bool
    can_impersonate: bool
    can_view_all: bool

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    user: UserResponse
    impersonated_by: uuid.UUID | None = None
    capabilities: CapabilitiesResponse
