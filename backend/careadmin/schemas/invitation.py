import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from ..auth.roles import Role
from ..domain.ports.invitation import InvitationStatus


class InvitationCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    role: Role


class InvitationResponse(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: Role
    status: InvitationStatus
    invited_by: uuid.UUID | None = None
    created_at: datetime
    expires_at: datetime

    class Config:
        from_attributes = True
