import uuid
from datetime import datetime

from pydantic import BaseModel


class ImpersonationStart(BaseModel):
    target_user_id: uuid.UUID


class ImpersonationStartResponse(BaseModel):
    actor_id: uuid.UUID
    target_id: uuid.UUID
    started_at: datetime
    requires_refresh: bool


class ImpersonationStopResponse(BaseModel):
    stopped: bool
    requires_refresh: bool


class ImpersonationStatusResponse(BaseModel):
    is_impersonating: bool
    actor_id: uuid.UUID | None = None
    target_id: uuid.UUID | None = None
    started_at: datetime | None = None

    class Config:
        from_attributes = True
