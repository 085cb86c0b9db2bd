import uuid

from pydantic import BaseModel

from ..auth.roles import OrganizationType


class OrganizationResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    type: OrganizationType
    active: bool

    class Config:
        from_attributes = True
