from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from ..auth.roles import OrganizationType, Role


@dataclass(frozen=True)
class Principal:
    """An identity as seen by authorization: who, with which role, where."""

    id: uuid.UUID
    role: Role
    email: str | None = None
    organization_id: uuid.UUID | None = None
    banned: bool = False
    ban_expires: datetime | None = None
    # Set on the overlaid identity while an impersonation is active
    impersonated_by: uuid.UUID | None = None

    @property
    def audit_id(self) -> uuid.UUID:
        """Identity recorded in audit events: always the real actor."""
        return self.impersonated_by or self.id

    def is_banned(self, now: datetime | None = None) -> bool:
        # A ban with an elapsed expiry no longer applies
        if not self.banned:
            return False
        if self.ban_expires is None:
            return True
        now = now or datetime.now(timezone.utc)
        return self.ban_expires > now


@dataclass(frozen=True)
class OrganizationRef:
    id: uuid.UUID
    type: OrganizationType
    active: bool = True
    name: str = ""
    slug: str = ""


@dataclass(frozen=True)
class MembershipRecord:
    user_id: uuid.UUID
    organization_id: uuid.UUID
    role: Role
