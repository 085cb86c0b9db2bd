from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from ...auth.roles import Role
from ..identity import OrganizationRef


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_INVITATION_STATUSES = frozenset({
    InvitationStatus.ACCEPTED,
    InvitationStatus.CANCELLED,
    InvitationStatus.EXPIRED,
})


@dataclass(frozen=True)
class InvitationRecord:
    id: uuid.UUID
    organization_id: uuid.UUID
    email: str
    role: Role
    status: InvitationStatus
    invited_by: uuid.UUID | None
    created_at: datetime
    expires_at: datetime


class InvitationRepository(Protocol):
    async def add(self, invitation: InvitationRecord) -> InvitationRecord:
        ...

    async def get(self, invitation_id: uuid.UUID) -> InvitationRecord | None:
        ...

    async def transition(
        self,
        invitation_id: uuid.UUID,
        *,
        expected: InvitationStatus,
        new_status: InvitationStatus,
    ) -> InvitationRecord | None:
        """Compare-and-set the status; None if the current status differs."""
        ...

    async def list_for_organization(
        self, organization_id: uuid.UUID
    ) -> list[InvitationRecord]:
        ...

    async def list_pending_expired(self, now: datetime) -> list[InvitationRecord]:
        ...


class InvitationNotifier(Protocol):
    async def send_invitation(
        self, invitation: InvitationRecord, organization: OrganizationRef
    ) -> None:
        ...
