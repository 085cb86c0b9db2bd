"""In-memory implementations of the domain ports for service tests."""
from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any

from careadmin.auth.roles import OrganizationType, Role
from careadmin.domain.identity import MembershipRecord, OrganizationRef, Principal
from careadmin.domain.ports.impersonation import CorruptImpersonationRecord, ImpersonationRecord
from careadmin.domain.ports.invitation import InvitationRecord, InvitationStatus
from careadmin.domain.ports.membership import MembershipStoreUnavailable


def make_principal(role: Role, organization_id: uuid.UUID | None = None, **kwargs: Any) -> Principal:
    return Principal(id=uuid.uuid4(), role=role, organization_id=organization_id, **kwargs)


def make_organization(org_type: OrganizationType, name: str = "Org", active: bool = True) -> OrganizationRef:
    return OrganizationRef(
        id=uuid.uuid4(),
        type=org_type,
        active=active,
        name=name,
        slug=name.lower().replace(" ", "-"),
    )


class InMemoryMembershipStore:
    def __init__(self) -> None:
        self.organizations: dict[uuid.UUID, OrganizationRef] = {}
        self.memberships: dict[uuid.UUID, MembershipRecord] = {}
        self.assignments: dict[uuid.UUID, set[uuid.UUID]] = {}
        self.failures_remaining = 0
        self.calls = 0

    def add_organization(self, organization: OrganizationRef) -> OrganizationRef:
        self.organizations[organization.id] = organization
        return organization

    def add_member(self, user: Principal, organization: OrganizationRef) -> None:
        self.memberships[user.id] = MembershipRecord(
            user_id=user.id, organization_id=organization.id, role=user.role
        )

    def assign_agent(self, agent: Principal, *organizations: OrganizationRef) -> None:
        self.assignments.setdefault(agent.id, set()).update(org.id for org in organizations)

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise MembershipStoreUnavailable("connection reset")

    async def lookup_membership(self, user_id: uuid.UUID) -> MembershipRecord | None:
        self._maybe_fail()
        return self.memberships.get(user_id)

    async def lookup_agent_assignments(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        self._maybe_fail()
        return set(self.assignments.get(user_id, set()))

    async def list_active_organizations(self) -> list[OrganizationRef]:
        self._maybe_fail()
        return [org for org in self.organizations.values() if org.active]

    async def get_organizations(self, organization_ids: Iterable[uuid.UUID]) -> list[OrganizationRef]:
        self._maybe_fail()
        return [self.organizations[i] for i in organization_ids if i in self.organizations]

    async def is_organization_admin(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> bool:
        membership = self.memberships.get(user_id)
        if membership is None or membership.organization_id != organization_id:
            return False
        return membership.role in {Role.CLIENT_ADMIN, Role.PLATFORM_ADMIN, Role.SYSTEM_ADMIN}


class InMemoryImpersonationStore:
    def __init__(self) -> None:
        self.records: dict[str, ImpersonationRecord] = {}
        self.ttls: dict[str, int] = {}
        # Session ids whose stored record is unreadable
        self.corrupt: set[str] = set()

    async def create_if_absent(self, session_id: str, record: ImpersonationRecord, ttl_seconds: int) -> bool:
        if session_id in self.records:
            return False
        self.records[session_id] = record
        self.ttls[session_id] = ttl_seconds
        return True

    async def get(self, session_id: str) -> ImpersonationRecord | None:
        return self.records.get(session_id)

    async def delete(self, session_id: str) -> ImpersonationRecord | None:
        if session_id in self.corrupt:
            self.corrupt.discard(session_id)
            self.ttls.pop(session_id, None)
            self.records.pop(session_id, None)
            raise CorruptImpersonationRecord("unreadable record")
        self.ttls.pop(session_id, None)
        return self.records.pop(session_id, None)


class InMemoryIdentityOverlay:
    def __init__(self) -> None:
        self.overlays: dict[str, Principal] = {}
        self.transitions: list[tuple[str, str]] = []

    async def set_overlay(self, session_id: str, identity: Principal) -> None:
        self.overlays[session_id] = identity
        self.transitions.append(("set", session_id))

    async def clear_overlay(self, session_id: str) -> None:
        self.overlays.pop(session_id, None)
        self.transitions.append(("clear", session_id))


class RecordingAuditSink:
    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self.fail = False

    async def create(self, **kwargs: Any) -> dict[str, Any]:
        if self.fail:
            raise RuntimeError("audit store unavailable")
        self.events.append(kwargs)
        return kwargs

    def actions(self) -> list[str]:
        return [event["action"] for event in self.events]


class InMemoryInvitationRepository:
    def __init__(self) -> None:
        self.invitations: dict[uuid.UUID, InvitationRecord] = {}
        self.transitions = 0

    async def add(self, invitation: InvitationRecord) -> InvitationRecord:
        self.invitations[invitation.id] = invitation
        return invitation

    async def get(self, invitation_id: uuid.UUID) -> InvitationRecord | None:
        return self.invitations.get(invitation_id)

    async def transition(
        self,
        invitation_id: uuid.UUID,
        *,
        expected: InvitationStatus,
        new_status: InvitationStatus,
    ) -> InvitationRecord | None:
        current = self.invitations.get(invitation_id)
        if current is None or current.status is not expected:
            return None
        updated = replace(current, status=new_status)
        self.invitations[invitation_id] = updated
        self.transitions += 1
        return updated

    async def list_for_organization(self, organization_id: uuid.UUID) -> list[InvitationRecord]:
        return [i for i in self.invitations.values() if i.organization_id == organization_id]

    async def list_pending_expired(self, now: datetime) -> list[InvitationRecord]:
        return [
            i for i in self.invitations.values()
            if i.status is InvitationStatus.PENDING and i.expires_at <= now
        ]


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[uuid.UUID] = []
        self.fail = fail

    async def send_invitation(self, invitation: InvitationRecord, organization: OrganizationRef) -> None:
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append(invitation.id)


class InMemoryUserDirectory:
    def __init__(self) -> None:
        self.users: dict[uuid.UUID, Principal] = {}

    def add(self, user: Principal) -> Principal:
        self.users[user.id] = user
        return user

    async def get_principal(self, user_id: uuid.UUID) -> Principal | None:
        return self.users.get(user_id)

    async def create_user(self, email: str, name: str, role: Role, organization_id: uuid.UUID) -> Principal:
        user = Principal(id=uuid.uuid4(), role=role, email=email, organization_id=organization_id)
        self.users[user.id] = user
        return user

    async def set_role(self, user_id: uuid.UUID, role: Role) -> Principal:
        self.users[user_id] = replace(self.users[user_id], role=role)
        return self.users[user_id]

    async def set_ban(
        self,
        user_id: uuid.UUID,
        *,
        banned: bool,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> Principal:
        self.users[user_id] = replace(
            self.users[user_id], banned=banned, ban_expires=expires_at if banned else None
        )
        return self.users[user_id]
