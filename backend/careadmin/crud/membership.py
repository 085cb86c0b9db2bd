import uuid
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import DBAPIError, PendingRollbackError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.roles import OrganizationType, Role
from ..domain.identity import MembershipRecord, OrganizationRef
from ..domain.ports.membership import MembershipStoreUnavailable
from ..models.agent_assignment import AgentAssignment
from ..models.membership import Membership
from ..models.organization import Organization

ORGANIZATION_ADMIN_ROLES: dict[OrganizationType, frozenset[Role]] = {
    OrganizationType.ADMIN: frozenset({Role.SYSTEM_ADMIN, Role.PLATFORM_ADMIN}),
    OrganizationType.CLIENT: frozenset({Role.CLIENT_ADMIN}),
}


@asynccontextmanager
async def _store_errors(session: AsyncSession) -> AsyncIterator[None]:
    """
    Map driver failures to MembershipStoreUnavailable.

    The session is rolled back first so that the next attempt starts a fresh
    transaction, on a new connection if the old one was invalidated.
    """
    try:
        yield
    except (DBAPIError, PendingRollbackError) as exc:
        await session.rollback()
        raise MembershipStoreUnavailable(str(getattr(exc, "orig", None) or exc)) from exc


class MembershipRepository:
    """Reads memberships, agent assignments and organizations for scope decisions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lookup_membership(self, user_id: uuid.UUID) -> MembershipRecord | None:
        async with _store_errors(self.session):
            result = await self.session.execute(
                select(Membership)
                .where(Membership.user_id == user_id)
                .order_by(Membership.created_at)
                .limit(1)
            )
            membership = result.scalar_one_or_none()
        if membership is None:
            return None
        return MembershipRecord(
            user_id=membership.user_id,
            organization_id=membership.organization_id,
            role=Role(membership.role),
        )

    async def lookup_agent_assignments(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        now = datetime.now(timezone.utc)
        async with _store_errors(self.session):
            result = await self.session.execute(
                select(AgentAssignment.client_organization_id).where(
                    AgentAssignment.agent_user_id == user_id,
                    AgentAssignment.is_active,
                    or_(AgentAssignment.expires_at.is_(None), AgentAssignment.expires_at > now),
                )
            )
            return set(result.scalars().all())

    async def list_active_organizations(self) -> list[OrganizationRef]:
        async with _store_errors(self.session):
            result = await self.session.execute(
                select(Organization).where(Organization.is_active).order_by(Organization.name)
            )
            return [org.to_ref() for org in result.scalars().all()]

    async def get_organizations(
        self, organization_ids: Iterable[uuid.UUID]
    ) -> list[OrganizationRef]:
        ids = list(organization_ids)
        if not ids:
            return []
        async with _store_errors(self.session):
            result = await self.session.execute(
                select(Organization).where(Organization.id.in_(ids))
            )
            return [org.to_ref() for org in result.scalars().all()]

    async def is_organization_admin(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> bool:
        async with _store_errors(self.session):
            result = await self.session.execute(
                select(Membership.role, Organization.type)
                .join(Organization, Organization.id == Membership.organization_id)
                .where(
                    Membership.user_id == user_id,
                    Membership.organization_id == organization_id,
                )
            )
            row = result.first()
        if row is None:
            return False
        role, org_type = row
        return Role(role) in ORGANIZATION_ADMIN_ROLES[OrganizationType(org_type)]
