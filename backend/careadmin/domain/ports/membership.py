from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Protocol

from ..identity import MembershipRecord, OrganizationRef


class MembershipStoreUnavailable(Exception):
    """Transient failure reading memberships or assignments."""


class MembershipStore(Protocol):
    async def lookup_membership(self, user_id: uuid.UUID) -> MembershipRecord | None:
        ...

    async def lookup_agent_assignments(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        ...

    async def list_active_organizations(self) -> list[OrganizationRef]:
        ...

    async def get_organizations(
        self, organization_ids: Iterable[uuid.UUID]
    ) -> list[OrganizationRef]:
        ...


class OrganizationAdminCheck(Protocol):
    async def is_organization_admin(
        self, user_id: uuid.UUID, organization_id: uuid.UUID
    ) -> bool:
        ...
