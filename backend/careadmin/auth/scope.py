"""
Organization scope filter - which organizations and users an actor may see.

Scope is independent of whether a specific action is permitted; callers
narrow data here first and gate the action with permissions.py afterwards.

An empty scope is a valid result ("render nothing"), never an error. A
store that cannot be read is a different condition and surfaces as
ScopeUnavailable after retries, so "no access" is never confused with
"could not determine access".
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..domain.identity import OrganizationRef, Principal
from ..domain.ports.membership import MembershipStore, MembershipStoreUnavailable
from ..errors import ScopeUnavailable
from .permissions import is_organization_independent
from .roles import Role

logger = logging.getLogger("careadmin.scope")

T = TypeVar("T")

UserPredicate = Callable[[Principal], bool]


class OrganizationScopeFilter:
    def __init__(
        self,
        store: MembershipStore,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.2,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than 0")
        self._store = store
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds

    async def _read(self, operation: Callable[[], Awaitable[T]], what: str) -> T:
        """Run a store read with exponential backoff on transient failures."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except MembershipStoreUnavailable as exc:
                if attempt >= self._max_attempts:
                    logger.error(
                        "Scope lookup failed permanently lookup=%s attempts=%d error=%s",
                        what,
                        attempt,
                        exc,
                    )
                    raise ScopeUnavailable(details={"lookup": what}) from exc
                delay = self._backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Scope lookup failed lookup=%s attempt=%d/%d retry_in=%.2fs error=%s",
                    what,
                    attempt,
                    self._max_attempts,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)

    async def accessible_organizations(self, actor: Principal) -> frozenset[OrganizationRef]:
        """
        Active organizations visible to the actor.

        - system_admin / platform_admin: every active organization
        - platform_agent: only organizations in the actor's assignments
        - client roles: the single organization of the actor's membership
        - no membership: empty set

        Raises:
            ScopeUnavailable: If the membership store stays unreachable
        """
        if is_organization_independent(actor.role):
            organizations = await self._read(
                self._store.list_active_organizations, "active_organizations"
            )
            return frozenset(org for org in organizations if org.active)

        if actor.role is Role.PLATFORM_AGENT:
            assigned = await self._read(
                lambda: self._store.lookup_agent_assignments(actor.id), "agent_assignments"
            )
            if not assigned:
                logger.info("Agent has no organization assignments user_id=%s", actor.id)
                return frozenset()
            return await self._active_by_ids(assigned)

        membership = await self._read(
            lambda: self._store.lookup_membership(actor.id), "membership"
        )
        if membership is None:
            logger.info("Actor has no membership user_id=%s role=%s", actor.id, actor.role.value)
            return frozenset()
        return await self._active_by_ids({membership.organization_id})

    async def _active_by_ids(self, organization_ids: set[uuid.UUID]) -> frozenset[OrganizationRef]:
        organizations = await self._read(
            lambda: self._store.get_organizations(organization_ids), "organizations"
        )
        return frozenset(
            org for org in organizations if org.active and org.id in organization_ids
        )

    async def get_organization(self, organization_id: uuid.UUID) -> OrganizationRef | None:
        organizations = await self._read(
            lambda: self._store.get_organizations({organization_id}), "organizations"
        )
        return next((org for org in organizations if org.id == organization_id), None)

    async def accessible_organization_ids(self, actor: Principal) -> frozenset[uuid.UUID]:
        return frozenset(org.id for org in await self.accessible_organizations(actor))

    async def accessible_users(self, actor: Principal) -> UserPredicate:
        """Predicate over users: True if the user belongs to a visible organization."""
        if is_organization_independent(actor.role):
            return lambda _user: True

        visible = await self.accessible_organization_ids(actor)

        def predicate(user: Principal) -> bool:
            return user.organization_id is not None and user.organization_id in visible

        return predicate

    async def can_access_organization(self, actor: Principal, organization: OrganizationRef) -> bool:
        if not organization.active:
            return False
        if is_organization_independent(actor.role):
            return True
        return organization.id in await self.accessible_organization_ids(actor)
