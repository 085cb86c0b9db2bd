"""
Impersonation session state machine: Idle -> Active -> Idle.

One impersonation per actor session. Transitions for the same session are
serialized in-process by a keyed asyncio lock; across processes the store's
atomic create-if-absent is what rejects a second start.

The identity used for authorization is resolved from the store on every
call to effective_identity(). Nothing here caches the overlaid identity, so a
stop is visible to the very next request.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from ..auth.permissions import can_impersonate, require
from ..auth.roles import Role
from ..domain.identity import Principal
from ..domain.ports.impersonation import (
    CorruptImpersonationRecord,
    IdentityOverlay,
    ImpersonationRecord,
    ImpersonationStore,
)
from ..errors import ConflictingSession, TargetIneligible
from .audit import AuditService

logger = logging.getLogger("careadmin.impersonation")

Clock = Callable[[], datetime]
UserLoader = Callable[[uuid.UUID], Awaitable[Principal | None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyedLock:
    """Per-key asyncio locks, dropped once no task holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass(frozen=True)
class ImpersonationResult:
    actor: Principal
    overlay: Principal
    started_at: datetime
    requires_refresh: bool = True


@dataclass(frozen=True)
class ImpersonationStatus:
    is_impersonating: bool
    actor_id: uuid.UUID | None = None
    target_id: uuid.UUID | None = None
    started_at: datetime | None = None


class ImpersonationSessionManager:
    def __init__(
        self,
        store: ImpersonationStore,
        overlay: IdentityOverlay,
        audit: AuditService,
        *,
        ttl_seconds: int = 3600,
        locks: KeyedLock | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be greater than 0")
        self._store = store
        self._overlay = overlay
        self._audit = audit
        self._ttl_seconds = ttl_seconds
        self._locks = locks or KeyedLock()
        self._clock = clock

    async def start(
        self, session_id: str, actor: Principal, target: Principal
    ) -> ImpersonationResult:
        """
        Begin impersonating target within the actor's session.

        Raises:
            Unauthorized: If the actor is not a system admin
            TargetIneligible: If the target is a system admin or currently banned
            ConflictingSession: If the session already has an active impersonation
        """
        require(
            actor.role is Role.SYSTEM_ADMIN,
            action="impersonate",
            actor=actor.role,
            target=target.role,
        )
        if not can_impersonate(actor.role, target.role):
            raise TargetIneligible(
                "System administrators cannot be impersonated",
                details={"target_id": str(target.id), "reason": "protected_role"},
            )
        now = self._clock()
        if target.is_banned(now):
            raise TargetIneligible(
                "Banned users cannot be impersonated",
                details={"target_id": str(target.id), "reason": "banned"},
            )

        async with self._locks.hold(session_id):
            record = ImpersonationRecord(actor_id=actor.id, target_id=target.id, started_at=now)
            created = await self._store.create_if_absent(session_id, record, self._ttl_seconds)
            if not created:
                existing = await self._store.get(session_id)
                logger.warning(
                    "Impersonation start rejected, session busy actor_id=%s target_id=%s active_target_id=%s",
                    actor.id,
                    target.id,
                    existing.target_id if existing else None,
                )
                raise ConflictingSession(
                    details={
                        "active_target_id": str(existing.target_id) if existing else None,
                    }
                )

            try:
                await self._overlay.set_overlay(session_id, target)
                await self._audit.log_impersonation_start(actor.id, target.id, now)
            except Exception:
                # Back to Idle: no overlay without an audit record
                await self._store.delete(session_id)
                await self._overlay.clear_overlay(session_id)
                logger.exception(
                    "Impersonation start failed, session rolled back actor_id=%s target_id=%s",
                    actor.id,
                    target.id,
                )
                raise

        logger.info("Impersonation started actor_id=%s target_id=%s", actor.id, target.id)
        return ImpersonationResult(actor=actor, overlay=target, started_at=now)

    async def stop(self, session_id: str, actor: Principal) -> bool:
        """End the active impersonation, if any. Safe to call repeatedly."""
        async with self._locks.hold(session_id):
            try:
                record = await self._store.delete(session_id)
            except CorruptImpersonationRecord as exc:
                await self._overlay.clear_overlay(session_id)
                logger.error(
                    "Discarded unreadable impersonation record, overlay cleared actor_id=%s error=%s",
                    actor.id,
                    exc,
                )
                return True
            if record is None:
                logger.debug("Impersonation stop with no active session actor_id=%s", actor.id)
                return False
            await self._overlay.clear_overlay(session_id)

        try:
            await self._audit.log_impersonation_stop(actor.id, record.target_id, self._clock())
        except Exception:
            # Session is already Idle at this point
            logger.exception(
                "Failed to audit impersonation stop actor_id=%s previous_target_id=%s",
                actor.id,
                record.target_id,
            )
        logger.info(
            "Impersonation stopped actor_id=%s previous_target_id=%s",
            actor.id,
            record.target_id,
        )
        return True

    async def status(self, session_id: str) -> ImpersonationStatus:
        record = await self._store.get(session_id)
        if record is None:
            return ImpersonationStatus(is_impersonating=False)
        return ImpersonationStatus(
            is_impersonating=True,
            actor_id=record.actor_id,
            target_id=record.target_id,
            started_at=record.started_at,
        )

    async def effective_identity(
        self, session_id: str, actor: Principal, load_user: UserLoader
    ) -> Principal:
        """
        Identity to authorize this request as.

        Returns the impersonated target while a session is active, otherwise
        the real actor. A session whose target has disappeared or has been
        banned since the start is ended.
        """
        record = await self._store.get(session_id)
        if record is None or record.actor_id != actor.id:
            return actor
        target = await load_user(record.target_id)
        if target is None:
            logger.warning(
                "Impersonation target vanished, ending session actor_id=%s target_id=%s",
                actor.id,
                record.target_id,
            )
            await self.stop(session_id, actor)
            return actor
        if target.is_banned(self._clock()):
            logger.warning(
                "Impersonation target banned, ending session actor_id=%s target_id=%s",
                actor.id,
                target.id,
            )
            await self.stop(session_id, actor)
            return actor
        return replace(target, impersonated_by=actor.id)
