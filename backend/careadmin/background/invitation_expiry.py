from __future__ import annotations

from collections.abc import Callable
from typing import AsyncContextManager

from sqlalchemy.ext.asyncio import AsyncSession

from ..services.invitations import InvitationLifecycle
from .periodic import PeriodicWorker


class InvitationExpiryWorker(PeriodicWorker):
    """Moves pending invitations past their expiry to Expired."""

    name = "invitation_expiry"

    def __init__(
        self,
        *,
        session_factory: Callable[[], AsyncContextManager[AsyncSession]],
        lifecycle_factory: Callable[[AsyncSession], InvitationLifecycle],
        interval_seconds: float,
    ) -> None:
        super().__init__(interval_seconds=interval_seconds)
        self._session_factory = session_factory
        self._lifecycle_factory = lifecycle_factory

    async def run_once(self) -> int:
        async with self._session_factory() as session:
            expired = await self._lifecycle_factory(session).expire_stale()
        self._logger.info(
            "[JOB] succeeded job=%s expired=%d worker_id=%s",
            self.name,
            expired,
            self._worker_id,
        )
        return expired
