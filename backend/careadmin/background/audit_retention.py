from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import AsyncContextManager

from sqlalchemy.ext.asyncio import AsyncSession

from ..crud.audit_log import AuditLogRepository
from .periodic import PeriodicWorker


class AuditRetentionWorker(PeriodicWorker):
    """Purges audit rows older than the retention window."""

    name = "audit_retention"

    def __init__(
        self,
        *,
        session_factory: Callable[[], AsyncContextManager[AsyncSession]],
        retention_days: int,
        interval_seconds: float,
        repository_factory: Callable[[AsyncSession], AuditLogRepository] = AuditLogRepository,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if retention_days <= 0:
            raise ValueError("retention_days must be greater than 0")
        super().__init__(interval_seconds=interval_seconds)
        self._session_factory = session_factory
        self._repository_factory = repository_factory
        self._retention = timedelta(days=retention_days)
        self._clock = clock

    async def run_once(self) -> int:
        cutoff = self._clock() - self._retention
        async with self._session_factory() as session:
            deleted = await self._repository_factory(session).delete_older_than(cutoff)
        self._logger.info(
            "[JOB] succeeded job=%s deleted=%d cutoff=%s worker_id=%s",
            self.name,
            deleted,
            cutoff.isoformat(),
            self._worker_id,
        )
        return deleted
