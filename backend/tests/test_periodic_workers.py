import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from careadmin.background.audit_retention import AuditRetentionWorker
from careadmin.background.invitation_expiry import InvitationExpiryWorker
from careadmin.background.periodic import PeriodicWorker

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _session_factory(session):
    @asynccontextmanager
    async def factory():
        yield session

    return factory


class _CountingWorker(PeriodicWorker):
    name = "counting"

    def __init__(self, fail_first: bool = False) -> None:
        super().__init__(interval_seconds=0.01)
        self.runs = 0
        self.fail_first = fail_first

    async def run_once(self) -> int:
        self.runs += 1
        if self.fail_first and self.runs == 1:
            raise RuntimeError("boom")
        return self.runs


class TestPeriodicWorker:
    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError, match="interval_seconds"):
            PeriodicWorker(interval_seconds=0)

    @pytest.mark.anyio
    async def test_start_and_stop_are_idempotent(self):
        worker = _CountingWorker()
        await worker.start()
        await worker.start()
        assert worker.running
        await worker.stop()
        await worker.stop()
        assert not worker.running

    @pytest.mark.anyio
    async def test_failed_pass_does_not_kill_loop(self):
        """A run_once() error is logged and the next tick still runs."""
        worker = _CountingWorker(fail_first=True)
        await worker.start()
        for _ in range(100):
            if worker.runs >= 2:
                break
            await asyncio.sleep(0.01)
        await worker.stop()
        assert worker.runs >= 2


class TestAuditRetentionWorker:
    @pytest.mark.anyio
    async def test_deletes_rows_older_than_window(self):
        session = MagicMock()
        repository = MagicMock()
        repository.delete_older_than = AsyncMock(return_value=4)

        worker = AuditRetentionWorker(
            session_factory=_session_factory(session),
            retention_days=30,
            interval_seconds=60,
            repository_factory=lambda s: repository,
            clock=lambda: NOW,
        )

        assert await worker.run_once() == 4
        repository.delete_older_than.assert_awaited_once_with(NOW - timedelta(days=30))

    def test_retention_must_be_positive(self):
        with pytest.raises(ValueError, match="retention_days"):
            AuditRetentionWorker(
                session_factory=_session_factory(MagicMock()),
                retention_days=0,
                interval_seconds=60,
            )


class TestInvitationExpiryWorker:
    @pytest.mark.anyio
    async def test_runs_expire_stale_with_fresh_session(self):
        session = MagicMock()
        lifecycle = MagicMock()
        lifecycle.expire_stale = AsyncMock(return_value=2)
        seen = []

        def lifecycle_factory(s):
            seen.append(s)
            return lifecycle

        worker = InvitationExpiryWorker(
            session_factory=_session_factory(session),
            lifecycle_factory=lifecycle_factory,
            interval_seconds=60,
        )

        assert await worker.run_once() == 2
        assert seen == [session]
