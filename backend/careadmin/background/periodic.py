from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress


class PeriodicWorker:
    """
    Runs run_once() every interval_seconds on a single asyncio task.

    start() and stop() are idempotent and the worker can be restarted after
    a stop. Instances are created and owned by the application lifespan.
    """

    name = "periodic"

    def __init__(self, *, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than 0")
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._worker_id = str(uuid.uuid4())[:8]
        self._logger = logging.getLogger(f"careadmin.jobs.{self.name}")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        self._logger.info(
            "[JOB] started job=%s interval=%ss worker_id=%s",
            self.name,
            self._interval_seconds,
            self._worker_id,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._logger.info("[JOB] stopped job=%s worker_id=%s", self.name, self._worker_id)

    async def run_once(self) -> int:
        raise NotImplementedError

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                # A failed pass is retried on the next tick
                self._logger.error(
                    "[JOB] failed job=%s worker_id=%s",
                    self.name,
                    self._worker_id,
                    exc_info=exc,
                )
            await asyncio.sleep(self._interval_seconds)
