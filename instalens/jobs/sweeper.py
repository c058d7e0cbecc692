"""Background sweep that drops finished jobs after the retention window."""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from instalens.jobs.store import JobStore

logger = logging.getLogger(__name__)


class JobSweeper:
    """Runs ``store.sweep_expired`` every ``interval`` until stopped."""

    def __init__(self, store: JobStore, retention: timedelta, interval: timedelta):
        self._store = store
        self._retention = retention
        self._interval = interval.total_seconds()
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def run_once(self) -> int:
        return await self._store.sweep_expired(self._retention)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception:
                # A failed cycle must not stop future sweeps
                logger.exception("Job sweep failed")
