"""In-process scrape queue using asyncio.

Scrapes run in background tasks of this process and write their outcome
straight into the job store. No external dependencies (Redis, Celery) needed,
but the status endpoint only sees these jobs when it shares the store.
"""

import asyncio
import logging
from typing import List, Tuple

from instalens.jobs.dispatcher import ScrapeDispatcher, ScrapeRequest
from instalens.jobs.models import JobRecord
from instalens.jobs.store import JobStore

logger = logging.getLogger(__name__)


class InProcessQueue(ScrapeDispatcher):
    """Local async job queue. ``workers`` scrapes run concurrently."""

    mode = "background"

    def __init__(self, store: JobStore, scraper, workers: int = 2):
        super().__init__(store, scraper)
        self._queue: asyncio.Queue[Tuple[str, ScrapeRequest]] = asyncio.Queue()
        self._workers = max(1, workers)
        self._tasks: List[asyncio.Task] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def submit(self, request: ScrapeRequest) -> JobRecord:
        job = await self.store.create(url=request.url, mode=request.kind)
        if not self._running:
            await self._fail(job.id, "Background scrape queue is not running")
        await self._queue.put((job.id, request))
        logger.info("Queued job %s (%s %s)", job.id, request.kind, request.url)
        return job

    async def start(self) -> None:
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop(n)) for n in range(self._workers)
        ]

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

    async def join(self) -> None:
        """Wait until every queued scrape has finished."""
        await self._queue.join()

    async def _worker_loop(self, worker: int) -> None:
        """Process queued jobs until stopped."""
        while self._running:
            try:
                job_id, request = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            try:
                if await self.store.get(job_id) is None:
                    logger.warning("Job %s vanished before worker %d picked it up", job_id, worker)
                    continue
                await self.run_scrape(job_id, request)
            except Exception:
                # Store failures must not kill the worker
                logger.exception("Worker %d failed while processing job %s", worker, job_id)
            finally:
                self._queue.task_done()
