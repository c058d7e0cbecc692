"""Scrape dispatcher interface and the synchronous implementation."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from instalens.jobs.models import JobRecord, JobStatus
from instalens.jobs.store import JobStore

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """The scrape could not be started. ``job_id`` is set when a job exists
    (it has already been marked failed)."""

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


@dataclass(frozen=True)
class ScrapeRequest:
    url: str
    mode: str
    kind: str  # "profile" or "post", resolved from mode


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


class ScrapeDispatcher(ABC):
    """Creates a job for a scrape request and gets the scrape running."""

    mode: str = "abstract"

    def __init__(self, store: JobStore, scraper=None):
        self.store = store
        self.scraper = scraper

    @abstractmethod
    async def submit(self, request: ScrapeRequest) -> JobRecord:
        """Create the job and start the scrape. Returns the job as it stands
        when control comes back to the caller."""
        ...

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def run_scrape(
        self, job_id: str, request: ScrapeRequest, timeout: Optional[float] = None
    ) -> Optional[JobRecord]:
        """Run the scrape in this process and record the terminal outcome."""
        await self.store.update(
            job_id,
            status=JobStatus.PROCESSING,
            progress={"message": "Starting scrape...", "percent": 5},
        )

        async def on_progress(message: str, percent: Optional[int]) -> None:
            await self.store.update(job_id, progress={"message": message, "percent": percent})

        try:
            result = await asyncio.wait_for(
                self.scraper.scrape(request.url, request.kind, progress_cb=on_progress),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Scrape for job %s timed out after %ss", job_id, timeout)
            return await self.store.update(
                job_id, status=JobStatus.FAILED, error=f"Scrape timed out after {timeout:.0f}s"
            )
        except Exception as exc:
            logger.exception("Scrape for job %s failed", job_id)
            return await self.store.update(job_id, status=JobStatus.FAILED, error=describe_error(exc))

        return await self.store.update(job_id, status=JobStatus.COMPLETED, result=result.dump())

    async def _fail(self, job_id: str, message: str) -> None:
        logger.error("Could not start scrape for job %s: %s", job_id, message)
        await self.store.update(job_id, status=JobStatus.FAILED, error=message)
        raise DispatchError(message, job_id=job_id)


class SyncDispatcher(ScrapeDispatcher):
    """Waits for the scrape inside the request. Simple, but the caller's
    connection stays open for the whole scrape and may hit gateway timeouts."""

    mode = "sync"

    def __init__(self, store: JobStore, scraper, timeout: Optional[float] = None):
        super().__init__(store, scraper)
        self.timeout = timeout

    async def submit(self, request: ScrapeRequest) -> JobRecord:
        job = await self.store.create(url=request.url, mode=request.kind)
        finished = await self.run_scrape(job.id, request, timeout=self.timeout)
        return finished or job
