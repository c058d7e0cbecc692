"""Job store interface and the transition rules every backend shares.

A job moves pending -> processing -> {completed | failed} and never back.
Backends only implement persistence (_load/_save/_remove/_iter_records);
create/update/sweep semantics live here so all backends behave the same.
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, AsyncIterator, Dict, Optional

from instalens.jobs.models import (
    JobProgress,
    JobRecord,
    JobStatus,
    is_valid_job_id,
    utcnow,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"status", "result", "error", "progress"}


class JobStoreError(Exception):
    """Raised when the storage backend itself fails."""


def apply_update(job: JobRecord, changes: Dict[str, Any]) -> JobRecord:
    """Return ``job`` with ``changes`` merged in, enforcing the state machine.

    Rejected transitions (backwards, or a terminal job moving to a different
    outcome) return the job unchanged and log a warning. Re-applying the same
    terminal status is a silent no-op, so duplicate callbacks are harmless.
    Raises ValueError for changes no caller should ever make.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update job fields: {', '.join(sorted(unknown))}")

    new_status = JobStatus(changes.get("status", job.status))

    if job.status.is_terminal:
        if new_status != job.status:
            logger.warning(
                "Rejected transition of terminal job %s from %s to %s",
                job.id, job.status.value, new_status.value,
            )
        else:
            logger.info("Job %s already %s, ignoring repeat update", job.id, job.status.value)
        return job

    if new_status.rank < job.status.rank:
        logger.warning(
            "Rejected backwards transition of job %s from %s to %s",
            job.id, job.status.value, new_status.value,
        )
        return job

    result = changes.get("result")
    error = changes.get("error")
    if not new_status.is_terminal and (result is not None or error is not None):
        raise ValueError("result and error can only be set with a terminal status")
    if new_status == JobStatus.COMPLETED and result is None:
        raise ValueError("A completed job needs a result")
    if new_status == JobStatus.FAILED and not error:
        raise ValueError("A failed job needs an error message")

    update: Dict[str, Any] = {"status": new_status}
    now = utcnow()

    if new_status.is_terminal:
        update["completed_at"] = now
        update["progress"] = None
        if new_status == JobStatus.COMPLETED:
            update["result"] = result
            update["error"] = None
        else:
            update["error"] = str(error)
            update["result"] = None
        if job.started_at is None:
            update["started_at"] = now
    else:
        if new_status == JobStatus.PROCESSING and job.started_at is None:
            update["started_at"] = now
        if "progress" in changes:
            progress = changes["progress"]
            if isinstance(progress, dict):
                progress = JobProgress(**progress)
            update["progress"] = progress

    return job.model_copy(update=update)


class JobStore(ABC):
    """Keyed persistence for job records."""

    backend: str = "abstract"

    @abstractmethod
    async def _load(self, job_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    async def _save(self, job: JobRecord) -> None:
        ...

    @abstractmethod
    async def _remove(self, job_id: str) -> None:
        ...

    @abstractmethod
    def _iter_records(self) -> AsyncIterator[JobRecord]:
        """Yield every stored record. Only the sweep enumerates jobs."""
        ...

    async def create(self, url: Optional[str] = None, mode: Optional[str] = None) -> JobRecord:
        job = JobRecord(url=url, mode=mode)
        await self._save(job)
        logger.info("Created job %s", job.id)
        return job

    async def get(self, job_id: str) -> Optional[JobRecord]:
        if not is_valid_job_id(job_id):
            return None
        return await self._load(job_id)

    async def update(self, job_id: str, **changes: Any) -> Optional[JobRecord]:
        """Merge ``changes`` into the job. Returns the stored record, or None
        when the job does not exist (updates never recreate a job)."""
        job = await self.get(job_id)
        if job is None:
            logger.warning("Job not found for update: %s", job_id)
            return None

        updated = apply_update(job, changes)
        if updated is job:
            return job

        # Read-modify-write with no compare-and-swap: a concurrent writer can
        # lose an update. One writer per job is assumed.
        await self._save(updated)
        logger.info("Updated job %s (status: %s)", job_id, updated.status.value)
        return updated

    async def delete(self, job_id: str) -> None:
        if not is_valid_job_id(job_id):
            return
        try:
            await self._remove(job_id)
        except Exception as exc:
            logger.error("Failed to delete job %s: %s", job_id, exc)

    async def sweep_expired(self, retention: timedelta) -> int:
        """Remove terminal jobs that completed more than ``retention`` ago."""
        cutoff = utcnow() - retention
        expired = []
        async for job in self._iter_records():
            if job.status.is_terminal and job.completed_at and job.completed_at < cutoff:
                expired.append(job.id)

        for job_id in expired:
            await self.delete(job_id)

        if expired:
            logger.info("Swept %d expired job(s) from %s store", len(expired), self.backend)
        return len(expired)
