"""In-memory job store.

All state lives in a dict owned by this process, so the scrape, status and
webhook endpoints must run in the same long-lived process. A restart clears
every job.
"""

from typing import AsyncIterator, Dict, Optional

from instalens.jobs.models import JobRecord
from instalens.jobs.store import JobStore


class InMemoryJobStore(JobStore):
    backend = "memory"

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}

    async def _load(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    async def _save(self, job: JobRecord) -> None:
        self._jobs[job.id] = job

    async def _remove(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    async def _iter_records(self) -> AsyncIterator[JobRecord]:
        for job in list(self._jobs.values()):
            yield job

    def __len__(self) -> int:
        return len(self._jobs)
