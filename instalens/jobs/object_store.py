"""Job store backed by object storage: one JSON object per job.

Layout: ``jobs/<job_id>.json`` holding the full serialized record. Lookups are
by key only; listing is used by the expiry sweep and nothing else. Every
process that points at the same storage sees the same jobs.
"""

import logging
from typing import AsyncIterator, Optional

from pydantic import ValidationError

from instalens.jobs.models import JobRecord
from instalens.jobs.store import JobStore, JobStoreError
from instalens.storage.objects import ObjectStorage, ObjectStorageError

logger = logging.getLogger(__name__)

PREFIX = "jobs/"


def job_key(job_id: str) -> str:
    return f"{PREFIX}{job_id}.json"


class ObjectJobStore(JobStore):
    def __init__(self, storage: ObjectStorage):
        self._storage = storage
        self.backend = storage.name

    async def _load(self, job_id: str) -> Optional[JobRecord]:
        try:
            raw = await self._storage.read(job_key(job_id))
        except ObjectStorageError as exc:
            raise JobStoreError(str(exc)) from exc
        if raw is None:
            return None
        try:
            return JobRecord.from_json(raw)
        except ValidationError:
            logger.error("Discarding unreadable job record %s", job_id)
            return None

    async def _save(self, job: JobRecord) -> None:
        try:
            await self._storage.write(job_key(job.id), job.to_json().encode("utf-8"))
        except ObjectStorageError as exc:
            raise JobStoreError(f"Failed to save job {job.id}: {exc}") from exc

    async def _remove(self, job_id: str) -> None:
        await self._storage.remove(job_key(job_id))

    async def _iter_records(self) -> AsyncIterator[JobRecord]:
        for key in await self._storage.list_keys(PREFIX):
            if not key.endswith(".json"):
                continue
            job_id = key[len(PREFIX):-len(".json")]
            job = await self.get(job_id)
            if job is not None:
                yield job
