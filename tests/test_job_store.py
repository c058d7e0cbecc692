import json
import os
from datetime import timedelta

import pytest

from instalens.jobs.memory_store import InMemoryJobStore
from instalens.jobs.models import JobStatus, is_valid_job_id, new_job_id, utcnow
from instalens.jobs.object_store import ObjectJobStore, job_key
from instalens.jobs.store import JobStoreError
from instalens.storage.objects import LocalObjectStorage, ObjectStorage, ObjectStorageError


@pytest.fixture(params=["memory", "local"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryJobStore()
    return ObjectJobStore(LocalObjectStorage(str(tmp_path)))


RESULT = {"type": "profile", "profile": {"profile": {"username": "alice"}, "posts": []}}


def test_new_job_ids_are_unique_and_valid():
    ids = {new_job_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(is_valid_job_id(job_id) for job_id in ids)
    assert all(job_id.startswith("job-") for job_id in ids)


@pytest.mark.parametrize("job_id", ["", "../etc/passwd", "job 1", "a" * 129, None, 42])
def test_malformed_job_ids_are_invalid(job_id):
    assert not is_valid_job_id(job_id)


@pytest.mark.asyncio
async def test_create_starts_pending(store):
    job = await store.create(url="https://instagram.com/alice", mode="profile")

    fetched = await store.get(job.id)
    assert fetched is not None
    assert fetched.status == JobStatus.PENDING
    assert fetched.url == "https://instagram.com/alice"
    assert fetched.result is None
    assert fetched.error is None
    assert fetched.started_at is None


@pytest.mark.asyncio
async def test_get_unknown_or_malformed_returns_none(store):
    assert await store.get("job-0-doesnotexist") is None
    assert await store.get("../../secrets") is None


@pytest.mark.asyncio
async def test_complete_sets_result_and_timestamps(store):
    job = await store.create()
    processing = await store.update(job.id, status="processing", progress={"message": "Scraping", "percent": 10})
    assert processing.status == JobStatus.PROCESSING
    assert processing.started_at is not None
    assert processing.progress.percent == 10

    done = await store.update(job.id, status="completed", result=RESULT)

    assert done.status == JobStatus.COMPLETED
    assert done.result == RESULT
    assert done.error is None
    assert done.progress is None
    assert done.completed_at is not None
    assert done.completed_at >= done.started_at
    assert (await store.get(job.id)).result == RESULT


@pytest.mark.asyncio
async def test_fail_sets_error_without_result(store):
    job = await store.create()
    failed = await store.update(job.id, status="failed", error="Actor run failed")

    assert failed.status == JobStatus.FAILED
    assert failed.error == "Actor run failed"
    assert failed.result is None
    assert failed.completed_at is not None


@pytest.mark.asyncio
async def test_update_unknown_job_does_not_create_it(store):
    assert await store.update("job-0-missing", status="completed", result=RESULT) is None
    assert await store.get("job-0-missing") is None


@pytest.mark.asyncio
async def test_repeated_terminal_update_is_noop(store):
    job = await store.create()
    first = await store.update(job.id, status="completed", result=RESULT)
    second = await store.update(job.id, status="completed", result={"type": "post"})

    assert second.result == RESULT
    assert second.completed_at == first.completed_at


@pytest.mark.asyncio
async def test_terminal_job_cannot_change_outcome(store):
    job = await store.create()
    await store.update(job.id, status="completed", result=RESULT)

    after = await store.update(job.id, status="failed", error="late failure")

    assert after.status == JobStatus.COMPLETED
    assert after.error is None
    assert (await store.get(job.id)).status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_backwards_transition_is_rejected(store):
    job = await store.create()
    await store.update(job.id, status="processing")

    after = await store.update(job.id, status="pending")

    assert after.status == JobStatus.PROCESSING


@pytest.mark.asyncio
async def test_invalid_changes_raise(store):
    job = await store.create()
    with pytest.raises(ValueError):
        await store.update(job.id, status="processing", result=RESULT)
    with pytest.raises(ValueError):
        await store.update(job.id, status="completed")
    with pytest.raises(ValueError):
        await store.update(job.id, status="failed")
    with pytest.raises(ValueError):
        await store.update(job.id, created_at=utcnow())
    assert (await store.get(job.id)).status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_delete_removes_job_and_tolerates_missing(store):
    job = await store.create()
    await store.delete(job.id)
    assert await store.get(job.id) is None

    await store.delete(job.id)
    await store.delete("not a valid id")


@pytest.mark.asyncio
async def test_sweep_removes_only_expired_terminal_jobs(store):
    old_done = await store.create()
    old_done = await store.update(old_done.id, status="completed", result=RESULT)
    await store._save(old_done.model_copy(update={"completed_at": utcnow() - timedelta(hours=2)}))

    recent_failed = await store.create()
    await store.update(recent_failed.id, status="failed", error="boom")

    stale_pending = await store.create()
    await store._save(
        (await store.get(stale_pending.id)).model_copy(update={"created_at": utcnow() - timedelta(days=1)})
    )

    removed = await store.sweep_expired(timedelta(hours=1))

    assert removed == 1
    assert await store.get(old_done.id) is None
    assert await store.get(recent_failed.id) is not None
    assert await store.get(stale_pending.id) is not None


@pytest.mark.asyncio
async def test_local_store_writes_camel_case_json(tmp_path):
    store = ObjectJobStore(LocalObjectStorage(str(tmp_path)))
    job = await store.create(url="https://instagram.com/alice", mode="auto")
    await store.update(job.id, status="completed", result=RESULT)

    path = tmp_path / "jobs" / f"{job.id}.json"
    assert path.exists()
    data = json.loads(path.read_text())
    assert data["id"] == job.id
    assert data["status"] == "completed"
    assert "createdAt" in data
    assert "completedAt" in data
    assert store.backend == "local"


@pytest.mark.asyncio
async def test_local_stores_share_state_through_the_directory(tmp_path):
    writer = ObjectJobStore(LocalObjectStorage(str(tmp_path)))
    reader = ObjectJobStore(LocalObjectStorage(str(tmp_path)))

    job = await writer.create()
    await reader.update(job.id, status="failed", error="worker crashed")

    assert (await writer.get(job.id)).status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_unreadable_record_reads_as_missing(tmp_path):
    storage = LocalObjectStorage(str(tmp_path))
    store = ObjectJobStore(storage)
    await storage.write(job_key("job-1-corrupt"), b"{not json")

    assert await store.get("job-1-corrupt") is None


class BrokenStorage(ObjectStorage):
    name = "broken"

    async def read(self, key):
        raise ObjectStorageError("bucket unavailable")

    async def write(self, key, data):
        raise ObjectStorageError("bucket unavailable")

    async def remove(self, key):
        raise ObjectStorageError("bucket unavailable")

    async def list_keys(self, prefix):
        return []


@pytest.mark.asyncio
async def test_storage_failures_surface_as_job_store_errors():
    store = ObjectJobStore(BrokenStorage())

    with pytest.raises(JobStoreError):
        await store.create()
    with pytest.raises(JobStoreError):
        await store.get("job-1-abc")

    # delete stays best-effort
    await store.delete("job-1-abc")


def test_local_storage_defaults_to_temp_dir():
    storage = LocalObjectStorage()
    assert os.path.isdir(storage.base_dir)
