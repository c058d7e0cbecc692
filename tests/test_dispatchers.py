import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from conftest import FakeScraper
from instalens.config import Settings
from instalens.jobs.callback_dispatcher import CallbackDispatcher, build_callback_url
from instalens.jobs.dispatcher import DispatchError, ScrapeRequest, SyncDispatcher
from instalens.jobs.factory import build_dispatcher, build_job_store
from instalens.jobs.in_process_queue import InProcessQueue
from instalens.jobs.memory_store import InMemoryJobStore
from instalens.jobs.models import JobStatus
from instalens.jobs.object_store import ObjectJobStore
from instalens.jobs.sweeper import JobSweeper
from instalens.scraping.instagram import ScrapeError
from instalens.storage.objects import LocalObjectStorage

PROFILE_REQUEST = ScrapeRequest(url="https://instagram.com/alice", mode="auto", kind="profile")
CALLBACK_URL = "https://api.example.com/api/v1/scrape/webhook"


@pytest.mark.asyncio
async def test_sync_dispatcher_completes_job(job_store, fake_scraper):
    dispatcher = SyncDispatcher(job_store, fake_scraper)

    job = await dispatcher.submit(PROFILE_REQUEST)

    assert job.status == JobStatus.COMPLETED
    assert job.result["type"] == "profile"
    assert job.result["profile"]["profile"]["username"] == "alice"
    assert fake_scraper.calls == [("https://instagram.com/alice", "profile")]


@pytest.mark.asyncio
async def test_sync_dispatcher_records_scrape_failure(job_store):
    dispatcher = SyncDispatcher(job_store, FakeScraper(error=ScrapeError("No data returned from Apify")))

    job = await dispatcher.submit(PROFILE_REQUEST)

    assert job.status == JobStatus.FAILED
    assert job.error == "No data returned from Apify"
    assert job.result is None


@pytest.mark.asyncio
async def test_sync_dispatcher_times_out(job_store):
    dispatcher = SyncDispatcher(job_store, FakeScraper(delay=1.0), timeout=0.05)

    job = await dispatcher.submit(PROFILE_REQUEST)

    assert job.status == JobStatus.FAILED
    assert "timed out" in job.error


@pytest.mark.asyncio
async def test_in_process_queue_runs_jobs_in_background(job_store, fake_scraper):
    queue = InProcessQueue(job_store, fake_scraper, workers=2)
    await queue.start()
    try:
        first = await queue.submit(PROFILE_REQUEST)
        second = await queue.submit(
            ScrapeRequest(url="https://instagram.com/p/ABC/", mode="auto", kind="post")
        )
        assert first.status == JobStatus.PENDING

        await queue.join()

        assert (await job_store.get(first.id)).status == JobStatus.COMPLETED
        assert (await job_store.get(second.id)).status == JobStatus.COMPLETED
        assert len(fake_scraper.calls) == 2
    finally:
        await queue.stop()
    assert not queue.running


@pytest.mark.asyncio
async def test_in_process_queue_records_failures(job_store):
    queue = InProcessQueue(job_store, FakeScraper(error=RuntimeError("actor crashed")))
    await queue.start()
    try:
        job = await queue.submit(PROFILE_REQUEST)
        await queue.join()
    finally:
        await queue.stop()

    stored = await job_store.get(job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.error == "actor crashed"


@pytest.mark.asyncio
async def test_in_process_queue_not_running_fails_job(job_store, fake_scraper):
    queue = InProcessQueue(job_store, fake_scraper)

    with pytest.raises(DispatchError) as exc_info:
        await queue.submit(PROFILE_REQUEST)

    job = await job_store.get(exc_info.value.job_id)
    assert job.status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_callback_dispatcher_posts_job_to_worker(job_store):
    seen = []

    def handler(request):
        seen.append((request.url, request.headers.get("X-Webhook-Secret"), json.loads(request.content)))
        return httpx.Response(202, json={"accepted": True})

    dispatcher = CallbackDispatcher(
        job_store,
        "https://worker.example.com/run",
        CALLBACK_URL,
        webhook_secret="s3cret",
        transport=httpx.MockTransport(handler),
    )

    job = await dispatcher.submit(PROFILE_REQUEST)

    assert job.status == JobStatus.PROCESSING
    url, secret, payload = seen[0]
    assert str(url) == "https://worker.example.com/run"
    assert secret == "s3cret"
    assert payload == {
        "jobId": job.id,
        "url": "https://instagram.com/alice",
        "mode": "profile",
        "callbackUrl": CALLBACK_URL,
    }


@pytest.mark.asyncio
async def test_callback_dispatcher_without_worker_url_fails_job(job_store):
    dispatcher = CallbackDispatcher(job_store, None, CALLBACK_URL)

    with pytest.raises(DispatchError, match="SCRAPE_WORKER_URL"):
        await dispatcher.submit(PROFILE_REQUEST)

    assert len(job_store) == 1
    job = await job_store.get(next(iter(job_store._jobs)))
    assert job.status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_callback_dispatcher_worker_error_fails_job(job_store):
    dispatcher = CallbackDispatcher(
        job_store,
        "https://worker.example.com/run",
        CALLBACK_URL,
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    with pytest.raises(DispatchError, match="HTTP 500") as exc_info:
        await dispatcher.submit(PROFILE_REQUEST)

    assert (await job_store.get(exc_info.value.job_id)).status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_callback_dispatcher_unreachable_worker_fails_job(job_store):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = CallbackDispatcher(
        job_store,
        "https://worker.example.com/run",
        CALLBACK_URL,
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(DispatchError, match="unreachable") as exc_info:
        await dispatcher.submit(PROFILE_REQUEST)

    job = await job_store.get(exc_info.value.job_id)
    assert job.status == JobStatus.FAILED
    assert "unreachable" in job.error


class SlowLocalStorage(LocalObjectStorage):
    """Local storage with slow reads, widening read-modify-write windows."""

    async def read(self, key):
        data = await super().read(key)
        await asyncio.sleep(0.05)
        return data


@pytest.mark.asyncio
async def test_callback_during_hand_off_is_not_overwritten(tmp_path):
    store = ObjectJobStore(SlowLocalStorage(str(tmp_path)))
    callbacks = []

    async def handler(request):
        job_id = json.loads(request.content)["jobId"]
        # The worker reports back while its 202 is still in flight
        callbacks.append(asyncio.create_task(store.update(job_id, status="failed", error="boom")))
        return httpx.Response(202)

    dispatcher = CallbackDispatcher(
        store,
        "https://worker.example.com/run",
        CALLBACK_URL,
        transport=httpx.MockTransport(handler),
    )

    job = await dispatcher.submit(PROFILE_REQUEST)
    await asyncio.gather(*callbacks)

    assert job.status == JobStatus.PROCESSING
    stored = await store.get(job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.error == "boom"


@pytest.mark.asyncio
async def test_callback_dispatcher_marks_processing_before_hand_off(job_store):
    seen = []

    async def handler(request):
        job_id = json.loads(request.content)["jobId"]
        seen.append((await job_store.get(job_id)).status)
        return httpx.Response(202)

    dispatcher = CallbackDispatcher(
        job_store,
        "https://worker.example.com/run",
        CALLBACK_URL,
        transport=httpx.MockTransport(handler),
    )

    await dispatcher.submit(PROFILE_REQUEST)

    assert seen == [JobStatus.PROCESSING]


def test_build_callback_url():
    assert build_callback_url("https://api.example.com/") == CALLBACK_URL
    assert build_callback_url(None) is None


def test_factory_builds_configured_components(tmp_path, fake_scraper):
    settings = Settings(job_store="local", job_store_dir=str(tmp_path), dispatch_mode="sync")

    store = build_job_store(settings)
    dispatcher = build_dispatcher(settings, store, fake_scraper)

    assert isinstance(store, ObjectJobStore)
    assert store.backend == "local"
    assert isinstance(dispatcher, SyncDispatcher)
    assert isinstance(
        build_dispatcher(Settings(dispatch_mode="background"), store, fake_scraper), InProcessQueue
    )
    assert isinstance(
        build_dispatcher(Settings(dispatch_mode="callback"), store, fake_scraper), CallbackDispatcher
    )


def test_factory_rejects_unknown_backends(fake_scraper):
    with pytest.raises(ValueError):
        build_job_store(Settings(job_store="redis"))
    with pytest.raises(ValueError):
        build_dispatcher(Settings(dispatch_mode="celery"), InMemoryJobStore(), fake_scraper)


@pytest.mark.asyncio
async def test_sweeper_run_once_removes_expired_jobs(job_store):
    job = await job_store.create()
    await job_store.update(job.id, status="failed", error="boom")
    sweeper = JobSweeper(job_store, retention=timedelta(seconds=-1), interval=timedelta(minutes=10))

    assert await sweeper.run_once() == 1
    assert await job_store.get(job.id) is None


@pytest.mark.asyncio
async def test_sweeper_start_stop(job_store):
    sweeper = JobSweeper(job_store, retention=timedelta(minutes=60), interval=timedelta(minutes=10))
    await sweeper.start()
    await sweeper.stop()
    await sweeper.stop()
