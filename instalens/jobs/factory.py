"""Build the configured job store and dispatcher once, at startup."""

from instalens.config import Settings
from instalens.jobs.callback_dispatcher import CallbackDispatcher, build_callback_url
from instalens.jobs.dispatcher import ScrapeDispatcher, SyncDispatcher
from instalens.jobs.in_process_queue import InProcessQueue
from instalens.jobs.memory_store import InMemoryJobStore
from instalens.jobs.object_store import ObjectJobStore
from instalens.jobs.store import JobStore
from instalens.storage.objects import LocalObjectStorage, SupabaseObjectStorage

JOB_STORE_BACKENDS = ("memory", "local", "supabase")
DISPATCH_MODES = ("sync", "background", "callback")


def build_job_store(settings: Settings) -> JobStore:
    backend = settings.job_store.lower()
    if backend == "memory":
        return InMemoryJobStore()
    if backend == "local":
        return ObjectJobStore(LocalObjectStorage(settings.job_store_dir))
    if backend == "supabase":
        from instalens.storage.supabase_client import ensure_private_bucket, get_supabase

        client = get_supabase()
        ensure_private_bucket(client, settings.supabase_jobs_bucket)
        return ObjectJobStore(SupabaseObjectStorage(client, settings.supabase_jobs_bucket))
    raise ValueError(
        f"Unknown JOB_STORE {settings.job_store!r}; expected one of {', '.join(JOB_STORE_BACKENDS)}"
    )


def build_dispatcher(settings: Settings, store: JobStore, scraper) -> ScrapeDispatcher:
    mode = settings.dispatch_mode.lower()
    if mode == "sync":
        return SyncDispatcher(store, scraper, timeout=settings.sync_scrape_timeout_seconds)
    if mode == "background":
        return InProcessQueue(store, scraper, workers=settings.max_concurrent_scrapes)
    if mode == "callback":
        return CallbackDispatcher(
            store,
            settings.scrape_worker_url,
            build_callback_url(settings.public_base_url),
            webhook_secret=settings.webhook_secret,
        )
    raise ValueError(
        f"Unknown DISPATCH_MODE {settings.dispatch_mode!r}; expected one of {', '.join(DISPATCH_MODES)}"
    )
