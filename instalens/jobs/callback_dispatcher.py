"""Dispatch scrapes to a remote worker that reports back through the webhook.

The worker (see ``instalens.worker``) accepts the job and answers right away;
the outcome arrives later as ``POST /api/v1/scrape/webhook``. Nothing here
waits for the scrape, so request time stays short regardless of scrape length.
"""

import logging
from typing import Optional

import httpx

from instalens.jobs.dispatcher import ScrapeDispatcher, ScrapeRequest
from instalens.jobs.models import JobRecord, JobStatus
from instalens.jobs.store import JobStore

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/v1/scrape/webhook"
WEBHOOK_SECRET_HEADER = "X-Webhook-Secret"


def build_callback_url(public_base_url: Optional[str]) -> Optional[str]:
    if not public_base_url:
        return None
    return public_base_url.rstrip("/") + WEBHOOK_PATH


class CallbackDispatcher(ScrapeDispatcher):
    mode = "callback"

    def __init__(
        self,
        store: JobStore,
        worker_url: Optional[str],
        callback_url: Optional[str],
        *,
        webhook_secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(store)
        self.worker_url = worker_url
        self.callback_url = callback_url
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self._transport = transport

    async def submit(self, request: ScrapeRequest) -> JobRecord:
        job = await self.store.create(url=request.url, mode=request.kind)

        if not self.worker_url:
            await self._fail(job.id, "Scrape worker is not configured (SCRAPE_WORKER_URL)")
        if not self.callback_url:
            await self._fail(job.id, "Callback URL is not configured (PUBLIC_BASE_URL)")

        # Processing is written before the hand-off so the webhook is the only
        # writer once the worker has the job.
        processing = await self.store.update(job.id, status=JobStatus.PROCESSING) or job

        payload = {
            "jobId": job.id,
            "url": request.url,
            "mode": request.kind,
            "callbackUrl": self.callback_url,
        }
        headers = {WEBHOOK_SECRET_HEADER: self.webhook_secret} if self.webhook_secret else {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.worker_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            await self._fail(
                job.id, f"Scrape worker rejected the job (HTTP {exc.response.status_code})"
            )
        except httpx.RequestError as exc:
            await self._fail(job.id, f"Scrape worker unreachable: {exc}")

        logger.info("Dispatched job %s to scrape worker", job.id)
        return processing
