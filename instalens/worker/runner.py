"""Run one scrape and report the outcome to the API's webhook."""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from instalens.jobs.callback_dispatcher import WEBHOOK_SECRET_HEADER
from instalens.jobs.dispatcher import describe_error
from instalens.scraping.urls import resolve_kind, validate_instagram_url

logger = logging.getLogger(__name__)


async def deliver_result(
    callback_url: str,
    payload: Dict[str, Any],
    *,
    secret: Optional[str] = None,
    attempts: int = 3,
    backoff_base: float = 1.0,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """POST ``payload`` to the webhook, retrying on failure.

    The receiver is idempotent per job, so a retry after a lost response is
    safe. Returns False once every attempt failed; never raises.
    """
    headers = {WEBHOOK_SECRET_HEADER: secret} if secret else {}
    attempts = max(1, attempts)
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        for attempt in range(attempts):
            try:
                response = await client.post(callback_url, json=payload, headers=headers)
                response.raise_for_status()
                logger.info("Delivered result for job %s (HTTP %d)", payload.get("jobId"), response.status_code)
                return True
            except httpx.HTTPError as exc:
                logger.warning(
                    "Webhook delivery for job %s failed (attempt %d/%d): %s",
                    payload.get("jobId"), attempt + 1, attempts, exc,
                )
            if attempt < attempts - 1:
                await asyncio.sleep(backoff_base * (2 ** attempt))
    logger.error("Giving up on webhook delivery for job %s", payload.get("jobId"))
    return False


async def run_and_report(
    job_id: str,
    url: str,
    mode: str,
    callback_url: str,
    scraper,
    *,
    secret: Optional[str] = None,
    attempts: int = 3,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Scrape ``url`` and POST ``{jobId, result}`` or ``{jobId, error}``."""
    try:
        url = validate_instagram_url(url)
        result = await scraper.scrape(url, resolve_kind(url, mode))
        payload: Dict[str, Any] = {"jobId": job_id, "result": result.dump()}
    except Exception as exc:
        logger.exception("Scrape for job %s failed", job_id)
        payload = {
            "jobId": job_id,
            "error": {"message": describe_error(exc), "details": repr(exc)},
        }

    await deliver_result(callback_url, payload, secret=secret, attempts=attempts, transport=transport)
    return payload
