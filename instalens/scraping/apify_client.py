"""Thin async client for the Apify REST API (actor runs, datasets, account)."""

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional, Protocol

import httpx

from instalens.config import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
TERMINAL_RUN_STATUSES = {"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT"}
WAIT_FOR_FINISH_SECONDS = 60


class ApifyError(Exception):
    """Base exception for Apify errors."""


class ApifyRetryableError(ApifyError):
    """Raised when a retryable HTTP status/error is encountered."""


class ApifyNotConfigured(ApifyError):
    """Raised when no API token is available."""


class AsyncTransport(Protocol):
    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]],
        json: Optional[Any],
        headers: Dict[str, str],
        timeout: float,
    ) -> httpx.Response: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """httpx-based transport with connection pooling."""

    def __init__(self, base_url: str):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=None)

    async def request(self, method, path, *, params, json, headers, timeout) -> httpx.Response:
        return await self._client.request(
            method, path, params=params, json=json, headers=headers, timeout=timeout
        )

    async def close(self) -> None:
        await self._client.aclose()


def actor_path(actor_id: str) -> str:
    """Apify addresses ``user/actor`` as ``user~actor`` in URLs."""
    return actor_id.replace("/", "~")


class ApifyClient:
    def __init__(
        self,
        token: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        max_run_seconds: float = 900.0,
        transport: Optional[AsyncTransport] = None,
    ):
        self.token = token or settings.apify_token
        self.base_url = (base_url or settings.apify_base_url).rstrip("/")
        self.timeout = timeout or settings.apify_request_timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.max_run_seconds = max_run_seconds
        self._transport = transport or HttpxTransport(self.base_url)
        self._owns_transport = transport is None

    @property
    def configured(self) -> bool:
        return bool(self.token)

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.close()

    async def run_actor(self, actor_id: str, run_input: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Start an actor run, wait for it to finish and return its dataset items."""
        logger.info("Starting Apify actor %s", actor_id)
        body = await self._request(
            "POST",
            f"/v2/acts/{actor_path(actor_id)}/runs",
            params={"waitForFinish": WAIT_FOR_FINISH_SECONDS},
            json=run_input,
        )
        run = body.get("data") or {}
        run_id = run.get("id")
        if not run_id:
            raise ApifyError(f"Apify did not return a run for actor {actor_id}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_run_seconds
        while run.get("status") not in TERMINAL_RUN_STATUSES:
            if loop.time() > deadline:
                raise ApifyError(f"Actor run {run_id} did not finish in {self.max_run_seconds:.0f}s")
            body = await self._request(
                "GET",
                f"/v2/actor-runs/{run_id}",
                params={"waitForFinish": WAIT_FOR_FINISH_SECONDS},
            )
            run = body.get("data") or {}

        status = run.get("status")
        if status != "SUCCEEDED":
            raise ApifyError(f"Actor run {run_id} finished with status {status}")

        dataset_id = run.get("defaultDatasetId")
        if not dataset_id:
            raise ApifyError(f"Actor run {run_id} has no dataset")
        items = await self._request(
            "GET",
            f"/v2/datasets/{dataset_id}/items",
            params={"clean": "true", "format": "json"},
        )
        if not isinstance(items, list):
            raise ApifyError(f"Unexpected dataset payload for run {run_id}")
        logger.info("Actor %s returned %d item(s)", actor_id, len(items))
        return items

    async def get_user(self) -> Dict[str, Any]:
        body = await self._request("GET", "/v2/users/me")
        return body.get("data") or {}

    async def get_limits(self) -> Dict[str, Any]:
        body = await self._request("GET", "/v2/users/me/limits")
        return body.get("data") or {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        if not self.token:
            raise ApifyNotConfigured("APIFY_TOKEN environment variable is not set")

        headers = {"Authorization": f"Bearer {self.token}"}
        attempts = 0
        last_error: Optional[Exception] = None
        while attempts < self.max_attempts:
            try:
                response = await self._transport.request(
                    method, path, params=params, json=json, headers=headers, timeout=self.timeout
                )
            except httpx.RequestError as exc:
                last_error = exc
                await self._maybe_wait(attempts)
                attempts += 1
                continue

            if response.status_code in RETRYABLE_STATUS:
                last_error = ApifyRetryableError(f"Apify returned {response.status_code} for {path}")
                await self._maybe_wait(attempts)
                attempts += 1
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise ApifyError(f"Apify returned {response.status_code} for {path}") from exc

            try:
                return response.json()
            except ValueError as exc:
                raise ApifyError("Invalid JSON from Apify") from exc

        if isinstance(last_error, ApifyError):
            raise last_error
        if last_error:
            raise ApifyError(str(last_error)) from last_error
        raise ApifyError("Apify request failed")

    async def _maybe_wait(self, attempt: int) -> None:
        if attempt >= self.max_attempts - 1:
            return
        delay = self.backoff_base * (2 ** attempt)
        jitter = random.uniform(0, 0.3)
        await asyncio.sleep(delay + jitter)
