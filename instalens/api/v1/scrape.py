"""Scrape job API: start a scrape, poll its status, receive worker callbacks."""

import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from instalens.auth.access import verify_access_code, verify_webhook_secret
from instalens.jobs.callback_dispatcher import WEBHOOK_SECRET_HEADER
from instalens.jobs.dispatcher import DispatchError, ScrapeRequest
from instalens.jobs.models import JobRecord, JobStatus
from instalens.jobs.store import JobStoreError
from instalens.scraping.urls import InvalidInstagramUrl, resolve_kind, validate_instagram_url

router = APIRouter()
logger = logging.getLogger(__name__)

# These will be set by main.py during lifespan
_dispatcher = None
_job_store = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def set_job_store(store):
    global _job_store
    _job_store = store


def get_dispatcher():
    return _dispatcher


def get_job_store():
    return _job_store


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScrapeJobIn(_CamelModel):
    # Validated by hand so a bad URL is a 400, not a schema error
    url: Any = None
    mode: str = "auto"


class ScrapeJobOut(_CamelModel):
    job_id: str
    status: str


class WebhookIn(_CamelModel):
    job_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[Union[str, Dict[str, Any]]] = None


def error_message(error: Union[str, Dict[str, Any]]) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("error") or error)
    return error


def job_to_response(job: JobRecord) -> Dict[str, Any]:
    response: Dict[str, Any] = {
        "id": job.id,
        "status": job.status.value,
        "createdAt": job.created_at.isoformat(),
    }
    if job.started_at:
        response["startedAt"] = job.started_at.isoformat()

    if job.status == JobStatus.COMPLETED:
        response["result"] = job.result
        response["completedAt"] = job.completed_at.isoformat() if job.completed_at else None
    elif job.status == JobStatus.FAILED:
        response["error"] = job.error
        response["completedAt"] = job.completed_at.isoformat() if job.completed_at else None
    elif job.progress is not None:
        response["progress"] = job.progress.model_dump(exclude_none=True)

    return response


@router.post("/scrape", response_model=ScrapeJobOut, dependencies=[Depends(verify_access_code)])
async def start_scrape(body: ScrapeJobIn):
    """Validate the URL, create a job and dispatch the scrape.

    Poll GET /api/v1/scrape/status/{jobId} for the outcome.
    """
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Scrape dispatcher not initialized")

    try:
        url = validate_instagram_url(body.url)
        kind = resolve_kind(url, body.mode)
    except InvalidInstagramUrl as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    try:
        job = await _dispatcher.submit(ScrapeRequest(url=url, mode=body.mode, kind=kind))
    except DispatchError as exc:
        raise HTTPException(status_code=503, detail={"error": str(exc), "jobId": exc.job_id})
    except JobStoreError as exc:
        logger.error("Failed to create job: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to create job")

    return ScrapeJobOut(job_id=job.id, status=job.status.value)


@router.get("/scrape/status/{job_id}", dependencies=[Depends(verify_access_code)])
async def get_scrape_status(job_id: str):
    """Current status of a job; includes the result or error once finished."""
    if _job_store is None:
        raise HTTPException(status_code=503, detail="Job store not initialized")

    try:
        job = await _job_store.get(job_id)
    except JobStoreError as exc:
        logger.error("Failed to read job %s: %s", job_id, exc)
        raise HTTPException(status_code=500, detail="Failed to check job status")

    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job_to_response(job)


@router.post("/scrape/webhook")
async def scrape_webhook(
    body: WebhookIn,
    x_webhook_secret: Optional[str] = Header(None, alias=WEBHOOK_SECRET_HEADER),
):
    """Apply a completion or failure reported by the scrape worker.

    Safe to call repeatedly for the same job. Unknown jobs are acknowledged
    without any state change so the worker never treats them as fatal.
    """
    if _job_store is None:
        raise HTTPException(status_code=503, detail="Job store not initialized")
    verify_webhook_secret(x_webhook_secret)

    if not body.job_id:
        raise HTTPException(status_code=400, detail="Job ID is required")

    if body.error:
        changes = {"status": JobStatus.FAILED, "error": error_message(body.error)}
    elif body.result is not None:
        changes = {"status": JobStatus.COMPLETED, "result": body.result}
    else:
        raise HTTPException(status_code=400, detail="Either result or error must be provided")

    try:
        job = await _job_store.update(body.job_id, **changes)
    except JobStoreError as exc:
        logger.error("Failed to apply webhook for job %s: %s", body.job_id, exc)
        raise HTTPException(status_code=500, detail="Failed to process webhook")

    if job is None:
        logger.warning("Webhook for unknown job %s ignored", body.job_id)
        return {"success": True, "status": changes["status"].value, "applied": False}
    return {"success": True, "status": job.status.value, "applied": True}
