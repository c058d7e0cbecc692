"""Scrape worker service.

Deployed separately from the API (``uvicorn instalens.worker.app:app``) on a
host without a short request timeout. ``POST /run`` accepts a job and returns
202 at once; the scrape runs in the background and the outcome goes to the
job's ``callbackUrl``.
"""

import logging
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Header
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from instalens.auth.access import verify_webhook_secret
from instalens.config import settings
from instalens.jobs.callback_dispatcher import WEBHOOK_SECRET_HEADER
from instalens.scraping.instagram import InstagramScraper
from instalens.worker.runner import run_and_report

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="InstaLens Scrape Worker", version="0.1.0")

# Built on first use so the app imports without credentials
_scraper: Optional[InstagramScraper] = None


def get_scraper() -> InstagramScraper:
    global _scraper
    if _scraper is None:
        _scraper = InstagramScraper()
    return _scraper


def set_scraper(scraper) -> None:
    global _scraper
    _scraper = scraper


class RunRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str = Field(..., min_length=1)
    url: str
    mode: str = "auto"
    callback_url: str


@app.post("/run", status_code=202)
async def run_job(
    request: RunRequest,
    background_tasks: BackgroundTasks,
    x_webhook_secret: Optional[str] = Header(None, alias=WEBHOOK_SECRET_HEADER),
):
    verify_webhook_secret(x_webhook_secret)

    logger.info("Accepted job %s (%s %s)", request.job_id, request.mode, request.url)
    background_tasks.add_task(
        run_and_report,
        request.job_id,
        request.url,
        request.mode,
        request.callback_url,
        get_scraper(),
        secret=settings.webhook_secret,
        attempts=settings.webhook_delivery_attempts,
    )
    return {"accepted": True, "jobId": request.job_id}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "apify_configured": bool(settings.apify_token)}
