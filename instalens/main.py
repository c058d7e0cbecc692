"""InstaLens API - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from instalens.config import settings
from instalens.api.v1.router import v1_router
from instalens.api.v1.health import router as health_root_router
from instalens.api.v1 import scrape as scrape_api
from instalens.api.v1 import ask as ask_api
from instalens.api.v1 import credits as credits_api
from instalens.jobs.factory import build_dispatcher, build_job_store
from instalens.jobs.sweeper import JobSweeper
from instalens.qa.assistant import InstagramAssistant
from instalens.scraping.apify_client import ApifyClient
from instalens.scraping.instagram import InstagramScraper

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting InstaLens API on port %s", settings.port)
    logger.info("Job store: %s", settings.job_store)
    logger.info("Dispatch mode: %s", settings.dispatch_mode)

    store = build_job_store(settings)
    apify_client = ApifyClient()
    if not apify_client.configured:
        logger.warning("APIFY_TOKEN is not set; scrapes and credits will fail")
    scraper = InstagramScraper(apify_client)

    dispatcher = build_dispatcher(settings, store, scraper)
    await dispatcher.start()
    logger.info("Scrape dispatcher started (%s)", dispatcher.mode)

    sweeper = JobSweeper(
        store,
        retention=timedelta(minutes=settings.job_retention_minutes),
        interval=timedelta(minutes=settings.job_sweep_interval_minutes),
    )
    await sweeper.start()

    # Wire services into API endpoints
    scrape_api.set_job_store(store)
    scrape_api.set_dispatcher(dispatcher)
    credits_api.set_apify_client(apify_client)
    ask_api.set_assistant(
        InstagramAssistant(openai_api_key=settings.openai_api_key, openai_model=settings.openai_model)
    )

    yield

    logger.info("Shutting down InstaLens API")
    await sweeper.stop()
    await dispatcher.stop()
    await apify_client.aclose()


app = FastAPI(
    title="InstaLens API",
    description="Scrape public Instagram profiles and posts, then ask questions about them",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors (400), not 422."""
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors()), "error": "Invalid request format"},
    )


# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
