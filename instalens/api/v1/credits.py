"""Remaining scraping credits."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from instalens.auth.access import verify_access_code
from instalens.scraping.apify_client import ApifyError
from instalens.scraping.credits import get_credits

router = APIRouter()
logger = logging.getLogger(__name__)

_apify_client = None


def set_apify_client(client):
    global _apify_client
    _apify_client = client


@router.get("/credits", dependencies=[Depends(verify_access_code)])
async def read_credits():
    timestamp = datetime.now(timezone.utc).isoformat()
    if _apify_client is None:
        return JSONResponse(
            status_code=503,
            content={"credits": 0, "success": False, "error": "Apify client not initialized", "timestamp": timestamp},
        )

    try:
        credits = await get_credits(_apify_client)
    except ApifyError as exc:
        logger.error("Error fetching Apify credits: %s", exc)
        return JSONResponse(
            status_code=502,
            content={"credits": 0, "success": False, "error": str(exc), "timestamp": timestamp},
        )

    return {"credits": credits, "success": True, "timestamp": timestamp}
