"""Proxy Instagram CDN images, which browsers cannot load cross-origin."""

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse, Response

router = APIRouter()
logger = logging.getLogger(__name__)

ALLOWED_HOST_SUFFIXES = ("cdninstagram.com", "fbcdn.net", "instagram.com")
UPSTREAM_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Referer": "https://www.instagram.com/",
}

# Tests swap in an httpx.MockTransport
_transport: Optional[httpx.AsyncBaseTransport] = None


def set_transport(transport):
    global _transport
    _transport = transport


def is_allowed_image_url(url: str) -> bool:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if parsed.scheme not in ("http", "https") or not host:
        return False
    return any(host == suffix or host.endswith("." + suffix) for suffix in ALLOWED_HOST_SUFFIXES)


@router.get("/image-proxy")
async def image_proxy(url: Optional[str] = Query(None)):
    if not url:
        raise HTTPException(status_code=400, detail="URL parameter is required")
    if not is_allowed_image_url(url):
        raise HTTPException(status_code=400, detail="Only Instagram CDN URLs are allowed")

    try:
        async with httpx.AsyncClient(timeout=20.0, transport=_transport, follow_redirects=True) as client:
            upstream = await client.get(url, headers=UPSTREAM_HEADERS)
    except httpx.RequestError as exc:
        logger.error("Image proxy error for %s: %s", url, exc)
        raise HTTPException(status_code=502, detail="Failed to proxy image")

    if upstream.is_error:
        return JSONResponse(
            status_code=upstream.status_code,
            content={"detail": f"Failed to fetch image: {upstream.reason_phrase}"},
        )

    return Response(
        content=upstream.content,
        media_type=upstream.headers.get("content-type", "image/jpeg"),
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
