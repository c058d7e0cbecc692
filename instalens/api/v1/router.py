"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from instalens.api.v1.health import router as health_router
from instalens.api.v1.scrape import router as scrape_router
from instalens.api.v1.ask import router as ask_router
from instalens.api.v1.credits import router as credits_router
from instalens.api.v1.access import router as access_router
from instalens.api.v1.image_proxy import router as image_proxy_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(scrape_router, tags=["scrape"])
v1_router.include_router(ask_router, tags=["ask"])
v1_router.include_router(credits_router, tags=["credits"])
v1_router.include_router(access_router, tags=["access"])
v1_router.include_router(image_proxy_router, tags=["images"])
