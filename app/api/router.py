"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from app.api.health import router as health_router
from app.api.drafts import router as drafts_router
from app.api.shipments import router as shipments_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(drafts_router)
api_router.include_router(shipments_router)
