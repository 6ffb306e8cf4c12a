"""
FastAPI dependency injection.
Provides the record store, the upload pipeline, the draft service and API
key validation.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from app.config import settings
from app.models.database import async_session_factory
from app.pipeline.orchestrator import UploadPipeline
from app.review.drafts import DraftService
from app.storage.repository import ShipmentRepository
from app.storage.sql_repository import SqlShipmentRepository


# ── Singleton instances ──────────────────────────────────────
_repository: Optional[ShipmentRepository] = None
_pipeline: Optional[UploadPipeline] = None


def get_repository() -> ShipmentRepository:
    """Get or create the repository singleton."""
    global _repository
    if _repository is None:
        _repository = SqlShipmentRepository(async_session_factory)
    return _repository


def get_pipeline(repository: ShipmentRepository = Depends(get_repository)) -> UploadPipeline:
    global _pipeline
    if _pipeline is None or _pipeline.repository is not repository:
        _pipeline = UploadPipeline(repository)
    return _pipeline


def get_draft_service(repository: ShipmentRepository = Depends(get_repository)) -> DraftService:
    return DraftService(repository)


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key
