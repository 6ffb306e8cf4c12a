"""
Health check endpoint.
/api/health ALWAYS returns 200; DB connectivity and engine availability
are reported, never enforced.
"""

from fastapi import APIRouter, Depends

from app.config import settings
from app.dependencies import get_pipeline, get_repository
from app.pipeline.orchestrator import UploadPipeline
from app.storage.repository import ShipmentRepository

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health_check(
    repository: ShipmentRepository = Depends(get_repository),
    pipeline: UploadPipeline = Depends(get_pipeline),
):
    db_ok = await repository.ping()
    engines = {e.engine_name: await e.health_check() for e in pipeline.recovery.engines}

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "pipeline_version": settings.PIPELINE_VERSION,
        "database": "connected" if db_ok else "unreachable",
        "engines": engines,
        "reconciliation_enabled": settings.reconciliation_enabled,
    }
