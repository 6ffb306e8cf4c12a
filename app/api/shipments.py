"""
/api shipment endpoints: list, detail and the CSV / XLSX exports.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from app.api.errors import parse_id, to_http
from app.dependencies import get_repository, verify_api_key
from app.errors import ShipmentNotFoundError
from app.review.export import build_csv, build_xlsx
from app.schemas.shipments import ShipmentSummary, ShipmentView
from app.storage.repository import ShipmentRepository

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["shipments"], dependencies=[Depends(verify_api_key)])


def _export_name(ext: str) -> str:
    return f"shipments_{datetime.now(timezone.utc):%Y%m%d_%H%M%S}.{ext}"


@router.get("/shipments", response_model=list[ShipmentSummary])
async def list_shipments(
    limit: int = Query(100, ge=1, le=1000),
    repository: ShipmentRepository = Depends(get_repository),
):
    """Most recent committed shipments first."""
    return await repository.list_shipments(limit=limit)


@router.get("/shipments.csv")
async def export_shipments_csv(repository: ShipmentRepository = Depends(get_repository)):
    """Export all committed shipments as CSV (headline fields, every value quoted)."""
    shipments = await repository.list_shipments(limit=None)
    body = build_csv(shipments)
    logger.info("shipments_exported", format="csv", count=len(shipments))
    return StreamingResponse(
        iter([body]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={_export_name('csv')}"},
    )


@router.get("/shipments.xlsx")
async def export_shipments_xlsx(repository: ShipmentRepository = Depends(get_repository)):
    """Export all committed shipments as a formatted XLSX workbook."""
    shipments = await repository.list_shipments(limit=None)
    body = build_xlsx(shipments)
    logger.info("shipments_exported", format="xlsx", count=len(shipments))
    return StreamingResponse(
        iter([body]),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={_export_name('xlsx')}"},
    )


@router.get("/shipment/{shipment_id}", response_model=ShipmentView)
async def get_shipment(shipment_id: str, repository: ShipmentRepository = Depends(get_repository)):
    shipment = await repository.get_shipment(parse_id(shipment_id, kind="shipment"))
    if shipment is None:
        raise to_http(ShipmentNotFoundError(f"Shipment {shipment_id} not found"))
    return shipment
