"""
Committed shipment views.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, BaseModel

from app.schemas.records import ExtractedRecord


class ShipmentSummary(BaseModel):
    """Headline columns for lists and exports."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime
    shipment_no: str = ""
    order_no: str = ""
    customer_no: str = ""
    po_no: str = ""
    consignee_address: str = ""
    total_net_kg: Optional[float] = None
    total_gross_kg: Optional[float] = None
    total_pkgs: Optional[int] = None
    item_count: int = 0


class ShipmentView(ExtractedRecord):
    """Full committed record with its items."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    draft_id: Optional[uuid.UUID] = None
    created_at: datetime


# Column order of the CSV / XLSX exports
EXPORT_COLUMNS: tuple[str, ...] = (
    "created_at",
    "id",
    "shipment_no",
    "order_no",
    "customer_no",
    "po_no",
    "total_net_kg",
    "total_gross_kg",
    "total_pkgs",
)
