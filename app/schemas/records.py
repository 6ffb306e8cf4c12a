"""
Extracted shipment record - the typed shape shared by the extractor,
the confidence scorer, reconciliation and the draft layer.

Every field is always present: strings default to "", numbers to None,
lists to []. Consumers never need presence checks.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from app.pipeline.amount_parser import parse_count, parse_weight


def _coerce_weight(value: Any) -> Any:
    """Accept reviewer-typed strings such as '24.500,75' for weight fields."""
    if isinstance(value, str):
        return parse_weight(value) if value.strip() else None
    return value


def _coerce_count(value: Any) -> Any:
    if isinstance(value, str):
        return parse_count(value) if value.strip() else None
    return value


class LineItem(BaseModel):
    """One goods position on the letter."""
    product_name: str = ""
    net_weight: Optional[float] = None
    gross_weight: Optional[float] = None
    package_count: Optional[int] = None
    packaging_description: str = ""
    pallet_count: Optional[int] = None

    @field_validator("net_weight", "gross_weight", mode="before")
    @classmethod
    def _weights(cls, v):
        return _coerce_weight(v)

    @field_validator("package_count", "pallet_count", mode="before")
    @classmethod
    def _counts(cls, v):
        return _coerce_count(v)

    @field_validator("product_name", "packaging_description", mode="before")
    @classmethod
    def _strings(cls, v):
        return "" if v is None else v


class Evidence(BaseModel):
    """Provenance for a field value returned by reconciliation."""
    field: str
    value: str = ""
    snippet: str = ""
    start: Optional[int] = None
    end: Optional[int] = None
    source: str = ""


class ExtractedRecord(BaseModel):
    """Flat shipment record plus line items, confidence and warnings."""

    # Shipper header
    your_partner: str = ""
    shipper_phone: str = ""
    shipper_email: str = ""

    # Identifiers & dates
    shipment_no: str = ""
    order_no: str = ""
    delivery_no: str = ""
    loading_date: str = ""
    scheduled_delivery_date: str = ""
    po_no: str = ""
    order_label: str = ""

    # Shipping point
    shipping_street: str = ""
    shipping_postal: str = ""
    shipping_city: str = ""
    shipping_country: str = ""
    way_of_forwarding: str = ""
    delivery_terms: str = ""

    # Parties
    carrier_to: str = ""
    consignee_address: str = ""
    customer_no: str = ""
    vat_no: str = ""
    customer_po: str = ""
    customer_contact: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    notify1_address: str = ""
    notify1_email: str = ""
    notify1_phone: str = ""
    notify2_address: str = ""
    notify2_email: str = ""
    notify2_phone: str = ""

    # Totals
    total_net_kg: Optional[float] = None
    total_gross_kg: Optional[float] = None
    total_pkgs: Optional[int] = None

    # Remarks & sign-off
    bl_remarks: str = ""
    hs_code: str = ""
    signature_name: str = ""
    signature_date: str = ""

    items: list[LineItem] = Field(default_factory=list)

    # Assessment
    confidence: int = Field(default=0, ge=0, le=100)
    warnings: list[str] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)

    @field_validator("total_net_kg", "total_gross_kg", mode="before")
    @classmethod
    def _weights(cls, v):
        return _coerce_weight(v)

    @field_validator("total_pkgs", mode="before")
    @classmethod
    def _counts(cls, v):
        return _coerce_count(v)

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_blank(cls, v, info):
        # Reviewers and reconciliation may send null for text fields
        if v is None and info.field_name in TEXT_FIELDS:
            return ""
        return v


def _scalar_fields(kind) -> tuple[str, ...]:
    return tuple(
        name for name, f in ExtractedRecord.model_fields.items()
        if f.annotation is kind
    )


# Field groups used by reconciliation, persistence and export
TEXT_FIELDS: tuple[str, ...] = _scalar_fields(str)
NUMERIC_FIELDS: tuple[str, ...] = ("total_net_kg", "total_gross_kg", "total_pkgs")
SHIPMENT_FIELDS: tuple[str, ...] = TEXT_FIELDS + NUMERIC_FIELDS
