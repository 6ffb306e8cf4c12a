"""
SQLAlchemy ORM models.

drafts            reviewable staging records, unique per (fingerprint, version_no)
comments          field-level reviewer notes on a draft
shipments         committed records, one per frozen draft
items             line items owned by a shipment
extraction_cache  winning text + records per document fingerprint
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.database import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ────────────────────────────────────────────────────────────
# DRAFTS
# ────────────────────────────────────────────────────────────
class Draft(Base):
    __tablename__ = "drafts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    version_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", server_default="draft")
    data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    # Bumped on every write; conditional updates compare against it
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    comments: Mapped[list["Comment"]] = relationship(
        back_populates="draft", cascade="all, delete-orphan", order_by="Comment.created_at"
    )

    __table_args__ = (
        UniqueConstraint("fingerprint", "version_no", name="uq_drafts_fingerprint_version"),
    )


# ────────────────────────────────────────────────────────────
# COMMENTS
# ────────────────────────────────────────────────────────────
class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    draft_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("drafts.id", ondelete="CASCADE"), nullable=False
    )
    field_name: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    draft: Mapped["Draft"] = relationship(back_populates="comments")

    __table_args__ = (
        Index("idx_comments_draft", "draft_id"),
    )


# ────────────────────────────────────────────────────────────
# SHIPMENTS
# ────────────────────────────────────────────────────────────
class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    draft_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("drafts.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    # Shipper header
    your_partner: Mapped[str] = mapped_column(Text, default="")
    shipper_phone: Mapped[str] = mapped_column(Text, default="")
    shipper_email: Mapped[str] = mapped_column(Text, default="")

    # Identifiers & dates
    shipment_no: Mapped[str] = mapped_column(Text, default="")
    order_no: Mapped[str] = mapped_column(Text, default="")
    delivery_no: Mapped[str] = mapped_column(Text, default="")
    loading_date: Mapped[str] = mapped_column(Text, default="")
    scheduled_delivery_date: Mapped[str] = mapped_column(Text, default="")
    po_no: Mapped[str] = mapped_column(Text, default="")
    order_label: Mapped[str] = mapped_column(Text, default="")

    # Shipping point
    shipping_street: Mapped[str] = mapped_column(Text, default="")
    shipping_postal: Mapped[str] = mapped_column(Text, default="")
    shipping_city: Mapped[str] = mapped_column(Text, default="")
    shipping_country: Mapped[str] = mapped_column(Text, default="")
    way_of_forwarding: Mapped[str] = mapped_column(Text, default="")
    delivery_terms: Mapped[str] = mapped_column(Text, default="")

    # Parties
    carrier_to: Mapped[str] = mapped_column(Text, default="")
    consignee_address: Mapped[str] = mapped_column(Text, default="")
    customer_no: Mapped[str] = mapped_column(Text, default="")
    vat_no: Mapped[str] = mapped_column(Text, default="")
    customer_po: Mapped[str] = mapped_column(Text, default="")
    customer_contact: Mapped[str] = mapped_column(Text, default="")
    customer_phone: Mapped[str] = mapped_column(Text, default="")
    customer_email: Mapped[str] = mapped_column(Text, default="")
    notify1_address: Mapped[str] = mapped_column(Text, default="")
    notify1_email: Mapped[str] = mapped_column(Text, default="")
    notify1_phone: Mapped[str] = mapped_column(Text, default="")
    notify2_address: Mapped[str] = mapped_column(Text, default="")
    notify2_email: Mapped[str] = mapped_column(Text, default="")
    notify2_phone: Mapped[str] = mapped_column(Text, default="")

    # Totals
    total_net_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_gross_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_pkgs: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Remarks & sign-off
    bl_remarks: Mapped[str] = mapped_column(Text, default="")
    hs_code: Mapped[str] = mapped_column(Text, default="")
    signature_name: Mapped[str] = mapped_column(Text, default="")
    signature_date: Mapped[str] = mapped_column(Text, default="")

    items: Mapped[list["Item"]] = relationship(
        back_populates="shipment",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Item.position",
    )

    __table_args__ = (
        Index("idx_shipments_created", "created_at"),
    )


# ────────────────────────────────────────────────────────────
# ITEMS
# ────────────────────────────────────────────────────────────
class Item(Base):
    __tablename__ = "items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_name: Mapped[str] = mapped_column(Text, default="")
    net_weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    gross_weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    package_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    packaging_description: Mapped[str] = mapped_column(Text, default="")
    pallet_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    shipment: Mapped["Shipment"] = relationship(back_populates="items")

    __table_args__ = (
        Index("idx_items_shipment", "shipment_id"),
    )


# ────────────────────────────────────────────────────────────
# EXTRACTION CACHE
# ────────────────────────────────────────────────────────────
class ExtractionCache(Base):
    __tablename__ = "extraction_cache"

    fingerprint: Mapped[str] = mapped_column(String(64), primary_key=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    seed: Mapped[dict] = mapped_column(JSONType, nullable=False)
    reconciled: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
