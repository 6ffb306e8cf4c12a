"""
Document profile: the template-specific anchors the extractor relies on.

The extraction rules are generic label/block scanners; everything that only
makes sense for one carrier-letter template lives here so a second template
can be supported by passing another profile.
"""

from pydantic import BaseModel, Field


class DocumentProfile(BaseModel):
    name: str

    # Line items: "<anchor> ... Type <x> ... <net> KG <pkgs> <gross> KG ... <n> PE-Bags"
    product_anchor: str = "TITANIUM DIOXIDE"
    packaging_terms: list[str] = Field(default_factory=lambda: ["PE-Bags", "Paper Bags", "Big Bag"])

    # Shipper's own sites; lines mentioning them never belong to the consignee
    shipper_markers: list[str] = Field(default_factory=list)
    # Seeing one of these in a consignee block means the shipper address leaked in
    shipper_sites: list[str] = Field(default_factory=list)
    shipper_email_domains: list[str] = Field(default_factory=list)

    carrier_fallback: str = ""

    # Candidate scorer vocabulary (case-sensitive substring match)
    score_keywords: list[str] = Field(default_factory=list)


DEFAULT_PROFILE = DocumentProfile(
    name="kronos-carrier-notification",
    shipper_markers=["KRONOS", "Peschstrasse", "Leverkusen"],
    shipper_sites=["NORDENHAM", "LEVERKUSEN", "NIEHL", "MOLENKOPF"],
    shipper_email_domains=["kronosww.com"],
    carrier_fallback="Expeditors International GmbH",
    score_keywords=[
        "Shipment",
        "Order",
        "Delivery",
        "Delivery Address",
        "Notify",
        "TOTAL",
        "Way of Forwarding",
        "MARKS",
    ],
)
