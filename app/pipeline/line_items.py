"""
Line items and totals.

Item blocks look like:

    TITANIUM DIOXIDE KRONOS 2310 Type 2310   10.000,00 KG  400  10.340,00 KG
    ... (wrapped description, batch numbers) ...
    400 PE-Bags of 25 KG on pallets
    20 Pallets

Weights use the continental convention (see amount_parser). Totals that
are not found stay None; zero would claim "found, value is zero".
"""

import re
from typing import Optional, Pattern

import structlog

from app.pipeline.amount_parser import parse_count, parse_weight
from app.pipeline.label_rules import clean
from app.pipeline.profile import DEFAULT_PROFILE, DocumentProfile
from app.schemas.records import LineItem

logger = structlog.get_logger(__name__)

_TOTALS_RE = re.compile(r'TOTAL\s*([0-9.,]+)\s*KG\s*([0-9]+)\s*([0-9.,]+)\s*KG', re.IGNORECASE)


def extract_totals(text: str) -> dict[str, Optional[float]]:
    """Net, package count and gross from the single TOTAL line."""
    m = _TOTALS_RE.search(text or "")
    if not m:
        return {"total_net_kg": None, "total_pkgs": None, "total_gross_kg": None}
    return {
        "total_net_kg": parse_weight(m.group(1)),
        "total_pkgs": parse_count(m.group(2)),
        "total_gross_kg": parse_weight(m.group(3)),
    }


def item_pattern(profile: DocumentProfile) -> Pattern:
    """
    Product line, then net KG / packages / gross KG on the same line, then
    (non-greedily, across wrapped lines) the packaging line, then an
    optional pallet line directly beneath it.
    """
    packaging = "|".join(re.escape(term) for term in profile.packaging_terms)
    return re.compile(
        rf'({re.escape(profile.product_anchor)}[^\n]*?Type\s*\S+)'
        r'[^\n]*?([0-9][0-9.,]*)\s*KG\s+([0-9]+)\s+([0-9][0-9.,]*)\s*KG'
        rf'[\s\S]*?(\d+\s*(?:{packaging})[^\n]*)'
        r'(?:\n\s*(\d+)\s*Pallets?)?',
        re.IGNORECASE,
    )


def extract_items(text: str, profile: DocumentProfile = DEFAULT_PROFILE) -> list[LineItem]:
    items = []
    for m in item_pattern(profile).finditer(text or ""):
        items.append(LineItem(
            product_name=clean(m.group(1)),
            net_weight=parse_weight(m.group(2)),
            package_count=parse_count(m.group(3)),
            gross_weight=parse_weight(m.group(4)),
            packaging_description=clean(m.group(5)),
            pallet_count=parse_count(m.group(6)),
        ))

    logger.debug("line_items_extracted", count=len(items))
    return items
