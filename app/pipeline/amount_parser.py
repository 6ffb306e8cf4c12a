"""
Locale-aware quantity parser.

Carrier letters print weights in the continental convention:
- 24.500,75 KG      -> 24500.75   (dot thousands, comma decimal)
- 10.000,00         -> 10000.0
- 1.250 KG          -> 1250.0     (dot is always a thousands separator)
- 400               -> 400        (package / pallet counts)

Unparseable input yields None, never zero: None means "not found".
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel

_UNIT_RE = re.compile(r'\s*(KGS?|KILOS?|KILOGRAMS?)\.?\s*$', re.IGNORECASE)
_QUANTITY_RE = re.compile(r'^[0-9][0-9.\s]*(,[0-9]+)?$')


class QuantityParseResult(BaseModel):
    value: Optional[float] = None
    raw_text: str
    unit: Optional[str] = None
    confidence: float = 0.0


def parse_quantity_eu(raw: str) -> QuantityParseResult:
    """
    Parse a weight/quantity using thousands-dot, decimal-comma conventions.
    """
    s = (raw or "").strip()
    if not s or s in ('-', '--', '---'):
        return QuantityParseResult(raw_text=raw or "")

    unit = None
    m = _UNIT_RE.search(s)
    if m:
        unit = "KG"
        s = s[:m.start()].strip()

    if not _QUANTITY_RE.match(s):
        return QuantityParseResult(raw_text=raw, unit=unit)

    # Strip thousands separators, then decimal comma -> point
    s = s.replace(' ', '').replace('.', '').replace(',', '.', 1)

    try:
        value = Decimal(s)
    except (InvalidOperation, ValueError):
        return QuantityParseResult(raw_text=raw, unit=unit)

    confidence = 0.95
    if value == 0:
        confidence = 0.80  # plausible but unusual on a shipping letter
    elif value > Decimal('10000000'):
        confidence = 0.5  # suspiciously large

    return QuantityParseResult(
        value=float(value),
        raw_text=raw,
        unit=unit,
        confidence=confidence,
    )


def parse_weight(raw: Optional[str]) -> Optional[float]:
    """Shortcut returning just the float value (or None)."""
    if raw is None:
        return None
    return parse_quantity_eu(raw).value


def parse_count(raw: Optional[str]) -> Optional[int]:
    """Parse an integer count (packages, pallets). Leading digits only."""
    if raw is None:
        return None
    m = re.match(r'\s*(\d+)', str(raw))
    return int(m.group(1)) if m else None
