"""
Confidence scoring - additive sanity checks, clamped to [5, 100].

A failed check costs its points and (for the key ones) adds a warning, but
never zeroes the score on its own: several partial signals compound into a
graded confidence rather than a pass/fail gate.
"""

import re

from pydantic import BaseModel

from app.schemas.records import ExtractedRecord


class ConfidenceResult(BaseModel):
    score: int = 5
    warnings: list[str] = []
    checks: dict[str, bool] = {}


MIN_SCORE = 5
MAX_SCORE = 100

_LONG_ID_RE = re.compile(r'\d{6,}')
_DATE_RE = re.compile(r'\d{2}[./-]\d{2}[./-]\d{2,4}')
_HS_CODE_RE = re.compile(r'\d{6,8}')


def _has(value) -> bool:
    return bool(value) and bool(str(value).strip())


def _totals_consistent(record: ExtractedRecord) -> bool:
    net, gross = record.total_net_kg, record.total_gross_kg
    return bool(net) and bool(gross) and gross >= net


# ── Checks: (name, points, warning on failure or None, predicate) ──
CHECKS = [
    ("shipment_no", 15, "Shipment No missing/short",
     lambda r: _has(r.shipment_no) and bool(_LONG_ID_RE.search(r.shipment_no))),
    ("order_no", 10, None,
     lambda r: _has(r.order_no) and bool(_LONG_ID_RE.search(r.order_no))),
    ("loading_date", 8, "Loading date missing",
     lambda r: _has(r.loading_date) and bool(_DATE_RE.search(r.loading_date))),
    ("scheduled_delivery_date", 6, None,
     lambda r: _has(r.scheduled_delivery_date) and bool(_DATE_RE.search(r.scheduled_delivery_date))),
    ("consignee_address", 15, "Consignee address incomplete",
     lambda r: len([l for l in r.consignee_address.split("\n") if l.strip()]) >= 2),
    ("items", 10, None,
     lambda r: len(r.items) > 0),
    ("totals", 10, "Totals inconsistent/missing",
     _totals_consistent),
    ("hs_code", 5, None,
     lambda r: _has(r.hs_code) and bool(_HS_CODE_RE.search(r.hs_code))),
]


def score_record(record: ExtractedRecord) -> ConfidenceResult:
    """Deterministic for a given record; warnings keep check order."""
    score = 0
    warnings = []
    checks = {}

    for name, points, warning, passed in CHECKS:
        ok = passed(record)
        checks[name] = ok
        if ok:
            score += points
        elif warning:
            warnings.append(warning)

    return ConfidenceResult(
        score=max(MIN_SCORE, min(MAX_SCORE, score)),
        warnings=warnings,
        checks=checks,
    )


def evidence_bonus(evidence_count: int) -> int:
    """One point per five evidence entries, at most ten."""
    return min(10, max(0, evidence_count) // 5)


def apply_confidence(record: ExtractedRecord) -> ExtractedRecord:
    """Return a copy of the record with confidence and warnings filled in."""
    result = score_record(record)
    score = min(MAX_SCORE, result.score + evidence_bonus(len(record.evidence)))
    return record.model_copy(update={"confidence": score, "warnings": result.warnings})
