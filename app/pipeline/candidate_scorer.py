"""
Candidate scorer: ranks raw text candidates by how much they look like a
carrier notification, so the richest recovery wins.

score = 10 * keywords found
      + min(20, long digit runs)
      + min(10, dates)
      + min(20, len // 2000)
"""

import re
from typing import Optional

import structlog

from app.models.enums import TextSource
from app.pipeline.profile import DEFAULT_PROFILE, DocumentProfile
from app.schemas.contracts import ScoredCandidate, TextCandidate

logger = structlog.get_logger(__name__)

_LONG_DIGITS_RE = re.compile(r'\b\d{5,}\b')
_DATE_RE = re.compile(r'\b\d{2}[./-]\d{2}[./-]\d{2,4}\b')

_SOURCE_ORDER = {source: i for i, source in enumerate(TextSource)}


def score_text(text: str, profile: DocumentProfile = DEFAULT_PROFILE) -> int:
    if not text:
        return 0
    score = 10 * sum(1 for kw in profile.score_keywords if kw in text)
    score += min(20, len(_LONG_DIGITS_RE.findall(text)))
    score += min(10, len(_DATE_RE.findall(text)))
    score += min(20, len(text) // 2000)
    return score


def rank_candidates(
    candidates: list[TextCandidate],
    profile: DocumentProfile = DEFAULT_PROFILE,
) -> list[ScoredCandidate]:
    """Highest score first; equal scores keep embedded < layout < ocr order."""
    scored = [ScoredCandidate(candidate=c, score=score_text(c.text, profile)) for c in candidates]
    scored.sort(key=lambda s: (-s.score, _SOURCE_ORDER[s.candidate.source]))
    return scored


def pick_best(
    candidates: list[TextCandidate],
    profile: DocumentProfile = DEFAULT_PROFILE,
) -> Optional[ScoredCandidate]:
    ranked = rank_candidates(candidates, profile)
    if not ranked:
        return None

    best = ranked[0]
    logger.info(
        "candidate_selected",
        source=best.candidate.source.value,
        score=best.score,
        scores={s.candidate.source.value: s.score for s in ranked},
    )
    return best
