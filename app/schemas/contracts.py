"""
Text recovery contracts.
Every recovery engine produces a TextCandidate; the scorer and the
field extractor never see engine-specific output.
"""

from pydantic import BaseModel, Field

from app.models.enums import TextSource


class BBox(BaseModel):
    """Bounding box, normalised to page dimensions (0.0 to 1.0)."""
    x0: float = Field(ge=0.0, le=1.0)
    y0: float = Field(ge=0.0, le=1.0)
    x1: float = Field(ge=0.0, le=1.0)
    y1: float = Field(ge=0.0, le=1.0)


class ExtractedToken(BaseModel):
    """A single word with its position on the page."""
    text: str
    bbox: BBox


class ExtractedLine(BaseModel):
    """A line of text (ordered tokens on same y-axis)."""
    tokens: list[ExtractedToken]
    bbox: BBox
    text: str


class TextCandidate(BaseModel):
    """
    One raw-text result from a single recovery strategy.

    Invariants:
    - text is non-empty after stripping (empty results are dropped upstream)
    - source identifies the strategy and drives scoring tie-breaks
    """
    source: TextSource
    text: str


class ScoredCandidate(BaseModel):
    candidate: TextCandidate
    score: int
