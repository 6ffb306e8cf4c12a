"""
Python enums for persisted and in-flight state.
Values are stored as plain strings in the database.
"""

from enum import Enum


class DraftStatus(str, Enum):
    DRAFT = "draft"
    FROZEN = "frozen"


class TextSource(str, Enum):
    """Text recovery strategy. Declaration order is the scoring tie-break order."""
    EMBEDDED_TEXT = "embedded-text"
    LAYOUT_TEXT = "layout-text"
    OCR_TEXT = "ocr-text"


class ReconciliationOutcome(str, Enum):
    APPLIED = "APPLIED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    CACHED = "CACHED"
