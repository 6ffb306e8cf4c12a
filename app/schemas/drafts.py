"""
Draft lifecycle schemas: stored views and API payloads.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import DraftStatus, ReconciliationOutcome, TextSource
from app.schemas.records import ExtractedRecord


class DraftView(BaseModel):
    """A draft as stored. `data` is an ExtractedRecord-shaped mapping."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fingerprint: str
    version_no: int = 1
    status: DraftStatus = DraftStatus.DRAFT
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    @property
    def is_frozen(self) -> bool:
        return self.status == DraftStatus.FROZEN

    def record(self) -> ExtractedRecord:
        return ExtractedRecord.model_validate(self.data)


class CommentView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    draft_id: uuid.UUID
    field_name: str
    message: str
    author: Optional[str] = None
    created_at: datetime


@dataclass
class DraftChange:
    """
    What a transactional draft mutation wants applied.
    `shipment` is committed together with the draft change or not at all.
    """
    data: Optional[dict] = None
    status: Optional[DraftStatus] = None
    shipment: Optional[ExtractedRecord] = None


@dataclass
class DraftUpdateResult:
    draft: DraftView
    shipment_id: Optional[uuid.UUID] = None


class CachedExtraction(BaseModel):
    """Content-addressed cache entry for a document fingerprint."""
    fingerprint: str
    source: TextSource
    text: str
    seed: dict[str, Any]
    reconciled: Optional[dict[str, Any]] = None


# ── API payloads ─────────────────────────────────────────────

class UploadResponse(ExtractedRecord):
    """The extracted record plus the draft it landed in."""
    draft_id: uuid.UUID
    version_no: int
    status: DraftStatus
    fingerprint: str
    source: Optional[TextSource] = None
    reconciliation: ReconciliationOutcome = ReconciliationOutcome.SKIPPED


class DebugTextResponse(BaseModel):
    source: TextSource
    score: int
    text: str


class SaveDraftRequest(BaseModel):
    data: ExtractedRecord


class CommentRequest(BaseModel):
    """Blank values are rejected by the draft service with ERR_NO_INPUT."""
    field_name: str = ""
    message: str = ""
    author: Optional[str] = None


class DraftResponse(BaseModel):
    draft: DraftView
    comments: list[CommentView]


class OkResponse(BaseModel):
    ok: bool = True


class FreezeResponse(BaseModel):
    ok: bool = True
    shipment_id: uuid.UUID
