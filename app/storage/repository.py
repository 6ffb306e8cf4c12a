"""
Record store interface.

The pipeline and the draft service only talk to this interface, so they run
unchanged against SQL (production) or memory (tests, local runs).
"""

import uuid
from abc import ABC, abstractmethod
from typing import Callable, Optional

from app.schemas.drafts import (
    CachedExtraction, CommentView, DraftChange, DraftUpdateResult, DraftView,
)
from app.schemas.shipments import ShipmentSummary, ShipmentView

DraftMutator = Callable[[DraftView], DraftChange]


class ShipmentRepository(ABC):

    # ── Drafts ───────────────────────────────────────────────

    @abstractmethod
    async def get_draft(self, draft_id: uuid.UUID) -> Optional[DraftView]:
        ...

    @abstractmethod
    async def upsert_draft(self, fingerprint: str, data: dict, version_no: int = 1) -> DraftView:
        """
        Atomic create-or-refresh of (fingerprint, version_no).

        An open draft gets its data replaced; a frozen one is returned as is.
        Concurrent callers never create two rows for the same key.
        """
        ...

    @abstractmethod
    async def update_draft(self, draft_id: uuid.UUID, mutator: DraftMutator) -> DraftUpdateResult:
        """
        Run `mutator` against the current draft under mutual exclusion and
        apply its DraftChange (data, status, new shipment) in one transaction.
        Exceptions raised by the mutator abort the update and propagate.
        Raises DraftNotFoundError for an unknown id.
        """
        ...

    # ── Comments ─────────────────────────────────────────────

    @abstractmethod
    async def add_comment(
        self, draft_id: uuid.UUID, field_name: str, message: str, author: Optional[str] = None,
    ) -> CommentView:
        ...

    @abstractmethod
    async def list_comments(self, draft_id: uuid.UUID) -> list[CommentView]:
        ...

    # ── Shipments ────────────────────────────────────────────

    @abstractmethod
    async def list_shipments(self, limit: Optional[int] = 100) -> list[ShipmentSummary]:
        """Newest first."""
        ...

    @abstractmethod
    async def get_shipment(self, shipment_id: uuid.UUID) -> Optional[ShipmentView]:
        ...

    @abstractmethod
    async def count_shipments_for_draft(self, draft_id: uuid.UUID) -> int:
        ...

    # ── Extraction cache ─────────────────────────────────────

    @abstractmethod
    async def get_cached(self, fingerprint: str) -> Optional[CachedExtraction]:
        ...

    @abstractmethod
    async def put_cached(self, entry: CachedExtraction) -> None:
        """Insert or replace."""
        ...

    async def ping(self) -> bool:
        return True
