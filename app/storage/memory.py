"""
In-memory repository for tests and local runs.

Records are deep-copied on the way in and out so callers can never mutate
stored state behind the repository's back.
"""

import asyncio
import copy
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from app.errors import AlreadyFrozenError, DraftNotFoundError
from app.schemas.drafts import (
    CachedExtraction, CommentView, DraftChange, DraftUpdateResult, DraftView,
)
from app.schemas.records import SHIPMENT_FIELDS
from app.schemas.shipments import ShipmentSummary, ShipmentView
from app.storage.repository import DraftMutator, ShipmentRepository


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryShipmentRepository(ShipmentRepository):

    def __init__(self):
        self._drafts: dict[uuid.UUID, DraftView] = {}
        self._draft_keys: dict[tuple[str, int], uuid.UUID] = {}
        self._comments: dict[uuid.UUID, list[CommentView]] = defaultdict(list)
        self._shipments: dict[uuid.UUID, ShipmentView] = {}
        self._cache: dict[str, CachedExtraction] = {}
        self._create_lock = asyncio.Lock()
        self._draft_locks: dict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ── Drafts ───────────────────────────────────────────────

    async def get_draft(self, draft_id: uuid.UUID) -> Optional[DraftView]:
        draft = self._drafts.get(draft_id)
        return draft.model_copy(deep=True) if draft else None

    async def upsert_draft(self, fingerprint: str, data: dict, version_no: int = 1) -> DraftView:
        async with self._create_lock:
            existing_id = self._draft_keys.get((fingerprint, version_no))
            if existing_id is not None:
                async with self._draft_locks[existing_id]:
                    draft = self._drafts[existing_id]
                    if not draft.is_frozen:
                        draft.data = copy.deepcopy(data)
                        draft.updated_at = _now()
                    return draft.model_copy(deep=True)

            now = _now()
            draft = DraftView(
                id=uuid.uuid4(),
                fingerprint=fingerprint,
                version_no=version_no,
                data=copy.deepcopy(data),
                created_at=now,
                updated_at=now,
            )
            self._drafts[draft.id] = draft
            self._draft_keys[(fingerprint, version_no)] = draft.id
            return draft.model_copy(deep=True)

    async def update_draft(self, draft_id: uuid.UUID, mutator: DraftMutator) -> DraftUpdateResult:
        if draft_id not in self._drafts:
            raise DraftNotFoundError(f"Draft {draft_id} not found")

        async with self._draft_locks[draft_id]:
            current = self._drafts[draft_id]
            change: DraftChange = mutator(current.model_copy(deep=True))

            shipment_id = None
            if change.shipment is not None:
                if any(s.draft_id == draft_id for s in self._shipments.values()):
                    raise AlreadyFrozenError(f"Draft {draft_id} already has a shipment")
                shipment = ShipmentView(
                    **change.shipment.model_dump(),
                    id=uuid.uuid4(),
                    draft_id=draft_id,
                    created_at=_now(),
                )
                shipment_id = shipment.id

            # Validation is done; apply everything together
            updated = current.model_copy(deep=True)
            if change.data is not None:
                updated.data = copy.deepcopy(change.data)
            if change.status is not None:
                updated.status = change.status
            updated.updated_at = _now()

            self._drafts[draft_id] = updated
            if shipment_id is not None:
                self._shipments[shipment_id] = shipment

            return DraftUpdateResult(draft=updated.model_copy(deep=True), shipment_id=shipment_id)

    # ── Comments ─────────────────────────────────────────────

    async def add_comment(
        self, draft_id: uuid.UUID, field_name: str, message: str, author: Optional[str] = None,
    ) -> CommentView:
        if draft_id not in self._drafts:
            raise DraftNotFoundError(f"Draft {draft_id} not found")
        comment = CommentView(
            id=uuid.uuid4(),
            draft_id=draft_id,
            field_name=field_name,
            message=message,
            author=author,
            created_at=_now(),
        )
        self._comments[draft_id].append(comment)
        return comment.model_copy()

    async def list_comments(self, draft_id: uuid.UUID) -> list[CommentView]:
        return [c.model_copy() for c in self._comments.get(draft_id, [])]

    # ── Shipments ────────────────────────────────────────────

    async def list_shipments(self, limit: Optional[int] = 100) -> list[ShipmentSummary]:
        ordered = sorted(self._shipments.values(), key=lambda s: s.created_at, reverse=True)
        if limit is not None:
            ordered = ordered[:limit]
        return [
            ShipmentSummary(
                id=s.id,
                created_at=s.created_at,
                item_count=len(s.items),
                **{k: getattr(s, k) for k in ShipmentSummary.model_fields if k in SHIPMENT_FIELDS},
            )
            for s in ordered
        ]

    async def get_shipment(self, shipment_id: uuid.UUID) -> Optional[ShipmentView]:
        shipment = self._shipments.get(shipment_id)
        return shipment.model_copy(deep=True) if shipment else None

    async def count_shipments_for_draft(self, draft_id: uuid.UUID) -> int:
        return sum(1 for s in self._shipments.values() if s.draft_id == draft_id)

    # ── Extraction cache ─────────────────────────────────────

    async def get_cached(self, fingerprint: str) -> Optional[CachedExtraction]:
        entry = self._cache.get(fingerprint)
        return entry.model_copy(deep=True) if entry else None

    async def put_cached(self, entry: CachedExtraction) -> None:
        self._cache[entry.fingerprint] = entry.model_copy(deep=True)
