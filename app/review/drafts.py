"""
Draft lifecycle: create -> (save | comment)* -> freeze.

States are `draft` (mutable) and `frozen` (terminal). Freeze copies the
draft's data into a new shipment and flips the status in one transaction.
"""

import uuid
from typing import Optional

import structlog

from app.errors import AlreadyFrozenError, DraftFrozenError, DraftNotFoundError, NoInputError
from app.models.enums import DraftStatus
from app.observability.metrics import draft_transitions_total
from app.schemas.drafts import CommentView, DraftChange, DraftView
from app.schemas.records import ExtractedRecord
from app.storage.repository import ShipmentRepository

logger = structlog.get_logger(__name__)


class DraftService:

    def __init__(self, repository: ShipmentRepository):
        self.repository = repository

    async def create(self, fingerprint: str, record: ExtractedRecord) -> DraftView:
        """
        Version-1 draft for this fingerprint. A re-upload refreshes the open
        draft's data instead of creating a second one.
        """
        draft = await self.repository.upsert_draft(fingerprint, record.model_dump(mode="json"), version_no=1)
        draft_transitions_total.labels(operation="created").inc()
        return draft

    async def get(self, draft_id: uuid.UUID) -> tuple[DraftView, list[CommentView]]:
        draft = await self.repository.get_draft(draft_id)
        if draft is None:
            raise DraftNotFoundError(f"Draft {draft_id} not found")
        comments = await self.repository.list_comments(draft_id)
        return draft, comments

    async def save(self, draft_id: uuid.UUID, record: ExtractedRecord) -> DraftView:
        """Replace the draft's data wholesale. Rejected once frozen."""
        data = record.model_dump(mode="json")

        def _save(draft: DraftView) -> DraftChange:
            if draft.is_frozen:
                raise DraftFrozenError("Draft is frozen")
            return DraftChange(data=data)

        result = await self.repository.update_draft(draft_id, _save)
        draft_transitions_total.labels(operation="saved").inc()
        logger.info("draft_saved", draft_id=str(draft_id))
        return result.draft

    async def comment(
        self,
        draft_id: uuid.UUID,
        field_name: str,
        message: str,
        author: Optional[str] = None,
    ) -> CommentView:
        """Append a field-level note. Allowed in either state; never touches data."""
        if not (field_name or "").strip() or not (message or "").strip():
            raise NoInputError("field_name and message required")

        comment = await self.repository.add_comment(draft_id, field_name.strip(), message.strip(), author)
        draft_transitions_total.labels(operation="commented").inc()
        logger.info("draft_commented", draft_id=str(draft_id), field=comment.field_name)
        return comment

    async def freeze(self, draft_id: uuid.UUID) -> uuid.UUID:
        """Commit the draft as a shipment. Returns the new shipment id."""

        def _freeze(draft: DraftView) -> DraftChange:
            if draft.is_frozen:
                raise AlreadyFrozenError("Already frozen")
            return DraftChange(status=DraftStatus.FROZEN, shipment=draft.record())

        result = await self.repository.update_draft(draft_id, _freeze)
        draft_transitions_total.labels(operation="frozen").inc()
        logger.info("draft_frozen", draft_id=str(draft_id), shipment_id=str(result.shipment_id))
        return result.shipment_id
