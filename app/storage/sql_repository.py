"""
SQLAlchemy implementation of the record store.

Every public method runs in its own session/transaction. Draft mutations
lock the row (SELECT ... FOR UPDATE where the backend supports it) and write
with a conditional UPDATE on (status, revision), so on backends without row
locks (SQLite) a decision taken on a stale read is retried, never committed.
The unique keys on drafts(fingerprint, version_no) and shipments(draft_id)
guard the inserts.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.errors import AlreadyFrozenError, DraftConflictError, DraftNotFoundError
from app.models.tables import Comment, Draft, ExtractionCache, Item, Shipment
from app.schemas.drafts import (
    CachedExtraction, CommentView, DraftChange, DraftUpdateResult, DraftView,
)
from app.schemas.records import SHIPMENT_FIELDS, LineItem
from app.schemas.shipments import ShipmentSummary, ShipmentView
from app.storage.repository import DraftMutator, ShipmentRepository

logger = structlog.get_logger(__name__)

_ITEM_FIELDS = tuple(LineItem.model_fields)
_MAX_ATTEMPTS = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _draft_view(row: Draft) -> DraftView:
    return DraftView(
        id=row.id,
        fingerprint=row.fingerprint,
        version_no=row.version_no,
        status=row.status,
        data=dict(row.data or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _shipment_view(row: Shipment) -> ShipmentView:
    fields = {name: getattr(row, name) for name in SHIPMENT_FIELDS}
    items = [{name: getattr(item, name) for name in _ITEM_FIELDS} for item in row.items]
    return ShipmentView(id=row.id, draft_id=row.draft_id, created_at=row.created_at, items=items, **fields)


class SqlShipmentRepository(ShipmentRepository):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ── Drafts ───────────────────────────────────────────────

    async def get_draft(self, draft_id: uuid.UUID) -> Optional[DraftView]:
        async with self.session_factory() as session:
            row = await session.get(Draft, draft_id)
            return _draft_view(row) if row else None

    async def upsert_draft(self, fingerprint: str, data: dict, version_no: int = 1) -> DraftView:
        for attempt in range(_MAX_ATTEMPTS):
            try:
                async with self.session_factory() as session, session.begin():
                    row = (await session.execute(
                        select(Draft)
                        .where(Draft.fingerprint == fingerprint, Draft.version_no == version_no)
                        .with_for_update()
                    )).scalar_one_or_none()

                    if row is None:
                        row = Draft(fingerprint=fingerprint, version_no=version_no, status="draft", data=data)
                        session.add(row)
                        await session.flush()
                        logger.info("draft_created", draft_id=str(row.id), fingerprint=fingerprint[:12])
                    elif row.status == "draft":
                        if not await self._write_if_unchanged(session, row, data=data):
                            continue
                        logger.info("draft_refreshed", draft_id=str(row.id), fingerprint=fingerprint[:12])

                    await session.refresh(row)
                    return _draft_view(row)
            except IntegrityError:
                # Lost the insert race; the next attempt re-reads the winner's row
                if attempt == _MAX_ATTEMPTS - 1:
                    raise
                logger.info("draft_create_race", fingerprint=fingerprint[:12])

        raise DraftConflictError(f"Draft for {fingerprint[:12]} kept changing")

    async def update_draft(self, draft_id: uuid.UUID, mutator: DraftMutator) -> DraftUpdateResult:
        for _ in range(_MAX_ATTEMPTS):
            try:
                async with self.session_factory() as session, session.begin():
                    row = (await session.execute(
                        select(Draft).where(Draft.id == draft_id).with_for_update()
                    )).scalar_one_or_none()
                    if row is None:
                        raise DraftNotFoundError(f"Draft {draft_id} not found")

                    change: DraftChange = mutator(_draft_view(row))

                    # The write itself re-checks state, so a transition decided on a
                    # stale read never commits
                    written = await self._write_if_unchanged(
                        session,
                        row,
                        data=change.data,
                        status=change.status.value if change.status is not None else None,
                    )
                    if not written:
                        logger.info("draft_write_conflict", draft_id=str(draft_id))
                        continue

                    shipment_id = None
                    if change.shipment is not None:
                        shipment = self._build_shipment(draft_id, change)
                        session.add(shipment)
                        await session.flush()
                        shipment_id = shipment.id

                    await session.refresh(row)
                    return DraftUpdateResult(draft=_draft_view(row), shipment_id=shipment_id)
            except IntegrityError as e:
                # shipments.draft_id is unique: a concurrent freeze already committed
                raise AlreadyFrozenError(f"Draft {draft_id} already has a shipment") from e

        raise DraftConflictError(f"Draft {draft_id} kept changing, try again")

    @staticmethod
    async def _write_if_unchanged(
        session: AsyncSession,
        row: Draft,
        data: Optional[dict] = None,
        status: Optional[str] = None,
    ) -> bool:
        """
        UPDATE ... WHERE status='draft' AND revision=<revision read>.
        False when another writer got there first; the caller re-reads.
        """
        values = {"revision": row.revision + 1, "updated_at": _now()}
        if data is not None:
            values["data"] = data
        if status is not None:
            values["status"] = status

        result = await session.execute(
            update(Draft)
            .where(Draft.id == row.id, Draft.status == "draft", Draft.revision == row.revision)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _build_shipment(draft_id: uuid.UUID, change: DraftChange) -> Shipment:
        record = change.shipment
        shipment = Shipment(draft_id=draft_id, **{name: getattr(record, name) for name in SHIPMENT_FIELDS})
        shipment.items = [
            Item(position=i, **item.model_dump(include=set(_ITEM_FIELDS)))
            for i, item in enumerate(record.items)
        ]
        return shipment

    # ── Comments ─────────────────────────────────────────────

    async def add_comment(
        self, draft_id: uuid.UUID, field_name: str, message: str, author: Optional[str] = None,
    ) -> CommentView:
        async with self.session_factory() as session, session.begin():
            if await session.get(Draft, draft_id) is None:
                raise DraftNotFoundError(f"Draft {draft_id} not found")
            comment = Comment(draft_id=draft_id, field_name=field_name, message=message, author=author)
            session.add(comment)
            await session.flush()
            await session.refresh(comment)
            return CommentView.model_validate(comment)

    async def list_comments(self, draft_id: uuid.UUID) -> list[CommentView]:
        async with self.session_factory() as session:
            rows = (await session.execute(
                select(Comment).where(Comment.draft_id == draft_id).order_by(Comment.created_at)
            )).scalars().all()
            return [CommentView.model_validate(r) for r in rows]

    # ── Shipments ────────────────────────────────────────────

    async def list_shipments(self, limit: Optional[int] = 100) -> list[ShipmentSummary]:
        item_count = (
            select(func.count(Item.id))
            .where(Item.shipment_id == Shipment.id)
            .correlate(Shipment)
            .scalar_subquery()
        )
        stmt = select(Shipment, item_count.label("item_count")).order_by(Shipment.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()
            return [
                ShipmentSummary(
                    id=s.id,
                    created_at=s.created_at,
                    item_count=count or 0,
                    **{k: getattr(s, k) for k in ShipmentSummary.model_fields if k in SHIPMENT_FIELDS},
                )
                for s, count in rows
            ]

    async def get_shipment(self, shipment_id: uuid.UUID) -> Optional[ShipmentView]:
        async with self.session_factory() as session:
            row = (await session.execute(
                select(Shipment).where(Shipment.id == shipment_id).options(selectinload(Shipment.items))
            )).scalar_one_or_none()
            return _shipment_view(row) if row else None

    async def count_shipments_for_draft(self, draft_id: uuid.UUID) -> int:
        async with self.session_factory() as session:
            return (await session.execute(
                select(func.count(Shipment.id)).where(Shipment.draft_id == draft_id)
            )).scalar_one()

    # ── Extraction cache ─────────────────────────────────────

    async def get_cached(self, fingerprint: str) -> Optional[CachedExtraction]:
        async with self.session_factory() as session:
            row = await session.get(ExtractionCache, fingerprint)
            if row is None:
                return None
            return CachedExtraction(
                fingerprint=row.fingerprint,
                source=row.source,
                text=row.text,
                seed=row.seed,
                reconciled=row.reconciled,
            )

    async def put_cached(self, entry: CachedExtraction) -> None:
        async with self.session_factory() as session, session.begin():
            await session.merge(ExtractionCache(
                fingerprint=entry.fingerprint,
                source=entry.source.value,
                text=entry.text,
                seed=entry.seed,
                reconciled=entry.reconciled,
                created_at=_now(),
            ))

    async def ping(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("database_ping_failed", error=str(e))
            return False
