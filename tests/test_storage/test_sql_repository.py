"""
Tests for the SQLAlchemy repository on a throwaway SQLite database.
"""

import asyncio
import uuid

import pytest

from app.errors import AlreadyFrozenError, DraftFrozenError, DraftNotFoundError
from app.models.database import init_db, make_engine, make_session_factory
from app.models.enums import DraftStatus, TextSource
from app.review.drafts import DraftService
from app.schemas.drafts import CachedExtraction
from app.storage.fingerprint import compute_fingerprint, looks_like_pdf
from app.storage.sql_repository import SqlShipmentRepository


@pytest.fixture
async def sql_repository(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'shipments.db'}")
    await init_db(engine)
    yield SqlShipmentRepository(make_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def service(sql_repository):
    return DraftService(sql_repository)


class TestFingerprint:

    def test_stable_sha256(self):
        assert compute_fingerprint(b"abc") == compute_fingerprint(b"abc")
        assert len(compute_fingerprint(b"abc")) == 64
        assert compute_fingerprint(b"abc") != compute_fingerprint(b"abd")

    def test_pdf_signature(self, sample_pdf_bytes):
        assert looks_like_pdf(sample_pdf_bytes)
        assert looks_like_pdf(b"\n\n%PDF-1.7")
        assert not looks_like_pdf(b"PK\x03\x04")


class TestDrafts:

    @pytest.mark.asyncio
    async def test_upsert_creates_then_refreshes(self, sql_repository):
        first = await sql_repository.upsert_draft("a" * 64, {"shipment_no": "1"})
        second = await sql_repository.upsert_draft("a" * 64, {"shipment_no": "2"})
        assert second.id == first.id
        assert second.data == {"shipment_no": "2"}
        assert second.version_no == 1

    @pytest.mark.asyncio
    async def test_concurrent_upserts_create_one_draft(self, sql_repository):
        drafts = await asyncio.gather(
            *(sql_repository.upsert_draft("b" * 64, {"n": i}) for i in range(4))
        )
        assert len({d.id for d in drafts}) == 1

    @pytest.mark.asyncio
    async def test_get_unknown_draft(self, sql_repository):
        assert await sql_repository.get_draft(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_comments_cascade_order(self, sql_repository):
        draft = await sql_repository.upsert_draft("c" * 64, {})
        await sql_repository.add_comment(draft.id, "po_no", "first")
        await sql_repository.add_comment(draft.id, "po_no", "second", author="ops")
        comments = await sql_repository.list_comments(draft.id)
        assert [c.message for c in comments] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_comment_unknown_draft(self, sql_repository):
        with pytest.raises(DraftNotFoundError):
            await sql_repository.add_comment(uuid.uuid4(), "po_no", "x")


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_freeze_writes_shipment_and_items(self, service, sql_repository, sample_record):
        draft = await service.create("d" * 64, sample_record)
        shipment_id = await service.freeze(draft.id)

        shipment = await sql_repository.get_shipment(shipment_id)
        assert shipment.draft_id == draft.id
        assert shipment.shipment_no == "1234567"
        assert shipment.total_gross_kg == 10340.0
        assert [i.pallet_count for i in shipment.items] == [20]

        frozen = await sql_repository.get_draft(draft.id)
        assert frozen.status == DraftStatus.FROZEN

        summaries = await sql_repository.list_shipments()
        assert [(s.id, s.item_count) for s in summaries] == [(shipment_id, 1)]

    @pytest.mark.asyncio
    async def test_frozen_is_terminal(self, service, sql_repository, sample_record):
        draft = await service.create("e" * 64, sample_record)
        await service.freeze(draft.id)

        with pytest.raises(DraftFrozenError):
            await service.save(draft.id, sample_record)
        with pytest.raises(AlreadyFrozenError):
            await service.freeze(draft.id)

        refreshed = await service.create("e" * 64, sample_record.model_copy(update={"po_no": "changed"}))
        assert refreshed.status == DraftStatus.FROZEN
        assert refreshed.data["po_no"] == "PO-7788"
        assert await sql_repository.count_shipments_for_draft(draft.id) == 1

    @pytest.mark.asyncio
    async def test_concurrent_freezes_commit_once(self, service, sql_repository, sample_record):
        draft = await service.create("f" * 64, sample_record)
        results = await asyncio.gather(
            *(service.freeze(draft.id) for _ in range(3)),
            return_exceptions=True,
        )
        assert sum(isinstance(r, uuid.UUID) for r in results) == 1
        assert all(isinstance(r, (uuid.UUID, AlreadyFrozenError)) for r in results)
        assert await sql_repository.count_shipments_for_draft(draft.id) == 1

    @pytest.mark.asyncio
    async def test_save_racing_freeze_never_diverges(self, service, sql_repository, sample_record):
        edited = sample_record.model_copy(update={"shipment_no": "2222222"})
        for n in range(10):
            draft = await service.create(f"{n:064d}", sample_record.model_copy(update={"shipment_no": "1111111"}))
            saved, shipment_id = await asyncio.gather(
                service.save(draft.id, edited),
                service.freeze(draft.id),
                return_exceptions=True,
            )
            assert isinstance(shipment_id, uuid.UUID)

            frozen = await sql_repository.get_draft(draft.id)
            shipment = await sql_repository.get_shipment(shipment_id)
            assert frozen.status == DraftStatus.FROZEN
            assert frozen.data["shipment_no"] == shipment.shipment_no
            if isinstance(saved, DraftFrozenError):
                assert shipment.shipment_no == "1111111"
            else:
                assert saved.data["shipment_no"] == "2222222"
                assert shipment.shipment_no == "2222222"

    @pytest.mark.asyncio
    async def test_reupload_racing_freeze_never_diverges(self, service, sql_repository, sample_record):
        draft = await service.create("7" * 64, sample_record)
        _, shipment_id = await asyncio.gather(
            service.create("7" * 64, sample_record.model_copy(update={"po_no": "PO-9999"})),
            service.freeze(draft.id),
        )
        frozen = await sql_repository.get_draft(draft.id)
        shipment = await sql_repository.get_shipment(shipment_id)
        assert frozen.data["po_no"] == shipment.po_no

    @pytest.mark.asyncio
    async def test_list_newest_first_with_limit(self, service, sql_repository, sample_record):
        ids = []
        for n in range(3):
            draft = await service.create(str(n) * 64, sample_record.model_copy(update={"shipment_no": f"10000{n}"}))
            ids.append(await service.freeze(draft.id))

        summaries = await sql_repository.list_shipments(limit=2)
        assert len(summaries) == 2
        assert {s.id for s in summaries} <= set(ids)
        assert len(await sql_repository.list_shipments(limit=None)) == 3


class TestCache:

    @pytest.mark.asyncio
    async def test_put_and_replace(self, sql_repository, sample_record):
        entry = CachedExtraction(
            fingerprint="9" * 64,
            source=TextSource.LAYOUT_TEXT,
            text="Shipment No.: 1234567",
            seed=sample_record.model_dump(mode="json"),
        )
        await sql_repository.put_cached(entry)
        await sql_repository.put_cached(entry.model_copy(update={"reconciled": {"shipment_no": "1"}}))

        cached = await sql_repository.get_cached("9" * 64)
        assert cached.source == TextSource.LAYOUT_TEXT
        assert cached.seed["shipment_no"] == "1234567"
        assert cached.reconciled == {"shipment_no": "1"}

    @pytest.mark.asyncio
    async def test_miss(self, sql_repository):
        assert await sql_repository.get_cached("0" * 64) is None

    @pytest.mark.asyncio
    async def test_ping(self, sql_repository):
        assert await sql_repository.ping() is True
