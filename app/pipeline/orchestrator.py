"""
Upload pipeline: document bytes -> draft.

Stages: VALIDATE -> CACHE LOOKUP -> TEXT RECOVERY -> SCORE -> EXTRACT
        -> CONFIDENCE -> RECONCILE (optional) -> CACHE STORE -> DRAFT

The whole sequence is bounded by UPLOAD_TIMEOUT_SECONDS. Failures before
the DRAFT stage leave no draft behind.
"""

import asyncio
import time
from typing import Optional

import structlog

from app.config import settings
from app.errors import (
    ExtractionFailedError, ExtractionTimeoutError, NoInputError,
    PipelineError, UnsupportedFormatError, UploadTooLargeError,
)
from app.models.enums import ReconciliationOutcome
from app.observability.metrics import (
    confidence_scores, extraction_cache_hits_total, line_items_extracted_total,
    pipeline_stage_duration_seconds, upload_duration_seconds, uploads_total,
    winning_source_total,
)
from app.pipeline.candidate_scorer import pick_best
from app.pipeline.confidence_scorer import apply_confidence
from app.pipeline.field_extractor import extract_fields
from app.pipeline.profile import DEFAULT_PROFILE, DocumentProfile
from app.pipeline.reconciliation import Reconciler
from app.pipeline.text_recovery import TextRecovery
from app.review.drafts import DraftService
from app.schemas.contracts import ScoredCandidate, TextCandidate
from app.schemas.drafts import CachedExtraction, DebugTextResponse, UploadResponse
from app.schemas.records import ExtractedRecord
from app.storage.fingerprint import compute_fingerprint, looks_like_pdf
from app.storage.repository import ShipmentRepository

logger = structlog.get_logger(__name__)


class UploadPipeline:
    """
    Runs one upload end to end.
    Collaborators are injected so tests can swap engines and the store.
    """

    def __init__(
        self,
        repository: ShipmentRepository,
        recovery: Optional[TextRecovery] = None,
        reconciler: Optional[Reconciler] = None,
        profile: DocumentProfile = DEFAULT_PROFILE,
        timeout: float = settings.UPLOAD_TIMEOUT_SECONDS,
        use_cache: bool = settings.ENABLE_EXTRACTION_CACHE,
        max_bytes: int = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024,
    ):
        self.repository = repository
        self.recovery = recovery or TextRecovery()
        self.reconciler = reconciler or Reconciler()
        self.profile = profile
        self.timeout = timeout
        self.use_cache = use_cache
        self.max_bytes = max_bytes
        self.drafts = DraftService(repository)

    def validate(self, content: Optional[bytes]) -> None:
        if not content:
            raise NoInputError("No file uploaded")
        if len(content) > self.max_bytes:
            raise UploadTooLargeError(f"File exceeds {self.max_bytes // (1024 * 1024)}MB limit")
        if not looks_like_pdf(content):
            raise UnsupportedFormatError("Uploaded file is not a PDF")

    async def upload(self, content: bytes) -> UploadResponse:
        """Extract a record from the document and land it in draft v1."""
        started = time.time()
        try:
            self.validate(content)
            response = await self._bounded(self._upload(content))
        except PipelineError as e:
            uploads_total.labels(outcome=e.error_code).inc()
            logger.warning("upload_failed", error_code=e.error_code, error=e.message)
            raise

        uploads_total.labels(outcome="ok").inc()
        upload_duration_seconds.observe(time.time() - started)
        return response

    async def debug_text(self, content: bytes) -> DebugTextResponse:
        """The winning recovered text, for template tuning."""
        self.validate(content)
        best, _ = await self._bounded(self._recover(content))
        return DebugTextResponse(source=best.candidate.source, score=best.score, text=best.candidate.text)

    # ── internals ────────────────────────────────────────────

    async def _bounded(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ExtractionTimeoutError(f"Processing exceeded {self.timeout}s") from e

    async def _recover(self, content: bytes) -> tuple[ScoredCandidate, list[TextCandidate]]:
        candidates = await self.recovery.recover(content)
        best = pick_best(candidates, self.profile)
        if best is None:
            raise ExtractionFailedError("No text could be recovered from the document")
        return best, candidates

    async def _upload(self, content: bytes) -> UploadResponse:
        fingerprint = compute_fingerprint(content)
        log = logger.bind(fingerprint=fingerprint[:12])
        log.info("pipeline_started", size=len(content))

        cached = await self.repository.get_cached(fingerprint) if self.use_cache else None
        if cached is not None:
            extraction_cache_hits_total.inc()
            record = ExtractedRecord.model_validate(cached.reconciled or cached.seed)
            source = cached.source
            outcome = ReconciliationOutcome.CACHED
            log.info("extraction_cache_hit", source=source.value)
        else:
            record, source, outcome = await self._extract(content, fingerprint)

        t = time.time()
        draft = await self.drafts.create(fingerprint, record)
        pipeline_stage_duration_seconds.labels(stage="draft").observe(time.time() - t)

        # A frozen draft keeps its committed data; answer with that, not the fresh extraction
        if draft.is_frozen:
            record = draft.record()

        log.info(
            "pipeline_completed",
            draft_id=str(draft.id),
            status=draft.status.value,
            confidence=record.confidence,
            reconciliation=outcome.value,
        )
        return UploadResponse(
            **record.model_dump(),
            draft_id=draft.id,
            version_no=draft.version_no,
            status=draft.status,
            fingerprint=fingerprint,
            source=source,
            reconciliation=outcome,
        )

    async def _extract(self, content: bytes, fingerprint: str):
        best, candidates = await self._recover(content)
        winner = best.candidate
        winning_source_total.labels(source=winner.source.value).inc()

        t = time.time()
        seed = apply_confidence(extract_fields(winner.text, self.profile))
        pipeline_stage_duration_seconds.labels(stage="extract").observe(time.time() - t)

        t = time.time()
        alternates = [c for c in candidates if c.source != winner.source]
        reconciled, outcome = await self.reconciler.refine(winner, alternates, seed)
        if outcome == ReconciliationOutcome.APPLIED:
            reconciled = apply_confidence(reconciled)
        pipeline_stage_duration_seconds.labels(stage="reconcile").observe(time.time() - t)

        confidence_scores.observe(reconciled.confidence)
        line_items_extracted_total.inc(len(reconciled.items))

        if self.use_cache:
            await self.repository.put_cached(CachedExtraction(
                fingerprint=fingerprint,
                source=winner.source,
                text=winner.text,
                seed=seed.model_dump(mode="json"),
                reconciled=reconciled.model_dump(mode="json") if outcome == ReconciliationOutcome.APPLIED else None,
            ))

        return reconciled, winner.source, outcome
