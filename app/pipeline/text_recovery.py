"""
Text recovery stage.

Runs every enabled engine over the same PDF concurrently and waits for all
of them to settle. A failing or empty engine contributes no candidate; it
never aborts the others. Candidates come back in source order so the scorer
can break ties deterministically.
"""

import asyncio
import os
import tempfile
import time
from typing import Optional

import structlog

from app.config import settings
from app.engines.base import TextRecoveryEngine
from app.errors import ExtractionFailedError
from app.observability.metrics import pipeline_stage_duration_seconds, text_candidates_total
from app.schemas.contracts import TextCandidate

logger = structlog.get_logger(__name__)


def default_engines() -> list[TextRecoveryEngine]:
    """Engines enabled in settings, in tie-break order."""
    from app.engines.pdfplumber_engine import PdfPlumberEngine, PdfPlumberLayoutEngine
    from app.engines.tesseract_engine import TesseractEngine

    engines: list[TextRecoveryEngine] = []
    if settings.ENABLE_EMBEDDED_TEXT:
        engines.append(PdfPlumberEngine())
    if settings.ENABLE_LAYOUT_TEXT:
        engines.append(PdfPlumberLayoutEngine())
    if settings.ENABLE_OCR:
        engines.append(TesseractEngine())
    return engines


class TextRecovery:
    """Produces zero to N TextCandidates from document bytes."""

    def __init__(self, engines: Optional[list[TextRecoveryEngine]] = None):
        self.engines = engines if engines is not None else default_engines()

    async def recover(self, content: bytes) -> list[TextCandidate]:
        """
        Write the PDF into a scratch directory, run all engines, and
        remove the directory on every exit path (including cancellation).

        Raises ExtractionFailedError when no engine produced usable text.
        """
        started = time.time()
        with tempfile.TemporaryDirectory(prefix="carrier-", ignore_cleanup_errors=True) as work_dir:
            pdf_path = os.path.join(work_dir, "input.pdf")
            with open(pdf_path, "wb") as f:
                f.write(content)

            results = await asyncio.gather(
                *(self._run_engine(engine, pdf_path, work_dir) for engine in self.engines),
                return_exceptions=True,
            )

        candidates = []
        for engine, result in zip(self.engines, results):
            source = engine.source.value
            if isinstance(result, BaseException):
                # CancelledError must propagate; anything else is one failed strategy
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning("candidate_failed", engine=engine.engine_name, error=str(result))
                text_candidates_total.labels(source=source, outcome="failed").inc()
            elif not result.strip():
                logger.info("candidate_empty", engine=engine.engine_name)
                text_candidates_total.labels(source=source, outcome="empty").inc()
            else:
                text_candidates_total.labels(source=source, outcome="ok").inc()
                candidates.append(TextCandidate(source=engine.source, text=result))

        pipeline_stage_duration_seconds.labels(stage="text_recovery").observe(time.time() - started)

        if not candidates:
            raise ExtractionFailedError("No text could be recovered from the document")

        logger.info(
            "text_recovered",
            sources=[c.source.value for c in candidates],
            chars={c.source.value: len(c.text) for c in candidates},
        )
        return candidates

    async def _run_engine(self, engine: TextRecoveryEngine, pdf_path: str, work_dir: str) -> str:
        # Each engine gets its own subdirectory so rendered pages never collide
        engine_dir = os.path.join(work_dir, engine.engine_name)
        os.makedirs(engine_dir, exist_ok=True)
        return await engine.extract_text(pdf_path, engine_dir)
