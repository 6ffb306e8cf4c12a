"""
Stub text recovery engine for testing pipeline plumbing.
Returns canned text (or raises) without touching a real PDF.
"""

from typing import Optional

from app.engines.base import TextRecoveryEngine, EngineError
from app.models.enums import TextSource


class StubEngine(TextRecoveryEngine):
    """Fake adapter that returns fixed text for one candidate slot."""

    def __init__(self, source: TextSource, text: str = "", error: Optional[str] = None):
        self._source = source
        self.text = text
        self.error = error
        self.calls = 0
        self.seen_paths: list[str] = []

    @property
    def engine_name(self) -> str:
        return f"stub_{self._source.value}"

    @property
    def source(self) -> TextSource:
        return self._source

    def _extract_sync(self, pdf_path: str, work_dir: str) -> str:
        self.calls += 1
        self.seen_paths.append(work_dir)
        if self.error:
            raise EngineError(self.engine_name, "ERR_STUB", self.error)
        return self.text
