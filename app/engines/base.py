"""
Abstract base class for all text recovery engines.
Every engine turns a PDF on disk into one raw text string.
"""

import asyncio
from abc import ABC, abstractmethod

from app.models.enums import TextSource


class TextRecoveryEngine(ABC):
    """
    Abstract base class for text recovery engines.

    Every engine must:
    1. Accept a PDF path and a scratch directory it may write into
    2. Return the document text ("" when the strategy finds nothing)
    3. Report its name and the TextSource it produces
    4. Raise EngineError on failure (never return partial/corrupt data)
    """

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Unique identifier: 'pdfplumber', 'pdfplumber_layout', 'tesseract'"""
        ...

    @property
    @abstractmethod
    def source(self) -> TextSource:
        """Which candidate slot this engine fills."""
        ...

    async def extract_text(self, pdf_path: str, work_dir: str) -> str:
        """
        Recover text from the whole document.

        Library calls are blocking, so the work runs in a thread and
        several engines can proceed concurrently.
        """
        return await asyncio.to_thread(self._extract_sync, pdf_path, work_dir)

    @abstractmethod
    def _extract_sync(self, pdf_path: str, work_dir: str) -> str:
        ...

    async def health_check(self) -> bool:
        """Verify engine is available."""
        return True


class EngineError(Exception):
    """Raised when a text recovery engine fails."""

    def __init__(self, engine_name: str, error_code: str, message: str):
        self.engine_name = engine_name
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{engine_name}] {error_code}: {message}")
