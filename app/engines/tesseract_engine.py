"""
Tesseract OCR text recovery engine.
Covers scanned/image-only PDFs and PDFs whose text layer is garbage.
Pages are rendered, preprocessed, then read with pytesseract.
"""

import os

import pytesseract
from PIL import Image
import structlog

from app.config import settings
from app.engines.base import TextRecoveryEngine, EngineError
from app.models.enums import TextSource
from app.pipeline.renderer import preprocess_for_ocr, render_pdf_pages

logger = structlog.get_logger(__name__)


class TesseractEngine(TextRecoveryEngine):
    """
    Tesseract OCR engine.
    Writes page images into the caller's scratch directory only.
    """

    engine_name = "tesseract"
    source = TextSource.OCR_TEXT

    def __init__(
        self,
        lang: str = settings.OCR_LANG,
        psm: int = settings.OCR_PSM,
        oem: int = settings.OCR_OEM,
        dpi: int = settings.RENDER_DPI,
        threshold: float = settings.OCR_BINARIZE_THRESHOLD,
    ):
        """
        Args:
            lang: Tesseract language codes ('eng+deu' covers these letters)
            psm: Page segmentation mode (4 = single column of variable sizes)
            oem: OCR engine mode (1 = LSTM only)
            dpi: Render resolution
            threshold: Binarization threshold as a fraction of white
        """
        self.lang = lang
        self.psm = psm
        self.oem = oem
        self.dpi = dpi
        self.threshold = threshold
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD

    def _extract_sync(self, pdf_path: str, work_dir: str) -> str:
        render_dir = os.path.join(work_dir, "ocr")
        try:
            pages = render_pdf_pages(pdf_path, render_dir, dpi=self.dpi, poppler_path=settings.POPPLER_PATH)
        except RuntimeError as e:
            raise EngineError(self.engine_name, "ERR_RENDER", str(e)) from e

        chunks = []
        for page in pages:
            try:
                preprocess_for_ocr(page, threshold=self.threshold)
                with Image.open(page.preprocessed_path) as img:
                    chunks.append(pytesseract.image_to_string(
                        img,
                        lang=self.lang,
                        config=f"--psm {self.psm} --oem {self.oem}",
                    ))
            except Exception as e:
                raise EngineError(self.engine_name, "ERR_OCR", f"page {page.page_index}: {e}") from e

        text = "\n" + "\n".join(chunks) if chunks else ""
        logger.debug("tesseract_text_extracted", page_count=len(pages), chars=len(text))
        return text

    async def health_check(self) -> bool:
        """Check if Tesseract is installed and accessible."""
        try:
            pytesseract.get_tesseract_version()
            return True
        except Exception:
            return False
