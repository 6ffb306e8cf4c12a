"""
pdfplumber text recovery engines.

PdfPlumberEngine reads the embedded text layer in content-stream order.
PdfPlumberLayoutEngine rebuilds lines from word coordinates so that
label/value pairs printed side by side end up on the same line.
"""

import pdfplumber
import structlog

from app.engines.base import TextRecoveryEngine, EngineError
from app.models.enums import TextSource
from app.schemas.contracts import BBox, ExtractedLine, ExtractedToken

logger = structlog.get_logger(__name__)


def _build_lines_from_tokens(tokens: list[ExtractedToken], y_tolerance: float = 0.005) -> list[ExtractedLine]:
    """
    Cluster tokens into lines by y-overlap.
    Tokens within y_tolerance of each other are on the same line.
    """
    if not tokens:
        return []

    # Sort by y0 then x0
    sorted_tokens = sorted(tokens, key=lambda t: (t.bbox.y0, t.bbox.x0))

    lines = []
    current_line_tokens = [sorted_tokens[0]]
    current_y = sorted_tokens[0].bbox.y0

    for token in sorted_tokens[1:]:
        if abs(token.bbox.y0 - current_y) <= y_tolerance:
            current_line_tokens.append(token)
        else:
            lines.append(_make_line(current_line_tokens))
            current_line_tokens = [token]
            current_y = token.bbox.y0

    if current_line_tokens:
        lines.append(_make_line(current_line_tokens))

    return lines


def _make_line(tokens: list[ExtractedToken]) -> ExtractedLine:
    """Create an ExtractedLine from a list of tokens on the same line."""
    tokens_sorted = sorted(tokens, key=lambda t: t.bbox.x0)
    return ExtractedLine(
        text=" ".join(t.text for t in tokens_sorted),
        bbox=BBox(
            x0=min(t.bbox.x0 for t in tokens_sorted),
            y0=min(t.bbox.y0 for t in tokens_sorted),
            x1=max(t.bbox.x1 for t in tokens_sorted),
            y1=max(t.bbox.y1 for t in tokens_sorted),
        ),
        tokens=tokens_sorted,
    )


def _line_gap_is_paragraph(prev: ExtractedLine, line: ExtractedLine) -> bool:
    """A vertical gap of more than ~2 line heights reads as a blank line."""
    height = max(prev.bbox.y1 - prev.bbox.y0, 0.005)
    return (line.bbox.y0 - prev.bbox.y1) > 2 * height


class PdfPlumberEngine(TextRecoveryEngine):
    """Embedded text layer, page by page."""

    engine_name = "pdfplumber"
    source = TextSource.EMBEDDED_TEXT

    def _extract_sync(self, pdf_path: str, work_dir: str) -> str:
        try:
            with pdfplumber.open(pdf_path) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
        except Exception as e:
            raise EngineError(self.engine_name, "ERR_TEXT_LAYER", str(e)) from e

        text = "\n".join(pages)
        logger.debug("pdfplumber_text_extracted", page_count=len(pages), chars=len(text))
        return text


class PdfPlumberLayoutEngine(TextRecoveryEngine):
    """Layout-preserving dump rebuilt from word coordinates."""

    engine_name = "pdfplumber_layout"
    source = TextSource.LAYOUT_TEXT

    def _extract_sync(self, pdf_path: str, work_dir: str) -> str:
        page_texts = []
        try:
            with pdfplumber.open(pdf_path) as pdf:
                for page in pdf.pages:
                    page_width = float(page.width)
                    page_height = float(page.height)
                    words = page.extract_words(
                        x_tolerance=3,
                        y_tolerance=3,
                        keep_blank_chars=False,
                        use_text_flow=False,
                    )
                    tokens = []
                    for w in words:
                        text = w.get("text", "").strip()
                        if not text:
                            continue
                        tokens.append(ExtractedToken(
                            text=text,
                            bbox=BBox(
                                x0=min(1.0, max(0.0, round(w["x0"] / page_width, 6))),
                                y0=min(1.0, max(0.0, round(w["top"] / page_height, 6))),
                                x1=min(1.0, max(0.0, round(w["x1"] / page_width, 6))),
                                y1=min(1.0, max(0.0, round(w["bottom"] / page_height, 6))),
                            ),
                        ))
                    page_texts.append(self._render_lines(_build_lines_from_tokens(tokens)))
        except Exception as e:
            raise EngineError(self.engine_name, "ERR_LAYOUT", str(e)) from e

        text = "\n".join(page_texts)
        logger.debug("pdfplumber_layout_extracted", page_count=len(page_texts), chars=len(text))
        return text

    @staticmethod
    def _render_lines(lines: list[ExtractedLine]) -> str:
        out: list[str] = []
        prev = None
        for line in lines:
            if prev is not None and _line_gap_is_paragraph(prev, line):
                out.append("")
            out.append(line.text)
            prev = line
        return "\n".join(out)
