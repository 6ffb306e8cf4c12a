"""
PDF rendering and OCR image preprocessing.

Renders PDF pages to images and runs a fixed preprocessing chain before
OCR: deskew -> grayscale -> contrast stretch -> sharpen -> binarize.
"""

import os
from dataclasses import dataclass

import cv2
import numpy as np
from pdf2image import convert_from_path
import structlog

logger = structlog.get_logger(__name__)

SHARPEN_KERNEL = np.array([[-1, -1, -1], [-1, 9, -1], [-1, -1, -1]], dtype=np.float32)


@dataclass
class RenderedPage:
    page_index: int
    image_path: str
    width: int
    height: int
    dpi: int = 300
    skew_degrees: float = 0.0
    preprocessed_path: str = ""


# ─── PDF Rendering ────────────────────────────────────────────

def render_pdf_pages(
    pdf_path: str,
    output_dir: str,
    dpi: int = 300,
    poppler_path: str | None = None,
) -> list[RenderedPage]:
    """
    Render all pages of a PDF to PNG images.
    Returns list of RenderedPage with file paths.
    """
    os.makedirs(output_dir, exist_ok=True)

    try:
        images = convert_from_path(
            pdf_path,
            dpi=dpi,
            fmt="png",
            thread_count=2,
            poppler_path=poppler_path,
        )
    except Exception as e:
        logger.error("pdf_render_failed", pdf_path=pdf_path, error=str(e))
        raise RuntimeError(f"Failed to render PDF: {e}") from e

    rendered = []
    for i, img in enumerate(images):
        page_path = os.path.join(output_dir, f"page_{i:04d}.png")
        img.save(page_path, "PNG")
        rendered.append(RenderedPage(
            page_index=i,
            image_path=page_path,
            width=img.width,
            height=img.height,
            dpi=dpi,
        ))

    logger.info("pdf_rendered", page_count=len(rendered), dpi=dpi)
    return rendered


# ─── Preprocessing steps (pure array -> array) ────────────────

def estimate_skew(gray: np.ndarray) -> float:
    """
    Median angle of near-horizontal Hough lines, in degrees.
    Returns 0.0 when there is not enough line evidence.
    """
    edges = cv2.Canny(gray, 50, 150, apertureSize=3)
    lines = cv2.HoughLinesP(edges, 1, np.pi / 180, threshold=100,
                            minLineLength=gray.shape[1] * 0.2, maxLineGap=10)
    if lines is None or len(lines) < 3:
        return 0.0

    angles = []
    for line in lines:
        x1, y1, x2, y2 = line[0]
        if x2 != x1:
            angle = np.degrees(np.arctan2(y2 - y1, x2 - x1))
            if abs(angle) < 20:
                angles.append(angle)

    if not angles:
        return 0.0
    return float(np.median(angles))


def deskew(gray: np.ndarray) -> tuple[np.ndarray, float]:
    """Rotate small skews (0.5 - 15 degrees) back to horizontal."""
    angle = estimate_skew(gray)
    if not 0.5 < abs(angle) < 15:
        return gray, 0.0

    h, w = gray.shape[:2]
    M = cv2.getRotationMatrix2D((w // 2, h // 2), angle, 1.0)
    rotated = cv2.warpAffine(gray, M, (w, h), borderMode=cv2.BORDER_REPLICATE)
    return rotated, round(angle, 3)


def to_grayscale(img: np.ndarray) -> np.ndarray:
    if img.ndim == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    return img


def contrast_stretch(gray: np.ndarray, low_pct: float = 1.0, high_pct: float = 99.0) -> np.ndarray:
    """Map the 1st..99th percentile intensity range onto 0..255."""
    lo, hi = np.percentile(gray, (low_pct, high_pct))
    if hi <= lo:
        return gray
    stretched = (gray.astype(np.float32) - lo) * (255.0 / (hi - lo))
    return np.clip(stretched, 0, 255).astype(np.uint8)


def sharpen(gray: np.ndarray) -> np.ndarray:
    return cv2.filter2D(gray, -1, SHARPEN_KERNEL)


def binarize(gray: np.ndarray, threshold: float = 0.60) -> np.ndarray:
    """Fixed global threshold, expressed as a fraction of full white."""
    _, binary = cv2.threshold(gray, int(255 * threshold), 255, cv2.THRESH_BINARY)
    return binary


# ─── Full Preprocessing Chain ─────────────────────────────────

def preprocess_for_ocr(page: RenderedPage, threshold: float = 0.60) -> RenderedPage:
    """
    Run the fixed chain on a rendered page and write the result next to it.
    The original render is left untouched.
    """
    img = cv2.imread(page.image_path)
    if img is None:
        raise RuntimeError(f"Unreadable page image: {page.image_path}")

    gray = to_grayscale(img)
    gray, page.skew_degrees = deskew(gray)
    gray = contrast_stretch(gray)
    gray = sharpen(gray)
    binary = binarize(gray, threshold)

    base, ext = os.path.splitext(page.image_path)
    page.preprocessed_path = f"{base}_prep{ext}"
    cv2.imwrite(page.preprocessed_path, binary)

    logger.debug("page_preprocessed", page=page.page_index, skew=page.skew_degrees)
    return page
