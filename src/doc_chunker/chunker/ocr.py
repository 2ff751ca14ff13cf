"""OCR for scanned PDFs and images using PyMuPDF rasterization and Tesseract."""

import io
import re
import time
from pathlib import Path

import fitz  # PyMuPDF
import pytesseract
from PIL import Image

from ..config import ChunkerOptions
from ..errors import CollaboratorUnavailableError, ExtractionStageError, QualityRejectedError
from ..logger import logger
from . import imaging
from .quality import cleanup_ocr_artifacts, is_garbage_ocr_output

ORIENTATION_PATTERN = re.compile(r"Orientation in degrees:\s*(\d+)", re.IGNORECASE)
ROTATE_PATTERN = re.compile(r"Rotate:\s*(\d+)", re.IGNORECASE)
VALID_ROTATIONS = (90, 180, 270)


class TesseractEngine:
    """Thin wrapper around pytesseract with a per-call timeout."""

    def __init__(self, timeout_seconds: float = 120):
        self.timeout_seconds = timeout_seconds

    def recognize(
        self,
        image: Image.Image,
        language: str = "eng",
        engine_mode: int = 1,
        page_segmentation_mode: int = 3,
    ) -> str:
        """Run text recognition on an image.

        Raises:
            CollaboratorUnavailableError: If the tesseract binary is missing.
        """
        try:
            return pytesseract.image_to_string(
                image,
                lang=language,
                config=f"--oem {engine_mode} --psm {page_segmentation_mode}",
                timeout=self.timeout_seconds,
            )
        except pytesseract.TesseractNotFoundError as e:
            raise CollaboratorUnavailableError("tesseract", str(e)) from e

    def detect_orientation(self, image: Image.Image) -> int:
        """Return the counter-clockwise rotation (0, 90, 180 or 270) that uprights the page."""
        try:
            osd = pytesseract.image_to_osd(image, config="--psm 0", timeout=self.timeout_seconds)
        except pytesseract.TesseractNotFoundError as e:
            raise CollaboratorUnavailableError("tesseract", str(e)) from e
        return parse_orientation(osd)


def parse_orientation(osd: str) -> int:
    """Extract the correction angle from Tesseract OSD output.

    "Orientation in degrees" is already counter-clockwise; "Rotate" is
    clockwise and is converted.
    """
    match = ORIENTATION_PATTERN.search(osd)
    if match:
        angle = int(match.group(1))
    else:
        match = ROTATE_PATTERN.search(osd)
        if not match:
            return 0
        angle = (360 - int(match.group(1))) % 360
    return angle if angle in VALID_ROTATIONS else 0


class PageRasterizer:
    """Renders PDF pages to PIL images with PyMuPDF."""

    def render_page(
        self, doc: fitz.Document, page_index: int, dpi: int = 300
    ) -> Image.Image:
        page = doc[page_index]
        mat = fitz.Matrix(dpi / 72, dpi / 72)
        pix = page.get_pixmap(matrix=mat)
        image = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
        image.info["dpi"] = (dpi, dpi)
        return image


def open_pdf(source: bytes | str | Path) -> fitz.Document:
    """Open a PDF from raw bytes or a filesystem path.

    Raises:
        FileNotFoundError: If the path does not exist.
        ExtractionStageError: If PyMuPDF cannot parse the data.
    """
    if isinstance(source, (bytes, bytearray)):
        try:
            return fitz.open(stream=bytes(source), filetype="pdf")
        except RuntimeError as e:
            raise ExtractionStageError("open", f"cannot open PDF bytes: {e}") from e
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"PDF file not found: {path}")
    try:
        return fitz.open(path)
    except RuntimeError as e:
        raise ExtractionStageError("open", f"cannot open PDF {path.name}: {e}") from e


class OcrPipeline:
    """Rasterize, orient, optionally preprocess, recognise and clean pages."""

    def __init__(
        self,
        options: ChunkerOptions | None = None,
        engine: TesseractEngine | None = None,
        rasterizer: PageRasterizer | None = None,
    ):
        self.options = options or ChunkerOptions()
        self.engine = engine or TesseractEngine(self.options.ocr.timeout_seconds)
        self.rasterizer = rasterizer or PageRasterizer()

    def correct_rotation(self, image: Image.Image, page_number: int = 1) -> Image.Image:
        """Rotate the page upright; orientation failures keep the original."""
        try:
            angle = self.engine.detect_orientation(image)
        except (pytesseract.TesseractError, RuntimeError, CollaboratorUnavailableError) as e:
            logger.debug("rotation detection failed", page_number=page_number, error=str(e))
            return image
        if angle:
            logger.info("page rotation corrected", page_number=page_number, degrees=angle)
            return imaging.rotate(image, angle)
        return image

    def recognize_page(
        self, image: Image.Image, page_number: int = 1, dpi: int | None = None
    ) -> str:
        """Run the per-page OCR steps and return cleaned text.

        Raises:
            QualityRejectedError: If the recognised text is empty or garbage.
            CollaboratorUnavailableError: If the OCR engine is missing.
        """
        opts = self.options.ocr
        image = self.correct_rotation(image, page_number)

        if opts.image_preprocessing and imaging.should_preprocess(
            image, dpi, self.options.image_quality
        ):
            try:
                image = imaging.preprocess_for_ocr(image)
            except (OSError, ValueError) as e:
                logger.warn("image preprocessing failed", page_number=page_number, error=str(e))

        start = time.perf_counter()
        text = self.engine.recognize(
            image,
            language=opts.language,
            engine_mode=opts.engine_mode,
            page_segmentation_mode=opts.page_segmentation_mode,
        )
        logger.debug(
            "page recognised",
            page_number=page_number,
            chars=len(text),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )

        if not text.strip():
            raise QualityRejectedError("empty_output", "OCR returned no text")
        if is_garbage_ocr_output(text, self.options.garbage):
            raise QualityRejectedError("garbage_output", "OCR output rejected as garbage")
        return cleanup_ocr_artifacts(text, self.options.artifacts)

    def _recognize_or_skip(self, image: Image.Image, page_number: int, dpi: int | None) -> str:
        try:
            return self.recognize_page(image, page_number, dpi)
        except QualityRejectedError as e:
            logger.warn("ocr page rejected", stage="ocr", page_number=page_number, check=e.check)
        except (pytesseract.TesseractError, RuntimeError) as e:
            # pytesseract signals timeouts with RuntimeError
            logger.warn("ocr page failed", stage="ocr", page_number=page_number, error=str(e))
        return ""

    def ocr_pdf(self, source: bytes | str | Path) -> str:
        """OCR up to ``max_pages`` pages of a PDF and join surviving pages.

        Returns:
            Page texts separated by blank lines; empty if every page was
            rejected.
        """
        opts = self.options.ocr
        with open_pdf(source) as doc:
            page_count = doc.page_count
            limit = min(page_count, opts.max_pages)
            if page_count > limit:
                logger.warn("ocr page cap applied", total_pages=page_count, max_pages=limit)
            logger.info("starting ocr processing", total_pages=limit, dpi=opts.dpi, language=opts.language)

            texts = []
            for index in range(limit):
                image = self.rasterizer.render_page(doc, index, opts.dpi)
                try:
                    text = self._recognize_or_skip(image, index + 1, opts.dpi)
                finally:
                    image.close()
                if text.strip():
                    texts.append(text.strip())

                if (index + 1) % 10 == 0:
                    logger.info("ocr progress", pages_processed=index + 1, total_pages=limit)

        combined = "\n\n".join(texts)
        logger.info(
            "ocr processing complete",
            pages=limit,
            accepted_pages=len(texts),
            total_chars=len(combined),
        )
        return combined

    def ocr_image(self, data: bytes | str | Path) -> str:
        """OCR a standalone image file (PNG, JPEG, TIFF...)."""
        if isinstance(data, (bytes, bytearray)):
            image = Image.open(io.BytesIO(data))
        else:
            image = Image.open(data)
        with image:
            image.load()
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            return self._recognize_or_skip(image, 1, None)
