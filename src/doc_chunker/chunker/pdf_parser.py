"""PDF extraction: PyMuPDF reader plus the three-stage fallback orchestrator.

Stages run in order: layout-aware ``intelligent`` parsing, ``basic``
paragraph parsing, then ``ocr``. A stage's output is accepted as soon as it
is non-empty and passes the scanned-text gate. When basic parsing finds
scanned text, OCR is switched on for the rest of the run even if the caller
disabled it.
"""

import statistics
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import fitz  # PyMuPDF
from pydantic import BaseModel

from ..config import ChunkerOptions
from ..errors import ExtractionFailedError
from ..logger import logger
from .layout import LayoutExtractor
from .models import (
    NATIVE_CONFIDENCE,
    OCR_CONFIDENCE,
    ContentBlock,
    HeaderBlock,
    ImageBlock,
    LayoutElement,
    ListBlock,
    TableBlock,
    TextBlock,
    block_text,
)
from .ocr import OcrPipeline, open_pdf
from .quality import is_scanned
from .structuring import detect_header, structure_text
from .tables import TableExtractor, render_markdown_table

# Threshold for detecting garbage text (corrupted font encodings)
GARBAGE_CONTROL_CHAR_RATIO = 0.1  # >10% control chars = garbage
HEADING_SIZE_RATIO = 1.2
TITLE_SIZE_RATIO = 1.5
BULLET_CHARS = "•◦▪▸►-*"


class ParsedText(BaseModel):
    """Native text layer of a PDF."""

    text: str
    page_count: int
    page_texts: list[str]


class PdfReader:
    """Scoped access to a PDF opened with PyMuPDF.

    Use as a context manager so the document is released on every exit path.
    """

    def __init__(self, source: bytes | str | Path):
        self._doc = open_pdf(source)

    def __enter__(self) -> "PdfReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def document(self) -> fitz.Document:
        return self._doc

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def parse_text(self) -> ParsedText:
        page_texts = [page.get_text() for page in self._doc]
        return ParsedText(
            text="\n\n".join(page_texts),
            page_count=len(page_texts),
            page_texts=page_texts,
        )

    def close(self) -> None:
        if not self._doc.is_closed:
            self._doc.close()


def _is_garbage_text(text: str) -> bool:
    """Detect binary garbage from corrupted font encodings.

    Args:
        text: The extracted text to check.

    Returns:
        True if the text has a high ratio of control characters.
    """
    if not text or len(text) < 20:
        return False
    control_chars = sum(1 for c in text if ord(c) < 32 and c not in "\n\t\r ")
    return control_chars / len(text) > GARBAGE_CONTROL_CHAR_RATIO


def _extract_spans_info(block_dict: dict) -> tuple[list[str], float, bool, bool]:
    """Extract line texts, font size, bold and italic status from a block.

    Args:
        block_dict: A block dictionary from PyMuPDF's get_text("dict").

    Returns:
        Tuple of (lines, average_font_size, is_bold, is_italic).
    """
    lines = []
    font_sizes = []
    bold_count = 0
    italic_count = 0

    for line in block_dict.get("lines", []):
        parts = []
        for span in line.get("spans", []):
            text = span.get("text", "").strip()
            if not text:
                continue
            parts.append(text)
            font_sizes.append(span.get("size", 12.0))
            flags = span.get("flags", 0)
            font_name = span.get("font", "").lower()
            if (flags & 2**4) or "bold" in font_name:
                bold_count += 1
            if (flags & 2**1) or "italic" in font_name or "oblique" in font_name:
                italic_count += 1
        if parts:
            lines.append(" ".join(parts).replace("\x00", ""))

    if not font_sizes:
        return [], 12.0, False, False

    spans = len(font_sizes)
    return lines, statistics.mean(font_sizes), bold_count > spans / 2, italic_count > spans / 2


def extract_layout_elements(page: fitz.Page, page_number: int) -> list[LayoutElement]:
    """One LayoutElement per PyMuPDF text block, lines separated by newlines."""
    elements = []
    for idx, block in enumerate(page.get_text("dict").get("blocks", [])):
        if block.get("type") != 0:  # Skip non-text blocks (images, etc.)
            continue
        lines, font_size, is_bold, is_italic = _extract_spans_info(block)
        if not lines:
            continue
        x0, y0, x1, y1 = block.get("bbox", (0.0, 0.0, 0.0, 0.0))
        elements.append(
            LayoutElement(
                x=x0,
                y=y0,
                width=x1 - x0,
                height=y1 - y0,
                content="\n".join(lines),
                font_size=font_size,
                is_bold=is_bold,
                is_italic=is_italic,
                page_number=page_number,
                element_id=f"p{page_number}_b{idx}",
                confidence=NATIVE_CONFIDENCE,
            )
        )
    return elements


def _is_list_item(text: str) -> bool:
    stripped = text.strip()
    return bool(stripped) and (
        stripped[0] in BULLET_CHARS
        or (len(stripped) > 2 and stripped[0].isdigit() and stripped[1] in ".)")
    )


def _strip_bullet(text: str) -> str:
    stripped = text.strip()
    if stripped[0] in BULLET_CHARS:
        return stripped[1:].strip()
    return stripped


def elements_to_blocks(
    elements: list[LayoutElement], tables: list[TableBlock], median_size: float
) -> list[ContentBlock]:
    """Convert ordered elements and detected tables into ContentBlocks.

    ``elements`` must already be in reading order; that order is kept.
    Elements inside a table's bounding box are represented by the table,
    which is placed before the first element at or below its top edge.
    Consecutive list items are grouped into one ListBlock.
    """
    def inside(el: LayoutElement, table: TableBlock) -> bool:
        x0, y0, x1, y1 = table.bounding_box
        return x0 <= el.x <= x1 and y0 <= el.y <= y1

    def table_slot(table: TableBlock) -> float:
        top = table.bounding_box[1]
        for i, el in enumerate(elements):
            if el.page_number == table.page_number and el.y >= top:
                return i - 0.5
        return len(elements)

    positioned: list[tuple[float, ContentBlock]] = [(table_slot(t), t) for t in tables]
    pending_items: list[tuple[int, str, LayoutElement]] = []

    def flush_list() -> None:
        if pending_items:
            slot, _, first = pending_items[0]
            positioned.append((slot, ListBlock(
                items=[item for _, item, _ in pending_items],
                page_number=first.page_number,
                confidence=first.confidence,
            )))
            pending_items.clear()

    for slot, el in enumerate(elements):
        if any(inside(el, t) for t in tables):
            continue
        text = el.content.strip()
        if _is_list_item(text):
            pending_items.append((slot, _strip_bullet(text), el))
            continue
        flush_list()

        single_line = " ".join(text.split())
        if el.font_size > median_size * HEADING_SIZE_RATIO or (
            el.is_bold and len(single_line) < 100
        ) or detect_header(single_line):
            level = 1 if el.font_size > median_size * TITLE_SIZE_RATIO else 2
            block: ContentBlock = HeaderBlock(
                text=single_line, level=level, page_number=el.page_number, confidence=el.confidence
            )
        else:
            block = TextBlock(text=text, page_number=el.page_number, confidence=el.confidence)
        positioned.append((slot, block))
    flush_list()

    positioned.sort(key=lambda p: (p[1].page_number, p[0]))
    return [block for _, block in positioned]


def convert_to_markdown(blocks: list[ContentBlock]) -> str:
    """Render ContentBlocks as markdown, one block per paragraph."""
    parts = []
    for block in blocks:
        if isinstance(block, HeaderBlock):
            parts.append(f"{'#' * block.level} {block.text}")
        elif isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, ListBlock):
            parts.append("\n".join(f"- {item}" for item in block.items))
        elif isinstance(block, TableBlock):
            parts.append(render_markdown_table(block.table.rows))
        elif isinstance(block, ImageBlock) and block.extracted_text:
            parts.append(f"![Image content: {block.extracted_text}]")
    return "\n\n".join(p for p in parts if p.strip())


@dataclass
class Stage:
    """One extraction attempt.

    Attributes:
        name: Stage name used in logs and error reports.
        run: Produces ContentBlocks from the source.
        accept: Early-accept predicate over the stage's concatenated text.
        requires_ocr: Skip the stage unless OCR is enabled for this run.
        on_reject: Called when the stage produced nothing or content that was not accepted.
    """

    name: str
    run: Callable[[bytes | str | Path], list[ContentBlock]]
    accept: Callable[[str], bool]
    requires_ocr: bool = False
    on_reject: Callable[["_RunState"], None] | None = None


@dataclass
class _RunState:
    ocr_enabled: bool
    partial: list[ContentBlock] | None = None
    errors: dict[str, str] = field(default_factory=dict)
    attempted: int = 0


class PdfExtractor:
    """Three-tier PDF extraction with per-stage isolation."""

    def __init__(
        self,
        options: ChunkerOptions | None = None,
        ocr: OcrPipeline | None = None,
        layout: LayoutExtractor | None = None,
        tables: TableExtractor | None = None,
    ):
        self.options = options or ChunkerOptions()
        self.ocr = ocr or OcrPipeline(self.options)
        self.layout = layout or LayoutExtractor(self.options.layout)
        self.tables = tables or TableExtractor(self.options.tables)

    def _not_scanned(self, text: str) -> bool:
        return not is_scanned(text, self.options.scan, self.options.garbage)

    @staticmethod
    def _enable_ocr(state: _RunState) -> None:
        if not state.ocr_enabled:
            logger.warn(
                "scanned pdf detected, enabling ocr",
                stage="basic",
                overridden_option="ocr.enable_ocr",
            )
            state.ocr_enabled = True

    @property
    def stages(self) -> list[Stage]:
        return [
            Stage("intelligent", self.extract_intelligent, self._not_scanned),
            Stage("basic", self.extract_basic, self._not_scanned, on_reject=self._enable_ocr),
            Stage("ocr", self.extract_ocr, lambda text: bool(text.strip()), requires_ocr=True),
        ]

    def extract(self, source: bytes | str | Path) -> list[ContentBlock]:
        """Extract ContentBlocks from a PDF.

        Args:
            source: PDF bytes or a path to a PDF file.

        Returns:
            Blocks of the first accepted stage, else the first partial result,
            else an empty list when every stage legitimately found nothing.

        Raises:
            ExtractionFailedError: If every attempted stage raised.
        """
        state = _RunState(ocr_enabled=self.options.ocr.enable_ocr)

        for stage in self.stages:
            if stage.requires_ocr and not state.ocr_enabled:
                logger.info("stage skipped, ocr disabled", stage=stage.name)
                continue

            state.attempted += 1
            try:
                blocks = stage.run(source)
            except Exception as e:
                state.errors[stage.name] = str(e)
                logger.warn("extraction stage failed", stage=stage.name, error=str(e))
                continue

            if not blocks:
                logger.info("extraction stage produced no content", stage=stage.name)
                # an empty text layer counts as scanned
                if stage.on_reject:
                    stage.on_reject(state)
                continue

            text = "\n".join(block_text(b) for b in blocks)
            if stage.accept(text):
                logger.info(
                    "extraction stage accepted",
                    stage=stage.name,
                    blocks=len(blocks),
                    chars=len(text),
                )
                return blocks

            logger.info("extraction stage rejected", stage=stage.name, check="is_scanned", chars=len(text))
            if state.partial is None:
                state.partial = blocks
            if stage.on_reject:
                stage.on_reject(state)

        if state.partial:
            logger.warn("returning partial extraction result", blocks=len(state.partial))
            return state.partial

        if state.attempted and len(state.errors) == state.attempted:
            raise ExtractionFailedError(_describe(source), state.errors)

        logger.error("all extraction stages produced no content", stages_attempted=state.attempted)
        return []

    def extract_intelligent(self, source: bytes | str | Path) -> list[ContentBlock]:
        """Layout-aware parse: positioned blocks, layout and table analysis."""
        with PdfReader(source) as reader:
            pages = []
            for page_index, page in enumerate(reader.document):
                page_number = page_index + 1
                elements = extract_layout_elements(page, page_number)
                if _is_garbage_text(" ".join(el.content for el in elements)):
                    logger.info("garbage text layer on page", stage="intelligent", page_number=page_number)
                    elements = []
                pages.append((page_number, page.rect.width, page.rect.height, elements))

        sizes = [el.font_size for _, _, _, els in pages for el in els]
        median_size = statistics.median(sizes) if sizes else 12.0

        blocks: list[ContentBlock] = []
        for page_number, width, height, elements in pages:
            if not elements:
                continue
            analysed = self.layout.analyze_page_layout(elements, width, height, page_number)
            tables = self.tables.detect_tables(analysed.elements)
            ordered = self.layout.detect_reading_order(analysed.elements)
            blocks.extend(elements_to_blocks(ordered, tables, median_size))
        return blocks

    def extract_basic(self, source: bytes | str | Path) -> list[ContentBlock]:
        """Native text split on blank lines, headers detected heuristically."""
        with PdfReader(source) as reader:
            parsed = reader.parse_text()

        blocks: list[ContentBlock] = []
        for page_number, text in enumerate(parsed.page_texts, start=1):
            if text.strip():
                blocks.extend(structure_text(text, page_number=page_number))
        return blocks

    def extract_ocr(self, source: bytes | str | Path) -> list[ContentBlock]:
        """OCR every page (up to the cap) and restructure the joined text."""
        text = self.ocr.ocr_pdf(source)
        if not text.strip():
            return []
        return structure_text(text, confidence=OCR_CONFIDENCE)


def _describe(source: bytes | str | Path) -> str:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    return str(source)
