"""Pydantic models shared by the extractors and the splitter."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Confidence levels assigned by the extraction stages
NATIVE_CONFIDENCE = 0.9
BASIC_CONFIDENCE = 0.6
OCR_CONFIDENCE = 0.5


class TableMatrix(BaseModel):
    """Row-major table cells; the first row is treated as the header."""

    rows: list[list[str]]

    @property
    def column_count(self) -> int:
        return max((len(r) for r in self.rows), default=0)


class _Block(BaseModel):
    page_number: int = 1
    confidence: float = Field(default=NATIVE_CONFIDENCE, ge=0.0, le=1.0)


class TextBlock(_Block):
    kind: Literal["text"] = "text"
    text: str


class HeaderBlock(_Block):
    kind: Literal["header"] = "header"
    text: str
    level: int = Field(default=1, ge=1, le=6)


class ListBlock(_Block):
    kind: Literal["list"] = "list"
    items: list[str]


class TableBlock(_Block):
    kind: Literal["table"] = "table"
    table: TableMatrix
    bounding_box: tuple[float, float, float, float] | None = None  # x0, y0, x1, y1


class ImageBlock(_Block):
    kind: Literal["image"] = "image"
    extracted_text: str = ""


ContentBlock = TextBlock | HeaderBlock | ListBlock | TableBlock | ImageBlock


def block_text(block: ContentBlock) -> str:
    """Plain-text view of a block, used by the quality gates."""
    if isinstance(block, (TextBlock, HeaderBlock)):
        return block.text
    if isinstance(block, ListBlock):
        return "\n".join(block.items)
    if isinstance(block, TableBlock):
        return "\n".join(" | ".join(row) for row in block.table.rows)
    return block.extracted_text


class LayoutElement(BaseModel):
    """A positioned text fragment from a PDF page (top-left origin)."""

    x: float
    y: float
    width: float
    height: float
    content: str
    font_size: float = 12.0
    is_bold: bool = False
    is_italic: bool = False
    page_number: int = 1
    element_id: str = ""
    confidence: float = NATIVE_CONFIDENCE

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


class Region(BaseModel):
    x: float
    y: float
    width: float
    height: float
    elements: list[LayoutElement] = Field(default_factory=list)


class Column(BaseModel):
    x_start: float
    x_end: float
    elements: list[LayoutElement] = Field(default_factory=list)


class PdfPage(BaseModel):
    """Layout analysis of one page."""

    page_number: int
    width: float
    height: float
    elements: list[LayoutElement] = Field(default_factory=list)
    columns: list[Column] = Field(default_factory=list)
    header_region: Region | None = None
    footer_region: Region | None = None
    content_region: Region | None = None


class TableCandidate(BaseModel):
    """A grid hypothesis awaiting validation."""

    elements: list[LayoutElement]
    bounding_box: tuple[float, float, float, float]  # x0, y0, x1, y1
    confidence: float
    rows: int
    columns: int
    strategy: str = "grid"
    cells: list[list[str]] = Field(default_factory=list)

    def overlaps(self, other: "TableCandidate") -> bool:
        ax0, ay0, ax1, ay1 = self.bounding_box
        bx0, by0, bx1, by1 = other.bounding_box
        return ax0 < bx1 and bx0 < ax1 and ay0 < by1 and by0 < ay1


class SentenceWindow(BaseModel):
    """A sentence with its neighbours, scoped to one splitting call."""

    sentence: str
    index: int
    combined_sentence: str
    embedding: list[float] | None = None
    distance_to_next: float | None = None


class ChunkMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_type: str
    split_method: str
    merged: bool = False
    section_index: int | None = None
    header_text: str | None = None
    header_level: int | None = None
    chunk_index: int | None = None
    total_chunks: int | None = None


class Chunk(BaseModel):
    """Final output unit; immutable once produced."""

    model_config = ConfigDict(frozen=True)

    text: str
    metadata: ChunkMetadata


class ConversionState(BaseModel):
    """Scratch state for one DOCX conversion (ordered list counters per numId)."""

    list_counters: dict[int, int] = Field(default_factory=dict)

    def next_number(self, num_id: int) -> tuple["ConversionState", int]:
        """Return a new state with the counter for ``num_id`` advanced, and the number."""
        number = self.list_counters.get(num_id, 0) + 1
        return ConversionState(list_counters={**self.list_counters, num_id: number}), number
