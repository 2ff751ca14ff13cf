"""DOCX to markdown conversion with python-docx.

Body elements are walked in document order. Ordered-list counters live in a
``ConversionState`` that every conversion starts fresh and threads through
each element, so nothing leaks between documents.
"""

import io
from pathlib import Path

import docx
from docx.document import Document as DocxDocument
from docx.oxml.ns import qn
from docx.oxml.table import CT_Tbl
from docx.oxml.text.paragraph import CT_P
from docx.table import Table, _Cell
from docx.text.paragraph import Paragraph

from ..logger import logger
from .models import ConversionState
from .tables import SourceCell, build_table_matrix, render_markdown_table

HEADING_STYLES = {f"Heading{level}": "#" * level for level in range(1, 7)}
QUOTE_STYLES = {"Blockquote", "Quote", "IntenseQuote"}
CODE_STYLES = {"Code", "Preformatted", "HTMLPreformatted"}
ORDERED_LIST_STYLES = {"ListParagraph", "ListNumber", "ListNumber2", "ListNumber3"}


def load_document(source: bytes | str | Path) -> DocxDocument:
    if isinstance(source, (bytes, bytearray)):
        return docx.Document(io.BytesIO(bytes(source)))
    return docx.Document(str(source))


class DocxExtractor:
    """Converts a DOCX document into markdown."""

    def convert_to_markdown(self, source: bytes | str | Path | DocxDocument) -> str:
        """Convert every body paragraph and table, joined by blank lines."""
        document = source if isinstance(source, DocxDocument) else load_document(source)
        state = ConversionState()
        parts = []
        for element in document.element.body.iterchildren():
            markdown, state = self.convert_element(element, document, state)
            if markdown.strip():
                parts.append(markdown)

        logger.debug(
            "docx converted",
            elements=len(parts),
            ordered_lists=len(state.list_counters),
        )
        return "\n\n".join(parts)

    def plain_text(self, source: bytes | str | Path) -> str:
        """Unformatted paragraph text, used when markdown conversion fails."""
        document = load_document(source)
        return "\n".join(p.text for p in document.paragraphs if p.text.strip())

    def convert_element(
        self, element, parent, state: ConversionState
    ) -> tuple[str, ConversionState]:
        if isinstance(element, CT_P):
            return self.convert_paragraph(Paragraph(element, parent), state)
        if isinstance(element, CT_Tbl):
            return self.convert_table(Table(element, parent), state)
        return "", state

    def convert_paragraph(
        self, paragraph: Paragraph, state: ConversionState
    ) -> tuple[str, ConversionState]:
        """Convert one paragraph; returns the markdown and the updated state."""
        texts = []
        has_bold = has_italic = False
        for run in paragraph.runs:
            if not run.text:
                continue
            texts.append(run.text)
            has_bold = has_bold or bool(run.bold or run.font.cs_bold)
            has_italic = has_italic or bool(run.italic or run.font.cs_italic)

        text = " ".join(texts).strip()
        if not text:
            return "", state

        if has_bold and has_italic:
            text = f"**_{text}_**"
        elif has_bold:
            text = f"**{text}**"
        elif has_italic:
            text = f"*{text}*"

        style_id = paragraph.style.style_id if paragraph.style is not None else ""
        if style_id in HEADING_STYLES:
            return f"{HEADING_STYLES[style_id]} {text}", state
        if style_id in QUOTE_STYLES:
            return f"> {text}", state
        if style_id in CODE_STYLES:
            return f"```\n{text}\n```", state

        numbering = _numbering(paragraph)
        if numbering is not None:
            return self._list_item(text, numbering, style_id, state)
        return text, state

    def _list_item(
        self,
        text: str,
        numbering: tuple[int, int],
        style_id: str,
        state: ConversionState,
    ) -> tuple[str, ConversionState]:
        level, num_id = numbering
        indent = "  " * level
        if style_id in ORDERED_LIST_STYLES and num_id > 0:
            state, number = state.next_number(num_id)
            return f"{indent}{number}. {text}", state
        return f"{indent}- {text}", state

    def convert_table(self, table: Table, state: ConversionState) -> tuple[str, ConversionState]:
        """Single-column tables become a header plus prose, others markdown tables."""
        rows: list[list[SourceCell]] = []
        for tr in table._tbl.tr_lst:
            row = []
            for tc in tr.tc_lst:
                content, state = self._cell_markdown(_Cell(tc, table), state)
                row.append(SourceCell(text=content, grid_span=tc.grid_span, v_merge=tc.vMerge))
            rows.append(row)

        if not rows:
            return "", state

        matrix = build_table_matrix(rows)
        if matrix.column_count == 1:
            return self._single_column_table(table, matrix.rows), state
        return render_markdown_table(matrix.rows), state

    def _cell_markdown(self, cell: _Cell, state: ConversionState) -> tuple[str, ConversionState]:
        parts = []
        for paragraph in cell.paragraphs:
            markdown, state = self.convert_paragraph(paragraph, state)
            if markdown.strip():
                parts.append(markdown.strip())
        return "\n\n".join(parts), state

    @staticmethod
    def _single_column_table(table: Table, rows: list[list[str]]) -> str:
        content = "\n\n".join(r[0].strip() for r in rows if r and r[0].strip())
        if not content:
            return ""

        first_tc = table._tbl.tr_lst[0].tc_lst[0]
        if _has_header_styling(first_tc):
            header = rows[0][0].strip()
        else:
            paragraphs = [p.text.strip() for p in _Cell(first_tc, table).paragraphs if p.text.strip()]
            header = paragraphs[0] if paragraphs else "Table Content"
        return f"## {header}\n\n{content}"


def _numbering(paragraph: Paragraph) -> tuple[int, int] | None:
    """Return (indent level, numId) from the paragraph or its style, if it is a list item."""
    candidates = [paragraph._p.pPr]
    if paragraph.style is not None:
        candidates.append(paragraph.style.element.pPr)
    for ppr in candidates:
        num_pr = ppr.numPr if ppr is not None else None
        if num_pr is None:
            continue
        ilvl = num_pr.ilvl.val if num_pr.ilvl is not None else 0
        num_id = num_pr.numId.val if num_pr.numId is not None else 0
        return ilvl, num_id
    return None


def _has_header_styling(tc) -> bool:
    tc_pr = tc.tcPr
    if tc_pr is None:
        return False
    shading = tc_pr.find(qn("w:shd"))
    if shading is not None and shading.get(qn("w:fill")) is not None:
        return True
    return tc_pr.find(qn("w:tcBorders")) is not None
