"""Tests for DOCX to markdown conversion."""

import io

import docx
import pytest
from docx.oxml import OxmlElement
from docx.oxml.ns import qn

from doc_chunker.chunker.docx_parser import DocxExtractor


def to_bytes(document) -> bytes:
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def set_numbering(paragraph, num_id: int, level: int = 0) -> None:
    """Attach list numbering (``w:numPr``) directly to a paragraph."""
    num_pr = OxmlElement("w:numPr")
    ilvl = OxmlElement("w:ilvl")
    ilvl.set(qn("w:val"), str(level))
    num = OxmlElement("w:numId")
    num.set(qn("w:val"), str(num_id))
    num_pr.append(ilvl)
    num_pr.append(num)
    paragraph._p.get_or_add_pPr().append(num_pr)


@pytest.fixture
def document():
    return docx.Document()


class TestParagraphs:
    def test_bold_italic_heading(self, document):
        paragraph = document.add_paragraph(style="Heading 2")
        run = paragraph.add_run("Quarterly Results")
        run.bold = True
        run.italic = True

        assert DocxExtractor().convert_to_markdown(document) == "## **_Quarterly Results_**"

    def test_heading_levels(self, document):
        document.add_heading("Title", level=1)
        document.add_heading("Detail", level=3)
        assert DocxExtractor().convert_to_markdown(document) == "# Title\n\n### Detail"

    def test_emphasis(self, document):
        document.add_paragraph().add_run("Strong").bold = True
        document.add_paragraph().add_run("Soft").italic = True
        assert DocxExtractor().convert_to_markdown(document) == "**Strong**\n\n*Soft*"

    def test_runs_are_joined(self, document):
        paragraph = document.add_paragraph()
        paragraph.add_run("first")
        paragraph.add_run("second")
        assert DocxExtractor().convert_to_markdown(document) == "first second"

    def test_quote(self, document):
        document.add_paragraph("Quoted words", style="Quote")
        assert DocxExtractor().convert_to_markdown(document) == "> Quoted words"

    def test_empty_paragraphs_are_dropped(self, document):
        document.add_paragraph("")
        document.add_paragraph("Body")
        assert DocxExtractor().convert_to_markdown(document) == "Body"


class TestLists:
    def test_ordered_list_counts_per_list(self, document):
        for text in ("one", "two"):
            set_numbering(document.add_paragraph(text, style="List Number"), num_id=5)
        set_numbering(document.add_paragraph("other", style="List Number"), num_id=6)

        assert DocxExtractor().convert_to_markdown(document) == "1. one\n\n2. two\n\n1. other"

    def test_bullets_and_nesting(self, document):
        set_numbering(document.add_paragraph("top", style="List Bullet"), num_id=1)
        set_numbering(document.add_paragraph("nested", style="List Bullet"), num_id=1, level=1)

        assert DocxExtractor().convert_to_markdown(document) == "- top\n\n  - nested"

    def test_counters_do_not_leak_between_documents(self, document):
        for text in ("one", "two"):
            set_numbering(document.add_paragraph(text, style="List Number"), num_id=5)
        extractor = DocxExtractor()

        first = extractor.convert_to_markdown(to_bytes(document))
        second = extractor.convert_to_markdown(to_bytes(document))
        assert first == second == "1. one\n\n2. two"


class TestTables:
    def test_simple_table(self, document):
        table = document.add_table(rows=2, cols=2)
        for (r, c), text in {(0, 0): "Name", (0, 1): "Age", (1, 0): "Ann", (1, 1): "30"}.items():
            table.cell(r, c).text = text

        assert DocxExtractor().convert_to_markdown(document) == (
            "| Name | Age |\n|-------|-------|\n| Ann | 30 |"
        )

    def test_horizontal_span_is_duplicated(self, document):
        table = document.add_table(rows=2, cols=3)
        table.cell(0, 0).merge(table.cell(0, 1)).text = "Merged"
        table.cell(0, 2).text = "C"
        for c, text in enumerate(["1", "2", "3"]):
            table.cell(1, c).text = text

        markdown = DocxExtractor().convert_to_markdown(document)
        assert markdown.startswith("| Merged | Merged | C |")

    def test_vertical_merge_carries_content_down(self, document):
        table = document.add_table(rows=3, cols=2)
        table.cell(0, 0).merge(table.cell(1, 0)).text = "Span"
        table.cell(0, 1).text = "B"
        table.cell(1, 1).text = "D"
        table.cell(2, 0).text = "E"
        table.cell(2, 1).text = "F"

        markdown = DocxExtractor().convert_to_markdown(document)
        assert "| Span | D |" in markdown
        assert markdown.endswith("| E | F |")

    def test_single_column_table_becomes_section(self, document):
        table = document.add_table(rows=3, cols=1)
        for r, text in enumerate(["Overview", "First line", "Second line"]):
            table.cell(r, 0).text = text

        markdown = DocxExtractor().convert_to_markdown(document)
        assert markdown.startswith("## Overview\n\n")
        assert markdown.endswith("First line\n\nSecond line")

    def test_order_of_paragraphs_and_tables(self, document):
        document.add_paragraph("Before")
        table = document.add_table(rows=2, cols=2)
        table.cell(0, 0).text = "a"
        document.add_paragraph("After")

        parts = DocxExtractor().convert_to_markdown(document).split("\n\n")
        assert parts[0] == "Before"
        assert parts[1].startswith("| a |")
        assert parts[-1] == "After"


class TestPlainText:
    def test_plain_text(self, document):
        document.add_heading("Title", level=1)
        document.add_paragraph("Body")
        assert DocxExtractor().plain_text(to_bytes(document)) == "Title\nBody"

    def test_accepts_path(self, document, tmp_path):
        path = tmp_path / "doc.docx"
        document.add_paragraph("From disk")
        document.save(path)
        assert DocxExtractor().convert_to_markdown(path) == "From disk"
