"""Tests for PPTX text extraction and slide re-segmentation."""

import io

import pytest
from pptx import Presentation
from pptx.util import Inches

from doc_chunker.chunker.pptx_parser import SLIDE_SEPARATOR, PptxExtractor

LONG_LINE = (
    "This line is long enough that the heuristic never mistakes it for a slide "
    "title when it follows a heading."
)


@pytest.fixture
def deck_bytes() -> bytes:
    """A titled slide with notes followed by a slide holding only a table."""
    presentation = Presentation()

    slide = presentation.slides.add_slide(presentation.slide_layouts[1])
    slide.shapes.title.text = "Roadmap"
    body = slide.placeholders[1].text_frame
    body.text = "Ship version two"
    body.add_paragraph().text = "Hire two engineers"
    slide.notes_slide.notes_text_frame.text = "Remember the demo"

    table_slide = presentation.slides.add_slide(presentation.slide_layouts[6])
    table = table_slide.shapes.add_table(2, 2, Inches(1), Inches(1), Inches(4), Inches(1)).table
    table.cell(0, 0).text = "Name"
    table.cell(0, 1).text = "Qty"
    table.cell(1, 0).text = "Apples"
    table.cell(1, 1).text = "3"

    buffer = io.BytesIO()
    presentation.save(buffer)
    return buffer.getvalue()


class TestExtractText:
    def test_shapes_tables_and_notes(self, deck_bytes):
        text = PptxExtractor().extract_text(deck_bytes)
        assert text == (
            "Roadmap\nShip version two\nHire two engineers\nRemember the demo"
            "\n\nName | Qty\nApples | 3"
        )

    def test_notes_can_be_excluded(self, deck_bytes):
        text = PptxExtractor(include_notes=False).extract_text(deck_bytes)
        assert "Remember the demo" not in text


class TestSegment:
    """Tests for PptxExtractor.segment."""

    def test_blank_line_sections(self):
        assert PptxExtractor().segment("one\ntwo\n\n\nthree") == ["one\ntwo", "three"]

    def test_numeric_slide_markers(self):
        content = "Intro text\n1\nFirst slide body\n2\nSecond slide body\n3\nThird"
        assert PptxExtractor().segment(content) == [
            "Intro text",
            "First slide body",
            "Second slide body",
            "Third",
        ]

    def test_short_lines_start_sections(self):
        content = f"Agenda\n{LONG_LINE}\nNext steps\n{LONG_LINE}"
        assert PptxExtractor().segment(content) == [
            f"Agenda\n{LONG_LINE}",
            f"Next steps\n{LONG_LINE}",
        ]


class TestConvertToMarkdown:
    def test_titles_become_headers(self, deck_bytes):
        extractor = PptxExtractor()
        markdown = extractor.convert_to_markdown(extractor.extract_text(deck_bytes))

        slides = markdown.split(SLIDE_SEPARATOR)
        assert slides[0] == (
            "## Roadmap\n\nShip version two\n\nHire two engineers\n\nRemember the demo"
        )
        assert slides[1] == "## Name | Qty\n\nApples | 3"

    def test_sentence_first_line_is_not_a_title(self):
        markdown = PptxExtractor().convert_to_markdown("A full sentence.\nMore text")
        assert markdown == "A full sentence.\n\nMore text"

    def test_empty(self):
        assert PptxExtractor().convert_to_markdown("   ") == ""
