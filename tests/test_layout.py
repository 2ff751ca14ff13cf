"""Tests for reading order, columns and regions."""

from doc_chunker.chunker.layout import LayoutExtractor
from doc_chunker.chunker.models import LayoutElement


def el(x: float, y: float, content: str = "text", width: float = 40, height: float = 10):
    return LayoutElement(x=x, y=y, width=width, height=height, content=content)


class TestReadingOrder:
    """Tests for sort_reading_order."""

    def test_same_line_sorted_by_x(self):
        elements = [el(100, 50, "right"), el(10, 52, "left"), el(10, 100, "below")]
        ordered = LayoutExtractor.sort_reading_order(elements, tolerance=5)
        assert [e.content for e in ordered] == ["left", "right", "below"]

    def test_beyond_tolerance_is_new_line(self):
        elements = [el(100, 50, "first"), el(10, 60, "second")]
        ordered = LayoutExtractor.sort_reading_order(elements, tolerance=5)
        assert [e.content for e in ordered] == ["first", "second"]

    def test_identical_positions_keep_input_order(self):
        elements = [el(10, 10, "a"), el(10, 10, "b"), el(10, 10, "c")]
        ordered = LayoutExtractor.sort_reading_order(elements, tolerance=5)
        assert [e.content for e in ordered] == ["a", "b", "c"]

    def test_detect_reading_order_uses_wider_tolerance(self):
        elements = [el(100, 50, "right"), el(10, 58, "left")]
        ordered = LayoutExtractor().detect_reading_order(elements)
        assert [e.content for e in ordered] == ["left", "right"]


class TestColumns:
    def test_single_column(self):
        elements = [el(50, 100), el(55, 120), el(60, 140)]
        columns = LayoutExtractor().detect_columns(elements, 612, 792)
        assert len(columns) == 1
        assert columns[0].x_start == 0
        assert columns[0].x_end == 612
        assert len(columns[0].elements) == 3

    def test_two_columns(self):
        elements = [el(50, 100), el(50, 120), el(320, 100), el(320, 120)]
        columns = LayoutExtractor().detect_columns(elements, 612, 792)
        assert len(columns) == 2
        assert columns[1].x_start == 320
        assert all(e.x == 50 for e in columns[0].elements)

    def test_every_element_lands_in_a_column(self):
        elements = [el(5, 100), el(300, 100), el(600, 100)]
        columns = LayoutExtractor().detect_columns(elements, 612, 792)
        assert sum(len(c.elements) for c in columns) == 3


class TestRegions:
    def test_header_footer_and_content(self):
        header = el(50, 30, "Running title")
        body = el(50, 400, "Body text")
        footer = el(50, 750, "Page 1")
        h, f, content = LayoutExtractor().detect_regions([header, body, footer], 612, 800)

        assert h is not None and h.elements == [header]
        assert f is not None and f.elements == [footer]
        assert content.elements == [body]
        assert content.y == h.height

    def test_no_bands(self):
        h, f, content = LayoutExtractor().detect_regions([el(50, 400)], 612, 800)
        assert h is None
        assert f is None
        assert content.height == 800


class TestAnalyzePageLayout:
    def test_empty_page(self):
        page = LayoutExtractor().analyze_page_layout([], 612, 792, page_number=3)
        assert page.page_number == 3
        assert page.elements == []
        assert page.columns == []

    def test_page_number_from_elements(self):
        element = LayoutElement(x=10, y=300, width=50, height=10, content="x", page_number=4)
        page = LayoutExtractor().analyze_page_layout([element], 612, 792)
        assert page.page_number == 4
        assert page.content_region is not None


class TestTextLines:
    def test_group_into_text_lines(self):
        elements = [el(200, 102, "b"), el(10, 100, "a"), el(10, 120, "c")]
        lines = LayoutExtractor.group_into_text_lines(elements)
        assert [[e.content for e in line] for line in lines] == [["a", "b"], ["c"]]
