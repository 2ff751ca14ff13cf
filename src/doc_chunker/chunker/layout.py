"""Reading order, column and region analysis for positioned PDF text."""

from ..config import LayoutSettings
from ..logger import logger
from .models import Column, LayoutElement, PdfPage, Region


class LayoutExtractor:
    """Turns a flat list of LayoutElements into a structured PdfPage.

    Coordinates use a top-left origin, as produced by PyMuPDF. The extractor
    never fails: an empty element list yields an empty page.
    """

    def __init__(self, settings: LayoutSettings | None = None):
        self.settings = settings or LayoutSettings()

    def analyze_page_layout(
        self,
        elements: list[LayoutElement],
        page_width: float,
        page_height: float,
        page_number: int | None = None,
    ) -> PdfPage:
        """Build a PdfPage with reading order, columns and regions.

        Args:
            elements: Positioned text fragments of a single page.
            page_width: Page width in points.
            page_height: Page height in points.
            page_number: Page number to report when ``elements`` is empty.

        Returns:
            The analysed page.
        """
        if page_number is None:
            page_number = elements[0].page_number if elements else 1

        if not elements:
            return PdfPage(page_number=page_number, width=page_width, height=page_height)

        ordered = self.sort_reading_order(elements, self.settings.line_tolerance)
        header, footer, content = self.detect_regions(ordered, page_width, page_height)

        page = PdfPage(
            page_number=page_number,
            width=page_width,
            height=page_height,
            elements=ordered,
            columns=self.detect_columns(ordered, page_width, page_height),
            header_region=header,
            footer_region=footer,
            content_region=content,
        )
        logger.debug(
            "page layout analysed",
            page_number=page_number,
            elements=len(ordered),
            columns=len(page.columns),
            has_header=header is not None,
            has_footer=footer is not None,
        )
        return page

    @staticmethod
    def sort_reading_order(
        elements: list[LayoutElement], tolerance: float
    ) -> list[LayoutElement]:
        """Order elements top to bottom, then left to right within a line.

        Elements whose Y lies within ``tolerance`` of the first element of the
        current line share that line. Python's sort is stable, so elements at
        identical positions keep their input order.
        """
        by_y = sorted(elements, key=lambda el: el.y)
        lines: list[list[LayoutElement]] = []
        line_y = None
        for el in by_y:
            if line_y is None or el.y - line_y > tolerance:
                lines.append([el])
                line_y = el.y
            else:
                lines[-1].append(el)
        return [el for line in lines for el in sorted(line, key=lambda e: e.x)]

    def detect_reading_order(self, elements: list[LayoutElement]) -> list[LayoutElement]:
        """Reading order with the wider tolerance used for final block ordering."""
        return self.sort_reading_order(elements, self.settings.reading_order_tolerance)

    def detect_columns(
        self, elements: list[LayoutElement], page_width: float, page_height: float
    ) -> list[Column]:
        """Bucket elements into columns separated by wide X gaps.

        A gap of more than ``column_gap`` between consecutive distinct X
        starts opens a new column at the larger X. Without any such gap the
        page is a single full-width column.
        """
        if not elements:
            return []

        xs = sorted({el.x for el in elements})
        boundaries = [
            curr for prev, curr in zip(xs, xs[1:]) if curr - prev > self.settings.column_gap
        ]
        if not boundaries:
            return [Column(x_start=0, x_end=page_width, elements=list(elements))]

        edges = [0.0, *boundaries, max(page_width, xs[-1] + 1)]
        columns = []
        for start, end in zip(edges, edges[1:]):
            members = [el for el in elements if start <= el.x < end]
            if members:
                columns.append(Column(x_start=start, x_end=end, elements=members))
        return columns

    def detect_regions(
        self, elements: list[LayoutElement], page_width: float, page_height: float
    ) -> tuple[Region | None, Region | None, Region | None]:
        """Split the page into header band, footer band and content region.

        Returns:
            Tuple of (header, footer, content). Header and footer are None
            when no element falls in their band; content is None only for an
            empty page.
        """
        if not elements:
            return None, None, None

        header_limit = page_height * self.settings.header_band
        footer_limit = page_height * self.settings.footer_band
        header_elements = [el for el in elements if el.y <= header_limit]
        footer_elements = [el for el in elements if el.y >= footer_limit]

        header = None
        if header_elements:
            bottom = max(el.bottom for el in header_elements)
            header = Region(x=0, y=0, width=page_width, height=bottom, elements=header_elements)

        footer = None
        if footer_elements:
            top = min(el.y for el in footer_elements)
            footer = Region(
                x=0, y=top, width=page_width, height=page_height - top, elements=footer_elements
            )

        content_top = header.height if header else 0.0
        content_bottom = footer.y if footer else page_height
        in_bands = {id(el) for el in header_elements + footer_elements}
        content = Region(
            x=0,
            y=content_top,
            width=page_width,
            height=max(content_bottom - content_top, 0.0),
            elements=[el for el in elements if id(el) not in in_bands],
        )
        return header, footer, content

    @staticmethod
    def group_into_text_lines(elements: list[LayoutElement]) -> list[list[LayoutElement]]:
        """Group elements whose Y differs by less than 30% of their mean height."""
        lines: list[list[LayoutElement]] = []
        remaining = list(elements)
        while remaining:
            anchor = remaining[0]
            line = [
                el for el in remaining
                if abs(el.y - anchor.y) < (el.height + anchor.height) / 2 * 0.3
            ]
            if anchor not in line:
                line.insert(0, anchor)
            taken = {id(el) for el in line}
            remaining = [el for el in remaining if id(el) not in taken]
            lines.append(sorted(line, key=lambda el: el.x))
        return lines
