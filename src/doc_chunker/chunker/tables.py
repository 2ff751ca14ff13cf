"""Table detection over positioned PDF text, and table matrix helpers."""

from dataclasses import dataclass

from ..config import TableSettings
from ..logger import logger
from .models import LayoutElement, TableBlock, TableCandidate, TableMatrix

# Extra width/height appended after the last detected column/row start
COLUMN_END_PADDING = 100
ROW_END_PADDING = 20


@dataclass
class _Band:
    """A row or column of elements: start coordinate, extent and members."""

    start: float
    size: float
    elements: list[LayoutElement]


class TableExtractor:
    """Detect grid-like structures among LayoutElements.

    Two strategies produce candidates independently: grid-based (rows first,
    then shared column boundaries) and alignment-based (columns first, then
    shared row boundaries). Candidates are validated, and of two overlapping
    tables only the more confident one is kept.
    """

    def __init__(self, settings: TableSettings | None = None):
        self.settings = settings or TableSettings()

    def detect_tables(self, elements: list[LayoutElement]) -> list[TableBlock]:
        """Return validated tables found among ``elements``, in reading order."""
        if len(elements) < self.settings.min_elements:
            return []

        candidates = self.find_candidates(elements)
        accepted = [c for c in candidates if self.validate(c)]
        kept = self.remove_overlapping(accepted)

        page_number = elements[0].page_number
        tables = [
            TableBlock(
                table=TableMatrix(rows=candidate.cells),
                page_number=page_number,
                confidence=min(candidate.confidence, 1.0),
                bounding_box=candidate.bounding_box,
            )
            for candidate in sorted(kept, key=lambda c: (c.bounding_box[1], c.bounding_box[0]))
        ]
        logger.debug(
            "table detection complete",
            page_number=page_number,
            candidates=len(candidates),
            validated=len(accepted),
            tables=len(tables),
        )
        return tables

    def find_candidates(self, elements: list[LayoutElement]) -> list[TableCandidate]:
        candidates = []
        for strategy in (self._grid_candidate, self._alignment_candidate):
            candidate = strategy(elements)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    def validate(self, candidate: TableCandidate) -> bool:
        """Check size, confidence and aspect ratio limits."""
        s = self.settings
        x0, y0, x1, y1 = candidate.bounding_box
        width, height = x1 - x0, y1 - y0
        checks = {
            "min_rows": candidate.rows >= s.min_rows,
            "min_columns": candidate.columns >= s.min_columns,
            "min_confidence": candidate.confidence >= s.min_confidence,
            "aspect_ratio": height > 0
            and s.min_aspect_ratio <= width / height <= s.max_aspect_ratio,
        }
        failed = [name for name, ok in checks.items() if not ok]
        if failed:
            logger.debug(
                "table candidate rejected",
                strategy=candidate.strategy,
                rows=candidate.rows,
                columns=candidate.columns,
                confidence=round(candidate.confidence, 3),
                failed_checks=failed,
            )
        return not failed

    @staticmethod
    def remove_overlapping(candidates: list[TableCandidate]) -> list[TableCandidate]:
        """Keep the higher-confidence table of any two intersecting ones."""
        result: list[TableCandidate] = []
        for candidate in candidates:
            for i, existing in enumerate(result):
                if candidate.overlaps(existing):
                    if candidate.confidence > existing.confidence:
                        result[i] = candidate
                    break
            else:
                result.append(candidate)
        return result

    def _grid_candidate(self, elements: list[LayoutElement]) -> TableCandidate | None:
        s = self.settings
        rows = _group(elements, key=lambda el: el.y, tolerance=s.row_tolerance, horizontal=True)
        if len(rows) < s.min_rows:
            return None

        boundaries = _boundaries(
            [el.x for row in rows for el in row.elements], s.column_gap, COLUMN_END_PADDING
        )
        if len(boundaries) - 1 < s.min_columns:
            return None

        occupancy = [
            sum(1 for lo, hi in zip(boundaries, boundaries[1:])
                if any(lo <= el.x < hi for el in row.elements)) / (len(boundaries) - 1)
            for row in rows
        ]
        consistency = sum(occupancy) / len(rows)
        if consistency < s.min_consistency:
            return None

        columns = []
        for lo, hi in zip(boundaries, boundaries[1:]):
            members = [el for row in rows for el in row.elements if lo <= el.x < hi]
            if members:
                columns.append(_Band(lo, hi - lo, members))
        return self._candidate(elements, rows, columns, consistency, "grid")

    def _alignment_candidate(self, elements: list[LayoutElement]) -> TableCandidate | None:
        s = self.settings
        columns = _group(
            elements, key=lambda el: el.x, tolerance=s.column_tolerance, horizontal=False
        )
        if len(columns) < s.min_columns:
            return None

        boundaries = _boundaries(
            [el.y for col in columns for el in col.elements], s.row_gap, ROW_END_PADDING
        )
        if len(boundaries) - 1 < s.min_rows:
            return None

        occupancy = [
            sum(1 for lo, hi in zip(boundaries, boundaries[1:])
                if any(lo <= el.y < hi for el in col.elements)) / (len(boundaries) - 1)
            for col in columns
        ]
        consistency = sum(occupancy) / len(columns)
        if consistency < s.min_consistency:
            return None

        rows = []
        for lo, hi in zip(boundaries, boundaries[1:]):
            members = [el for col in columns for el in col.elements if lo <= el.y < hi]
            if members:
                rows.append(_Band(lo, hi - lo, sorted(members, key=lambda el: el.x)))
        return self._candidate(elements, rows, columns, consistency, "alignment")

    @staticmethod
    def _candidate(
        elements: list[LayoutElement],
        rows: list[_Band],
        columns: list[_Band],
        consistency: float,
        strategy: str,
    ) -> TableCandidate:
        cells = [
            [
                " ".join(
                    el.content for el in row.elements
                    if col.start <= el.x < col.start + col.size
                ).strip()
                for col in columns
            ]
            for row in rows
        ]
        return TableCandidate(
            elements=elements,
            bounding_box=(
                min(el.x for el in elements),
                min(el.y for el in elements),
                max(el.right for el in elements),
                max(el.bottom for el in elements),
            ),
            confidence=consistency,
            rows=len(rows),
            columns=len(columns),
            strategy=strategy,
            cells=cells,
        )


def _group(elements, key, tolerance: float, horizontal: bool) -> list[_Band]:
    """Group elements whose ``key`` lies within ``tolerance`` of the band's first member."""
    ordered = sorted(elements, key=key)
    bands: list[list[LayoutElement]] = []
    anchor = None
    for el in ordered:
        if anchor is None or abs(key(el) - anchor) > tolerance:
            bands.append([el])
            anchor = key(el)
        else:
            bands[-1].append(el)

    result = []
    for members in bands:
        if horizontal:
            start = min(el.y for el in members)
            size = max(el.bottom for el in members) - start
            members = sorted(members, key=lambda el: el.x)
        else:
            start = min(el.x for el in members)
            size = max(el.right for el in members) - start
            members = sorted(members, key=lambda el: el.y)
        result.append(_Band(start, size, members))
    return result


def _boundaries(positions: list[float], min_gap: float, end_padding: float) -> list[float]:
    """Distinct positions separated by at least ``min_gap``, plus a closing edge."""
    if not positions:
        return []
    unique = sorted(set(positions))
    bounds = [unique[0]]
    for prev, curr in zip(unique, unique[1:]):
        if curr - prev >= min_gap:
            bounds.append(curr)
    bounds.append(max(positions) + end_padding)
    return bounds


@dataclass
class SourceCell:
    """A table cell as exposed by a format with span/merge metadata (DOCX).

    ``v_merge`` is None for an unmerged cell, ``"restart"`` for the first
    cell of a vertical merge and ``"continue"`` for the cells below it.
    """

    text: str
    grid_span: int = 1
    v_merge: str | None = None


def build_table_matrix(rows: list[list[SourceCell]]) -> TableMatrix:
    """Expand spans into a rectangular matrix.

    Horizontally spanned content is duplicated across every spanned column;
    a continued vertical merge carries the content of the cell above.
    """
    matrix: list[list[str]] = []
    for row in rows:
        out: list[str] = []
        for cell in row:
            col = len(out)
            text = cell.text
            if cell.v_merge == "continue" and matrix and col < len(matrix[-1]):
                text = matrix[-1][col]
            out.extend([text] * max(cell.grid_span, 1))
        matrix.append(out)

    width = max((len(r) for r in matrix), default=0)
    return TableMatrix(rows=[r + [""] * (width - len(r)) for r in matrix])


def escape_cell(text: str) -> str:
    return " ".join(text.split()).replace("|", "\\|")


def render_markdown_table(rows: list[list[str]], default_header: str = "") -> str:
    """Render a matrix as a markdown table using its first row as header."""
    if not rows:
        return ""
    width = max(len(r) for r in rows)
    padded = [list(r) + [""] * (width - len(r)) for r in rows]
    header = [escape_cell(c) or default_header for c in padded[0]]
    lines = [
        "| " + " | ".join(header) + " |",
        "|" + "|".join("-------" for _ in header) + "|",
    ]
    for row in padded[1:]:
        lines.append("| " + " | ".join(escape_cell(c) for c in row) + " |")
    return "\n".join(lines)
