"""XLSX to markdown tables with openpyxl, splitting large sheets into labelled chunks."""

import datetime
import io
from dataclasses import dataclass
from pathlib import Path

from openpyxl import load_workbook

from ..config import XlsxLimits
from ..logger import logger
from .tables import render_markdown_table

DEFAULT_HEADER = "Column"


@dataclass
class Worksheet:
    name: str
    rows: list[list[str]]


@dataclass
class SheetChunk:
    sheet: str
    markdown: str


def _cell_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime.datetime):
        return value.date().isoformat() if value.time() == datetime.time() else value.isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


class XlsxExtractor:
    """Reads worksheets and renders each as one or more markdown tables."""

    def __init__(self, limits: XlsxLimits | None = None):
        self.limits = limits or XlsxLimits()

    def read_worksheets(self, source: bytes | str | Path) -> list[Worksheet]:
        """Load cell values of every sheet; formulas resolve to cached values."""
        handle = io.BytesIO(bytes(source)) if isinstance(source, (bytes, bytearray)) else str(source)
        workbook = load_workbook(handle, read_only=True, data_only=True)
        try:
            sheets = []
            for ws in workbook.worksheets:
                rows = [[_cell_value(v) for v in row] for row in ws.iter_rows(values_only=True)]
                if rows:
                    sheets.append(Worksheet(name=ws.title, rows=rows))
            return sheets
        finally:
            workbook.close()

    def convert_to_chunks(self, source: bytes | str | Path) -> list[SheetChunk]:
        chunks = []
        for sheet in self.read_worksheets(source):
            chunks.extend(self.chunk_worksheet(sheet))
        logger.info("xlsx converted", chunks=len(chunks))
        return chunks

    def chunk_worksheet(self, sheet: Worksheet) -> list[SheetChunk]:
        """Split a sheet by rows, columns or estimated size.

        Returns:
            Markdown chunks titled ``## Sheet`` plus a "(Rows a-b of N)",
            "(Cols a-b of M)" or combined suffix when the sheet was split.
        """
        rows = [r for r in sheet.rows if any(c != "" for c in r)]
        if not rows:
            logger.debug("empty worksheet skipped", sheet=sheet.name)
            return []

        lim = self.limits
        num_cols = max(len(r) for r in rows)
        rows = [r + [""] * (num_cols - len(r)) for r in rows]
        num_rows = len(rows)

        sample = min(lim.sample_rows, num_rows)
        sample_size = len(to_markdown_table(rows[:sample]))
        estimated = round(sample_size / sample * num_rows)

        needs_row_split = num_rows > lim.max_rows_per_chunk + 1
        needs_col_split = num_cols > lim.max_cols_per_chunk
        needs_size_split = estimated > lim.max_content_size

        if not (needs_row_split or needs_col_split or needs_size_split):
            return [SheetChunk(sheet.name, f"## {sheet.name}\n\n{to_markdown_table(rows)}")]

        header, data = rows[0], rows[1:]
        rows_per_chunk = len(data) or 1
        if needs_row_split:
            rows_per_chunk = lim.max_rows_per_chunk
        elif needs_size_split:
            per_row = sample_size / sample
            rows_per_chunk = max(1, min(lim.max_rows_per_chunk, int(lim.max_content_size // per_row)))
        split_rows = rows_per_chunk < len(data)

        col_step = lim.max_cols_per_chunk if needs_col_split else num_cols
        chunks = []
        for col_start in range(0, num_cols, col_step):
            col_end = min(col_start + col_step, num_cols)
            for row_start in range(0, max(len(data), 1), rows_per_chunk):
                row_end = min(row_start + rows_per_chunk, len(data))
                table = [header[col_start:col_end]] + [
                    r[col_start:col_end] for r in data[row_start:row_end]
                ]
                ranges = []
                if split_rows:
                    ranges.append(f"Rows {row_start + 1}-{row_end} of {len(data)}")
                if needs_col_split:
                    ranges.append(f"Cols {col_start + 1}-{col_end} of {num_cols}")
                title = f"## {sheet.name}" + (f" ({', '.join(ranges)})" if ranges else "")
                chunks.append(SheetChunk(sheet.name, f"{title}\n\n{to_markdown_table(table)}"))

        logger.info(
            "worksheet split",
            sheet=sheet.name,
            rows=len(data),
            columns=num_cols,
            estimated_chars=estimated,
            chunks=len(chunks),
        )
        return chunks


def to_markdown_table(rows: list[list[str]]) -> str:
    """Markdown table with the first row as header; blank headers become "Column"."""
    if not rows:
        return ""
    body = [r for r in rows[1:] if any(c != "" for c in r)]
    if not body:
        body = [[""] * len(rows[0])]
    return render_markdown_table([rows[0], *body], default_header=DEFAULT_HEADER)
