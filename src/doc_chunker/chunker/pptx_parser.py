"""PPTX text extraction with python-pptx and heuristic slide re-segmentation."""

import io
import re
from pathlib import Path

from pptx import Presentation

from ..logger import logger

SLIDE_SEPARATOR = "\n\n---\n\n"
SLIDE_NUMBER_MARKER = re.compile(r"\n(\d+)\n")
TITLE_LINE_MAX = 80
SECTION_TITLE_MAX = 100


class PptxExtractor:
    """Extracts slide text and converts it to sectioned markdown."""

    def __init__(self, include_notes: bool = True):
        self.include_notes = include_notes

    def extract_text(self, source: bytes | str | Path) -> str:
        """Text of every slide (shapes, tables, notes), slides separated by blank lines."""
        if isinstance(source, (bytes, bytearray)):
            presentation = Presentation(io.BytesIO(bytes(source)))
        else:
            presentation = Presentation(str(source))

        slides = []
        for slide in presentation.slides:
            lines = []
            for shape in slide.shapes:
                if shape.has_text_frame:
                    lines.extend(p.text.strip() for p in shape.text_frame.paragraphs)
                elif shape.has_table:
                    for row in shape.table.rows:
                        lines.append(" | ".join(cell.text.strip() for cell in row.cells))
            if self.include_notes and slide.has_notes_slide:
                notes = slide.notes_slide.notes_text_frame
                if notes is not None:
                    lines.extend(p.text.strip() for p in notes.paragraphs)
            text = "\n".join(line for line in lines if line)
            if text:
                slides.append(text)

        logger.debug("pptx text extracted", slides=len(slides))
        return "\n\n".join(slides)

    def convert_to_markdown(self, content: str) -> str:
        """Re-segment flat slide text into markdown sections.

        Sections come from blank-line runs; failing that, from numeric slide
        markers; failing that, from short lines treated as titles. If nothing
        applies the raw content is returned.
        """
        if not content or not content.strip():
            return ""

        sections = self.segment(content)
        if not sections:
            return content

        formatted = [self._format_section(s) for s in sections]
        return SLIDE_SEPARATOR.join(s for s in formatted if s.strip())

    def segment(self, content: str) -> list[str]:
        sections = [s.strip() for s in re.split(r"\n\s*\n+", content) if s.strip()]
        if len(sections) != 1:
            return sections

        parts = [p for p in SLIDE_NUMBER_MARKER.split(content) if p.strip()]
        if len(parts) > 3:
            # markers sit at the odd positions once empty parts are gone
            return [parts[i].strip() for i in range(0, len(parts), 2) if parts[i].strip()]

        lines = content.split("\n")
        sections = []
        current: list[str] = []
        for i, raw in enumerate(lines):
            line = raw.strip()
            following = lines[i + 1].strip() if i + 1 < len(lines) else ""
            if line and len(line) < TITLE_LINE_MAX and following and current:
                sections.append("\n".join(current))
                current = []
            if line:
                current.append(line)
        if current:
            sections.append("\n".join(current))
        return sections

    @staticmethod
    def _format_section(section: str) -> str:
        lines = [line.strip() for line in section.split("\n") if line.strip()]
        if not lines:
            return ""
        if len(lines) > 1 and len(lines[0]) < SECTION_TITLE_MAX and not lines[0].endswith("."):
            return "\n\n".join([f"## {lines[0]}", *lines[1:]])
        return "\n\n".join(lines)
