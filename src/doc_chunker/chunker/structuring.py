"""Rebuild paragraphs and headers from flat extracted or recognised text."""

import re

from .models import BASIC_CONFIDENCE, HeaderBlock, TextBlock

SENTENCE_BOUNDARY = re.compile(r"([.!?]+)\s+(?=[A-Z])")
SECTION_PATTERN = re.compile(r"^\w+\.?\s*\d+\s*[-–—:]\s*.{3,}")
NUMBERED_TITLE = re.compile(r"^\d+\.\s+.{20,100}$")
NUMBERED_ITEM = re.compile(r"^\d+\.\s")
LABELLED_ITEM = re.compile(r"^[A-Z][a-z]+\s*\d+")


def clean_and_normalize(text: str) -> str:
    """Normalise whitespace and repair common PDF extraction damage.

    Collapses runs of spaces and tabs, normalises line endings, drops
    standalone page numbers and "Page N" lines, joins lines broken
    mid-sentence and de-hyphenates words split across lines.
    """
    text = re.sub(r"[ \t]+", " ", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"^\s*\d+\s*$", "", text, flags=re.MULTILINE)
    text = re.sub(r"^\s*Page \d+.*$", "", text, flags=re.MULTILINE | re.IGNORECASE)
    text = re.sub(r"([a-z])\n([A-Z])", r"\1 \2", text)
    text = re.sub(r"([a-z,;])\n([a-z])", r"\1 \2", text)
    text = re.sub(r"(\w)-\n(\w)", r"\1\2", text)
    return text.strip()


def split_into_sentences(text: str) -> list[str]:
    """Split on terminal punctuation followed by whitespace and a capital letter."""
    parts = SENTENCE_BOUNDARY.split(text)
    sentences = []
    current = ""
    for i, part in enumerate(parts):
        current += part
        # re.split keeps the captured punctuation at odd indices
        if i % 2 == 1:
            sentences.append(current.strip())
            current = ""
    if current.strip():
        sentences.append(current.strip())
    return [s for s in sentences if s]


def detect_header(line: str, next_line: str | None = None) -> bool:
    """Heuristic header test for a single line of text.

    A header is 5-150 characters and either an all-caps title longer than 15
    characters, a structural section label such as "Art. 1 - Scope", or a
    numbered title without terminal punctuation followed by a long line.
    """
    line = line.strip()
    if len(line) < 5 or len(line) > 150:
        return False

    if line == line.upper() and re.search(r"[A-Z]", line) and len(line) > 15:
        return True

    if SECTION_PATTERN.match(line) and 20 < len(line) < 120:
        return True

    if NUMBERED_TITLE.match(line) and not re.search(r"[.!?]$", line):
        return bool(next_line and len(next_line.strip()) > 50)

    return False


def should_end_paragraph(current: str, following: str | None) -> bool:
    if following is None:
        return True
    if detect_header(following):
        return True
    if re.search(r"[.!?]\s*$", current):
        return bool(
            NUMBERED_ITEM.match(following)
            or LABELLED_ITEM.match(following)
            or following == following.upper()
        )
    return False


def reconstruct_paragraphs(sentences: list[str]) -> list[str]:
    """Regroup sentences into logical paragraphs."""
    paragraphs = []
    current: list[str] = []
    for i, sentence in enumerate(sentences):
        current.append(sentence)
        following = sentences[i + 1] if i + 1 < len(sentences) else None
        if should_end_paragraph(sentence, following):
            paragraphs.append(" ".join(current).strip())
            current = []
    if current:
        paragraphs.append(" ".join(current).strip())
    return [p for p in paragraphs if p]


def structure_text(
    text: str, page_number: int = 1, confidence: float = BASIC_CONFIDENCE
) -> list[TextBlock | HeaderBlock]:
    """Turn flat text into header and paragraph blocks.

    Blank-line separated paragraphs are processed independently so the
    structure already present in the text survives; within each one,
    sentences are regrouped and header-like paragraphs become HeaderBlocks.
    """
    blocks: list[TextBlock | HeaderBlock] = []
    for raw in re.split(r"\n\s*\n", clean_and_normalize(text)):
        sentences = split_into_sentences(raw.strip())
        for paragraph in reconstruct_paragraphs(sentences):
            if detect_header(paragraph):
                blocks.append(
                    HeaderBlock(text=paragraph, level=1, page_number=page_number, confidence=confidence)
                )
            else:
                blocks.append(
                    TextBlock(text=paragraph, page_number=page_number, confidence=confidence)
                )
    return blocks
