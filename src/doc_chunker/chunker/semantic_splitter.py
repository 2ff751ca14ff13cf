"""Embedding-driven semantic splitting of markdown and plain text.

Text is cut into sentence-sized pieces, each piece is embedded together with
its neighbours, and the chunk boundaries fall where the cosine distance between
consecutive windows is unusually large (above a percentile of all distances).
Small chunks are then merged forward until nothing more can merge.
"""

import re

import numpy as np
from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..config import SplitterSettings
from ..logger import logger
from .embeddings import Embedder, EmbeddingClient
from .models import Chunk, ChunkMetadata, SentenceWindow

HEADER_PATTERN = re.compile(r"^(#+)\s+(.+)")
FALLBACK_SEPARATORS = ["\n\n", "\n", ". ", " "]
TABLE_LINE_RATIO = 0.5


def build_windows(sentences: list[str], buffer_size: int) -> list[SentenceWindow]:
    """Pair every sentence with up to ``buffer_size`` neighbours on each side."""
    windows = []
    for i, sentence in enumerate(sentences):
        before = sentences[max(0, i - buffer_size) : i]
        after = sentences[i + 1 : i + 1 + buffer_size]
        windows.append(
            SentenceWindow(
                sentence=sentence,
                index=i,
                combined_sentence=" ".join([*before, sentence, *after]),
            )
        )
    return windows


def cosine_similarity(a, b) -> float:
    """Cosine similarity; 0.0 for empty, mismatched or zero-norm vectors."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0 or not np.isfinite(norm):
        return 0.0
    return float(np.dot(va, vb) / norm)


def cosine_distances(windows: list[SentenceWindow]) -> list[float]:
    """Distance from each window to the next; stored on the window as well."""
    distances = []
    for current, following in zip(windows, windows[1:]):
        distance = 1 - cosine_similarity(current.embedding, following.embedding)
        current.distance_to_next = distance
        distances.append(distance)
    return distances


def percentile_threshold(distances: list[float], percentile: float) -> float:
    """Linear-interpolated percentile, falling back to the median."""
    if not distances:
        return 0.0
    if len(distances) == 1:
        return distances[0]
    values = np.asarray(distances, dtype=float)
    threshold = float(np.percentile(values, percentile, method="linear"))
    if not np.isfinite(threshold):
        return float(np.median(values))
    return threshold


def find_breakpoints(distances: list[float], threshold: float) -> list[int]:
    return [i for i, d in enumerate(distances) if d > threshold]


def group_sentences(sentences: list[str], breakpoints: list[int]) -> list[str]:
    """Join sentences between breakpoints; the last sentence always closes a group."""
    groups = []
    start = 0
    for end in [*breakpoints, len(sentences) - 1]:
        text = " ".join(s.strip() for s in sentences[start : end + 1] if s.strip())
        if text:
            groups.append(text)
        start = end + 1
    return groups


def _is_table_section(section: str) -> bool:
    lines = [line.strip() for line in section.split("\n")[1:] if line.strip()]
    if not lines:
        return False
    table_lines = sum(1 for line in lines if line.startswith("|") and line.endswith("|"))
    return table_lines / len(lines) > TABLE_LINE_RATIO


def split_sections(content: str) -> list[str]:
    """Split markdown before every line that starts with ``#``."""
    sections: list[str] = []
    current: list[str] = []
    for line in content.split("\n"):
        if line.strip().startswith("#") and current:
            sections.append("\n".join(current))
            current = []
        current.append(line)
    if current:
        sections.append("\n".join(current))
    return [s for s in sections if s.strip()]


class SemanticSplitter:
    """Splits text into semantically coherent chunks using an embedding provider."""

    def __init__(
        self,
        embedder: Embedder | None = None,
        settings: SplitterSettings | None = None,
        embedding_timeout_seconds: float = 60,
    ):
        self.settings = settings or SplitterSettings()
        self._embedder = embedder
        self._embedding_timeout_seconds = embedding_timeout_seconds
        self._sentence_splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.settings.sentence_chunk_size,
            chunk_overlap=self.settings.sentence_chunk_overlap,
        )

    @property
    def embedder(self) -> Embedder:
        # created on first use so callers that never split need no API key
        if self._embedder is None:
            self._embedder = EmbeddingClient(timeout_seconds=self._embedding_timeout_seconds)
        return self._embedder

    def split_sentences(self, text: str) -> list[str]:
        return [s for s in self._sentence_splitter.split_text(text) if s.strip()]

    def split_semantically(self, content: str, buffer_size: int, percentile: float) -> list[str]:
        """Split ``content`` at semantic breakpoints.

        Returns:
            The grouped chunks, or ``[content]`` if embedding or scoring fails.
        """
        sentences = self.split_sentences(content)
        if len(sentences) <= 1:
            return [content.strip()] if content.strip() else []

        try:
            return self._split_sentences_semantically(sentences, buffer_size, percentile)
        except Exception as e:
            logger.warn(
                "semantic split failed, keeping content whole",
                stage="semantic_split",
                sentences=len(sentences),
                error=str(e),
            )
            return [content.strip()]

    def _split_sentences_semantically(
        self, sentences: list[str], buffer_size: int, percentile: float
    ) -> list[str]:
        windows = build_windows(sentences, buffer_size)
        embeddings = self.embedder.embed_batch([w.combined_sentence for w in windows])
        if len(embeddings) != len(windows):
            raise ValueError(f"expected {len(windows)} embeddings, got {len(embeddings)}")
        for window, embedding in zip(windows, embeddings):
            window.embedding = embedding

        distances = cosine_distances(windows)
        threshold = percentile_threshold(distances, percentile)
        breakpoints = find_breakpoints(distances, threshold)
        logger.debug(
            "semantic breakpoints",
            sentences=len(sentences),
            threshold=round(threshold, 4),
            breakpoints=len(breakpoints),
        )
        return group_sentences(sentences, breakpoints)

    def merge_small_chunks(self, chunks: list[str]) -> list[str]:
        """Merge chunks under ``min_chunk_size`` into their successor until stable.

        A small chunk merges forward when its similarity to the next chunk
        exceeds ``merge_similarity`` or the merged text stays under
        ``merge_max_size``. On embedding failure the input is returned as is.
        """
        s = self.settings
        try:
            current = list(chunks)
            while True:
                merged, changed = self._merge_pass(current, s)
                if not changed:
                    return merged
                current = merged
        except Exception as e:
            logger.warn("chunk merge failed, keeping chunks", stage="merge", error=str(e))
            return list(chunks)

    def _merge_pass(self, chunks: list[str], s: SplitterSettings) -> tuple[list[str], bool]:
        if len(chunks) <= 1:
            return chunks, False

        embeddings = self.embedder.embed_batch(chunks)
        result = []
        changed = False
        i = 0
        while i < len(chunks):
            chunk = chunks[i]
            if len(chunk) >= s.min_chunk_size or i == len(chunks) - 1:
                result.append(chunk)
                i += 1
                continue

            following = chunks[i + 1]
            similarity = cosine_similarity(embeddings[i], embeddings[i + 1])
            if similarity > s.merge_similarity or len(chunk) + len(following) < s.merge_max_size:
                result.append(f"{chunk} {following}")
                changed = True
                i += 2
            else:
                result.append(chunk)
                i += 1
        return result, changed

    def split_markdown(self, content: str, title: str | None = None) -> list[Chunk]:
        """Split markdown into header-aware semantic chunks.

        Args:
            content: Markdown text.
            title: Optional document title, prepended as a level-1 header.

        Returns:
            Chunks tagged with ``split_method`` and, for section chunks, the
            section index and header.
        """
        if not content or not content.strip():
            return []

        s = self.settings
        if title:
            content = f"# {title}\n\n{content}"

        sections = split_sections(content)
        if len(sections) <= 1:
            text = content.strip()
            if len(text) <= s.max_section_size:
                return [_chunk(text, "single_chunk")]
            pieces = self.split_semantically(text, s.markdown_buffer_size, s.markdown_percentile)
            pieces = self.merge_small_chunks(pieces)
            return [_chunk(p, "semantic_full") for p in pieces if p.strip()]

        chunks: list[Chunk] = []
        for index, section in enumerate(sections):
            section = section.strip()
            if len(section) < s.min_section_size:
                logger.debug("short section skipped", section_index=index, length=len(section))
                continue

            header_level, header_text = None, None
            match = HEADER_PATTERN.match(section.split("\n", 1)[0].strip())
            if match:
                header_level, header_text = len(match.group(1)), match.group(2).strip()

            def section_chunk(text: str, method: str) -> Chunk:
                return _chunk(
                    text,
                    method,
                    section_index=index,
                    header_text=header_text,
                    header_level=header_level,
                )

            if _is_table_section(section):
                chunks.append(section_chunk(section, "table"))
            elif len(section) > s.max_section_size:
                chunks.extend(section_chunk(p, m) for p, m in self._split_long_section(section, index))
            else:
                chunks.append(section_chunk(section, "header_section"))

        if not chunks:
            logger.info("every section below minimum size, keeping content whole", sections=len(sections))
            return [_chunk(content.strip(), "single_chunk")]

        return self._merge_section_chunks(chunks)

    def _split_long_section(self, section: str, index: int) -> list[tuple[str, str]]:
        s = self.settings
        pieces = self.split_semantically(section, s.markdown_buffer_size, s.markdown_percentile)
        if len(pieces) > 1:
            return [(p, "semantic_section") for p in pieces]

        logger.info(
            "semantic split produced one piece, using character splitter",
            section_index=index,
            length=len(section),
        )
        fallback = RecursiveCharacterTextSplitter(
            chunk_size=s.fallback_chunk_size,
            chunk_overlap=s.fallback_chunk_overlap,
            separators=FALLBACK_SEPARATORS,
        )
        return [(p, "basic_fallback") for p in fallback.split_text(section) if p.strip()]

    def _merge_section_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        """Adaptive merge across runs of adjacent semantic pieces.

        Header sections and tables stay as they are; only consecutive
        ``semantic_*`` chunks of the same section are candidates for merging.
        """
        result: list[Chunk] = []
        run: list[Chunk] = []

        def flush():
            if not run:
                return
            if len(run) == 1:
                result.append(run[0])
            else:
                merged = self.merge_small_chunks([c.text for c in run])
                was_merged = len(merged) < len(run)
                template = run[0].metadata
                for text in merged:
                    result.append(
                        Chunk(text=text, metadata=template.model_copy(update={"merged": was_merged}))
                    )
            run.clear()

        for chunk in chunks:
            semantic = chunk.metadata.split_method.startswith("semantic")
            if not semantic or (run and run[-1].metadata.section_index != chunk.metadata.section_index):
                flush()
            if semantic:
                run.append(chunk)
            else:
                result.append(chunk)
        flush()
        return result

    def split_plain_text(self, content: str) -> list[Chunk]:
        """Split plain text semantically.

        Falls back to the sentence pieces (``split_method=simple``) when
        semantic processing fails, and to the whole text when even sentence
        segmentation fails.
        """
        if not content or not content.strip():
            return []

        s = self.settings
        try:
            sentences = self.split_sentences(content)
        except Exception as e:
            logger.warn("sentence split failed, keeping text whole", stage="sentences", error=str(e))
            return [_chunk(content.strip(), "simple")]

        if len(sentences) <= 1:
            return [_chunk(content.strip(), "semantic")]

        try:
            pieces = self._split_sentences_semantically(
                sentences, s.plain_buffer_size, s.plain_percentile
            )
        except Exception as e:
            logger.warn(
                "semantic split failed, using sentence pieces",
                stage="semantic_split",
                sentences=len(sentences),
                error=str(e),
            )
            return [_chunk(p, "simple") for p in sentences]

        merged = self.merge_small_chunks(pieces)
        was_merged = len(merged) < len(pieces)
        return [_chunk(p, "semantic", merged=was_merged) for p in merged if p.strip()]


def _chunk(text: str, split_method: str, **metadata) -> Chunk:
    return Chunk(
        text=text,
        metadata=ChunkMetadata(source_type="", split_method=split_method, **metadata),
    )


def split_markdown(
    content: str, title: str | None = None, embedder: Embedder | None = None
) -> list[Chunk]:
    return SemanticSplitter(embedder=embedder).split_markdown(content, title)


def split_plain_text(content: str, embedder: Embedder | None = None) -> list[Chunk]:
    return SemanticSplitter(embedder=embedder).split_plain_text(content)
