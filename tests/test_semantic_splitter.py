"""Tests for semantic splitting, merging and the markdown section path."""

import pytest

from doc_chunker.chunker.models import SentenceWindow
from doc_chunker.chunker.semantic_splitter import (
    SemanticSplitter,
    _is_table_section,
    build_windows,
    cosine_distances,
    cosine_similarity,
    find_breakpoints,
    group_sentences,
    percentile_threshold,
    split_markdown,
    split_plain_text,
    split_sections,
)
from doc_chunker.config import SplitterSettings

CAT_1 = (
    "The cat slept on the warm windowsill all afternoon while the rain kept falling "
    "softly against the glass outside the house."
)
CAT_2 = (
    "Later the cat woke up, stretched slowly, and wandered into the kitchen looking "
    "for a bowl of fresh milk and some attention."
)
STOCK_1 = (
    "Stock markets fell sharply on Monday as investors reacted to weaker earnings "
    "reports from several large technology firms."
)
STOCK_2 = (
    "Bond yields rose at the same time, and analysts warned that volatility could "
    "continue for the rest of the trading quarter."
)
INTRO = "This section introduces the project and the people who maintain it today."


class TopicEmbedder:
    """Two orthogonal directions: texts mentioning cats and everything else."""

    def __init__(self):
        self.calls = 0

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        return [[1.0, 0.0] if "cat" in t.lower() else [0.0, 1.0] for t in texts]

    def generate_embedding(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]


@pytest.fixture
def topic_embedder() -> TopicEmbedder:
    return TopicEmbedder()


class TestHelpers:
    def test_build_windows(self):
        windows = build_windows(["a", "b", "c", "d"], buffer_size=1)
        assert [w.combined_sentence for w in windows] == ["a b", "a b c", "b c d", "c d"]
        assert [w.index for w in windows] == [0, 1, 2, 3]

    def test_cosine_similarity(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_cosine_similarity_degenerate_vectors(self):
        assert cosine_similarity([], []) == 0.0
        assert cosine_similarity([1, 2], [1, 2, 3]) == 0.0
        assert cosine_similarity([0, 0], [1, 1]) == 0.0

    def test_cosine_distances_are_stored_on_windows(self):
        windows = [
            SentenceWindow(sentence="a", index=0, combined_sentence="a", embedding=[1, 0]),
            SentenceWindow(sentence="b", index=1, combined_sentence="b", embedding=[0, 1]),
        ]
        assert cosine_distances(windows) == [pytest.approx(1.0)]
        assert windows[0].distance_to_next == pytest.approx(1.0)
        assert windows[1].distance_to_next is None

    def test_percentile_threshold(self):
        assert percentile_threshold([0.1, 0.2, 0.3, 0.4], 75) == pytest.approx(0.325)
        assert percentile_threshold([0.42], 95) == 0.42
        assert percentile_threshold([], 95) == 0.0

    def test_breakpoints_and_groups(self):
        sentences = ["one.", "two.", "three.", "four."]
        breakpoints = find_breakpoints([0.1, 0.9, 0.2], threshold=0.5)
        assert breakpoints == [1]
        assert group_sentences(sentences, breakpoints) == ["one. two.", "three. four."]

    def test_split_sections(self):
        content = "intro line\n# First\nbody\n## Second\nmore"
        assert split_sections(content) == ["intro line", "# First\nbody", "## Second\nmore"]

    def test_table_section(self):
        assert _is_table_section("## Prices\n| a | b |\n|---|---|\n| 1 | 2 |")
        assert not _is_table_section("## Prices\nSome prose.\n| a | b |\nMore prose.")


class TestSplitSemantically:
    def test_breakpoint_at_topic_change(self, topic_embedder):
        content = "\n\n".join([CAT_1, CAT_2, STOCK_1, STOCK_2])
        pieces = SemanticSplitter(topic_embedder).split_semantically(content, 0, 75)
        assert pieces == [f"{CAT_1} {CAT_2}", f"{STOCK_1} {STOCK_2}"]

    def test_single_sentence_needs_no_embeddings(self, topic_embedder):
        assert SemanticSplitter(topic_embedder).split_semantically("Just one.", 1, 95) == ["Just one."]
        assert topic_embedder.calls == 0

    def test_embedding_failure_keeps_content_whole(self, failing_embedder):
        content = "\n\n".join([CAT_1, STOCK_1])
        assert SemanticSplitter(failing_embedder).split_semantically(content, 1, 95) == [content]


class TestMergeSmallChunks:
    """Tests for SemanticSplitter.merge_small_chunks."""

    def test_small_chunks_merge_until_stable(self, fake_embedder):
        merged = SemanticSplitter(fake_embedder).merge_small_chunks(["alpha", "beta", "gamma"])
        assert merged == ["alpha beta gamma"]

    def test_large_chunk_stays(self, fake_embedder):
        chunks = ["x" * 1200, "tail"]
        assert SemanticSplitter(fake_embedder).merge_small_chunks(chunks) == chunks

    def test_dissimilar_and_too_large_is_not_merged(self, topic_embedder):
        chunks = ["cat " * 225, "stock " * 250]
        assert SemanticSplitter(topic_embedder).merge_small_chunks(chunks) == chunks

    def test_similar_chunks_merge_beyond_max_size(self, topic_embedder):
        chunks = ["cat " * 225, "cat " * 300]
        merged = SemanticSplitter(topic_embedder).merge_small_chunks(chunks)
        assert len(merged) == 1

    def test_embedding_failure_returns_input(self, failing_embedder):
        chunks = ["alpha", "beta"]
        assert SemanticSplitter(failing_embedder).merge_small_chunks(chunks) == chunks

    def test_no_adjacent_small_chunks_remain(self, topic_embedder):
        settings = SplitterSettings(min_chunk_size=20, merge_max_size=30)
        chunks = ["cat one", "cat two", "cat three", "stock " * 10, "cat four"]
        merged = SemanticSplitter(topic_embedder, settings).merge_small_chunks(chunks)
        for current, following in zip(merged, merged[1:]):
            assert len(current) >= 20 or len(following) >= 20


class TestSplitPlainText:
    def test_three_tiny_sentences_give_one_chunk(self, fake_embedder):
        chunks = split_plain_text("A. B. C.", embedder=fake_embedder)
        assert len(chunks) == 1
        assert chunks[0].text == "A. B. C."
        assert chunks[0].metadata.split_method == "semantic"

    def test_topic_change_then_merge(self, topic_embedder):
        content = "\n\n".join([CAT_1, CAT_2, STOCK_1, STOCK_2])
        chunks = SemanticSplitter(topic_embedder).split_plain_text(content)

        # both groups are small, so they are merged back together
        assert len(chunks) == 1
        assert chunks[0].metadata.merged is True
        assert chunks[0].text.startswith(CAT_1)

    def test_embedding_failure_uses_sentence_pieces(self, failing_embedder):
        content = "\n\n".join([CAT_1, STOCK_1])
        chunks = SemanticSplitter(failing_embedder).split_plain_text(content)
        assert [c.text for c in chunks] == [CAT_1, STOCK_1]
        assert {c.metadata.split_method for c in chunks} == {"simple"}

    def test_blank_input(self, fake_embedder):
        assert split_plain_text("  \n", embedder=fake_embedder) == []


class TestSplitMarkdown:
    """Tests for the header-aware markdown path."""

    def test_two_sections_give_two_header_chunks(self, fake_embedder):
        content = f"## Introduction\n\n{INTRO}\n\n## Maintainers\n\n{CAT_1}"
        chunks = split_markdown(content, embedder=fake_embedder)

        assert len(chunks) == 2
        assert all(c.metadata.split_method == "header_section" for c in chunks)
        assert [c.metadata.section_index for c in chunks] == [0, 1]
        assert [c.metadata.header_text for c in chunks] == ["Introduction", "Maintainers"]
        assert chunks[0].metadata.header_level == 2
        assert fake_embedder.calls == []

    def test_short_document_is_single_chunk(self, fake_embedder):
        chunks = split_markdown(INTRO, title="Readme", embedder=fake_embedder)
        assert len(chunks) == 1
        assert chunks[0].text == f"# Readme\n\n{INTRO}"
        assert chunks[0].metadata.split_method == "single_chunk"

    def test_short_sections_are_dropped(self, fake_embedder):
        content = f"# Title\n\nshort\n\n## Body\n\n{INTRO}"
        chunks = split_markdown(content, embedder=fake_embedder)
        assert [c.metadata.header_text for c in chunks] == ["Body"]
        assert chunks[0].metadata.section_index == 1

    def test_all_sections_short_keeps_content(self, fake_embedder):
        content = "# A\nshort one\n\n# B\nalso short"
        chunks = split_markdown(content, embedder=fake_embedder)

        assert [c.text for c in chunks] == [content]
        assert chunks[0].metadata.split_method == "single_chunk"

    def test_table_section(self, fake_embedder):
        table = "| item | price |\n|------|-------|\n| apple | 1.20 |\n| pear | 0.90 |"
        content = f"## Overview\n\n{INTRO}\n\n## Prices\n\n{table}"
        chunks = split_markdown(content, embedder=fake_embedder)
        assert [c.metadata.split_method for c in chunks] == ["header_section", "table"]

    def test_long_section_is_split_semantically(self, topic_embedder):
        paragraphs = [CAT_1, CAT_2] * 3 + [CAT_1] + [STOCK_1, STOCK_2] * 3 + [STOCK_1]
        long_section = "## Markets\n\n" + "\n\n".join(paragraphs)
        content = f"{long_section}\n\n## Summary\n\n{INTRO}"

        chunks = SemanticSplitter(topic_embedder).split_markdown(content)

        assert [c.metadata.split_method for c in chunks] == [
            "semantic_section",
            "semantic_section",
            "header_section",
        ]
        assert chunks[0].metadata.header_text == "Markets"
        assert chunks[0].text.startswith("## Markets")
        assert chunks[1].text.startswith(STOCK_2)
        assert chunks[0].metadata.merged is False

    def test_repeated_runs_give_identical_chunks(self, topic_embedder, fake_embedder):
        """Deterministic embeddings make splitting repeatable."""
        paragraphs = [CAT_1, CAT_2] * 3 + [CAT_1] + [STOCK_1, STOCK_2] * 3 + [STOCK_1]
        content = "## Markets\n\n" + "\n\n".join(paragraphs) + f"\n\n## Summary\n\n{INTRO}"

        for embedder in (topic_embedder, fake_embedder):
            first = SemanticSplitter(embedder).split_markdown(content)
            second = SemanticSplitter(embedder).split_markdown(content)
            assert [c.text for c in first] == [c.text for c in second]
            assert first == second

        methods = {c.metadata.split_method for c in SemanticSplitter(topic_embedder).split_markdown(content)}
        assert methods == {"semantic_section", "header_section"}

    def test_long_section_falls_back_to_character_splitter(self, failing_embedder):
        long_section = "## Notes\n\n" + "\n\n".join([CAT_1, STOCK_1] * 12)
        content = f"{long_section}\n\n## Summary\n\n{INTRO}"

        chunks = SemanticSplitter(failing_embedder).split_markdown(content)

        fallback = [c for c in chunks if c.metadata.split_method == "basic_fallback"]
        assert len(fallback) >= 2
        assert all(len(c.text) <= 2000 for c in fallback)
        assert chunks[-1].metadata.split_method == "header_section"

    def test_long_single_section_with_embedding_failure(self, failing_embedder):
        content = "\n\n".join([CAT_1, STOCK_1] * 8)
        chunks = SemanticSplitter(failing_embedder).split_markdown(content)
        assert len(chunks) == 1
        assert chunks[0].metadata.split_method == "semantic_full"

    def test_empty(self, fake_embedder):
        assert split_markdown("", embedder=fake_embedder) == []
