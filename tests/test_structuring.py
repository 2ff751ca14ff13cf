"""Tests for paragraph and header reconstruction."""

from doc_chunker.chunker.models import HeaderBlock, TextBlock
from doc_chunker.chunker.structuring import (
    clean_and_normalize,
    detect_header,
    split_into_sentences,
    structure_text,
)


class TestCleanAndNormalize:
    def test_dehyphenates_words_split_across_lines(self):
        assert clean_and_normalize("the text con-\ntinued here") == "the text continued here"

    def test_joins_lines_broken_mid_sentence(self):
        assert clean_and_normalize("The quick\nbrown fox") == "The quick brown fox"

    def test_drops_page_numbers(self):
        cleaned = clean_and_normalize("First paragraph.\n12\nPage 3 of 10\nSecond paragraph.")
        assert "12" not in cleaned
        assert "Page 3" not in cleaned

    def test_collapses_spaces(self):
        assert clean_and_normalize("a   lot\tof    space") == "a lot of space"


class TestSplitIntoSentences:
    def test_keeps_terminal_punctuation(self):
        assert split_into_sentences("First one. Second one! Third?") == [
            "First one.",
            "Second one!",
            "Third?",
        ]

    def test_lowercase_continuation_is_not_a_boundary(self):
        assert split_into_sentences("See e.g. the appendix.") == ["See e.g. the appendix."]


class TestDetectHeader:
    """Tests for detect_header."""

    def test_all_caps_title(self):
        assert detect_header("INTRODUCTION TO THE SYSTEM") is True

    def test_short_caps_is_not_a_header(self):
        assert detect_header("NOTE") is False

    def test_section_label(self):
        assert detect_header("Art. 1 - Scope of this agreement") is True

    def test_numbered_title_needs_long_following_line(self):
        title = "1. Introduction to the system design"
        body = "This paragraph explains the overall design in more than fifty characters."
        assert detect_header(title, body) is True
        assert detect_header(title) is False

    def test_plain_sentence(self):
        assert detect_header("This is an ordinary sentence of body text.") is False


class TestStructureText:
    def test_header_and_paragraph(self):
        text = "INTRODUCTION TO THE SYSTEM\n\nThis is the first sentence. This is the second."
        blocks = structure_text(text, page_number=2)

        assert isinstance(blocks[0], HeaderBlock)
        assert blocks[0].level == 1
        assert isinstance(blocks[1], TextBlock)
        assert blocks[1].text == "This is the first sentence. This is the second."
        assert all(b.page_number == 2 for b in blocks)

    def test_confidence_is_propagated(self):
        blocks = structure_text("Some recognised text.", confidence=0.6)
        assert blocks[0].confidence == 0.6

    def test_empty_text(self):
        assert structure_text("   ") == []
