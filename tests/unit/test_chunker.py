"""Unit tests for TextChunker — normalisation, size bound, overlap, coverage."""

from __future__ import annotations

import pytest

from docrag.services.ingestion.chunker import (
    SEPARATORS,
    TextChunker,
    estimate_tokens,
    normalize_whitespace,
)


def _words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i:04d}" for i in range(count))


def _reconstruct(pieces: list[str], overlap: int) -> str:
    return pieces[0] + "".join(p[overlap:] for p in pieces[1:])


# ======================================================================
# Helpers
# ======================================================================


class TestNormalizeWhitespace:
    def test_collapses_spaces_and_tabs(self) -> None:
        assert normalize_whitespace("a  \t b\t\tc") == "a b c"

    def test_caps_blank_lines(self) -> None:
        assert normalize_whitespace("a\n\n\n\n\nb") == "a\n\nb"

    def test_keeps_single_and_double_newlines(self) -> None:
        assert normalize_whitespace("a\nb\n\nc") == "a\nb\n\nc"

    def test_trims(self) -> None:
        assert normalize_whitespace("  \n hello \n ") == "hello"

    def test_empty(self) -> None:
        assert normalize_whitespace("") == ""


class TestEstimateTokens:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [("", 0), ("a", 1), ("abcd", 1), ("abcde", 2), ("x" * 500, 125)],
    )
    def test_ceil_of_quarter_length(self, text: str, expected: int) -> None:
        assert estimate_tokens(text) == expected


def test_separator_order_coarse_to_fine() -> None:
    assert SEPARATORS == ("\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", "")


# ======================================================================
# Construction
# ======================================================================


class TestConstruction:
    def test_defaults(self) -> None:
        chunker = TextChunker()
        assert chunker.chunk_size == 500
        assert chunker.overlap == 50

    @pytest.mark.parametrize(("size", "overlap"), [(0, 0), (-1, 0), (100, 100), (100, 150), (100, -1)])
    def test_invalid_parameters_raise(self, size: int, overlap: int) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=size, overlap=overlap)


# ======================================================================
# Chunking
# ======================================================================


class TestChunk:
    def test_empty_and_blank_return_nothing(self) -> None:
        chunker = TextChunker()
        assert chunker.chunk("") == []
        assert chunker.chunk("   \n\t\n  ") == []

    def test_short_text_is_one_chunk(self) -> None:
        chunks = TextChunker(chunk_size=100, overlap=10).chunk("Hello   world.\n\n\n\nBye.")
        assert len(chunks) == 1
        assert chunks[0].content == "Hello world.\n\nBye."
        assert chunks[0].order == 0
        assert chunks[0].token_estimate == estimate_tokens(chunks[0].content)

    def test_orders_are_contiguous(self) -> None:
        chunks = TextChunker(chunk_size=60, overlap=10).chunk(_words(100))
        assert [c.order for c in chunks] == list(range(len(chunks)))

    def test_size_bound_on_words(self) -> None:
        chunks = TextChunker(chunk_size=80, overlap=20).chunk(_words(300))
        assert len(chunks) > 1
        assert all(len(c.content) <= 80 for c in chunks)

    def test_overlap_is_literal(self) -> None:
        overlap = 20
        pieces = [c.content for c in TextChunker(chunk_size=80, overlap=overlap).chunk(_words(300))]
        for previous, current in zip(pieces, pieces[1:]):
            assert current[:overlap] == previous[-overlap:]

    def test_coverage_reconstructs_normalized_text(self) -> None:
        text = "First paragraph here.\n\n\n" + _words(120) + "\n\nLast  line, with\ttabs."
        chunker = TextChunker(chunk_size=90, overlap=15)
        pieces = [c.content for c in chunker.chunk(text)]
        assert _reconstruct(pieces, 15) == normalize_whitespace(text)

    def test_prefers_paragraph_boundaries(self) -> None:
        para_a = "a" * 30 + "."
        para_b = "b" * 30 + "."
        chunks = TextChunker(chunk_size=40, overlap=0).chunk(f"{para_a}\n\n{para_b}")
        assert [c.content for c in chunks] == [para_a + "\n\n", para_b]

    def test_sentence_fallback_inside_long_paragraph(self) -> None:
        sentences = ". ".join(f"Sentence number {i} is here" for i in range(10)) + "."
        chunks = TextChunker(chunk_size=70, overlap=0).chunk(sentences)
        # With no overlap every chunk but the last ends on a sentence separator.
        assert all(c.content.endswith(". ") for c in chunks[:-1])

    def test_hard_split_without_separators(self) -> None:
        text = "x" * 1200
        chunks = TextChunker(chunk_size=500, overlap=50).chunk(text)
        assert [len(c.content) for c in chunks] == [500, 500, 300]
        assert _reconstruct([c.content for c in chunks], 50) == text

    def test_hard_split_stride(self) -> None:
        text = "".join(chr(ord("a") + i % 26) for i in range(100))
        chunks = TextChunker(chunk_size=40, overlap=10).chunk(text)
        assert chunks[0].content == text[0:40]
        assert chunks[1].content == text[30:70]
        assert chunks[2].content == text[60:100]

    def test_long_word_falls_back_to_characters(self) -> None:
        text = "short " + "y" * 95 + " tail"
        chunks = TextChunker(chunk_size=40, overlap=5).chunk(text)
        assert all(0 < len(c.content) <= 40 for c in chunks)
        assert _reconstruct([c.content for c in chunks], 5) == text

    @pytest.mark.parametrize("second_words", [60, 68, 72])
    def test_long_paragraph_after_closed_fragment_keeps_overlap(self, second_words: int) -> None:
        first = " ".join(f"alpha{i}" for i in range(40)) + "."
        second = " ".join(f"beta{i}" for i in range(second_words)) + "."
        assert len(first) == 310
        assert 400 < len(second) <= 500
        text = f"{first}\n\n{second}"

        pieces = [c.content for c in TextChunker(chunk_size=500, overlap=50).chunk(text)]

        assert len(pieces) >= 2
        assert all(len(p) <= 500 for p in pieces)
        for previous, current in zip(pieces, pieces[1:]):
            assert current[:50] == previous[-50:]
        assert _reconstruct(pieces, 50) == text

    def test_paragraph_at_chunk_size_is_split_below_it(self) -> None:
        opening = "Opening line."
        body = ("y" * 99 + " ") * 4 + "y" * 99
        assert len(body) == 499
        pieces = [c.content for c in TextChunker(chunk_size=500, overlap=50).chunk(f"{opening}\n\n{body}")]

        assert all(len(p) <= 500 for p in pieces)
        for previous, current in zip(pieces, pieces[1:]):
            assert current[:50] == previous[-50:]
        assert _reconstruct(pieces, 50) == f"{opening}\n\n{body}"

    def test_1200_characters_make_three_fragments(self) -> None:
        text = " ".join(f"w{i:04d}" for i in range(200)) + "."
        assert len(text) == 1200
        chunks = TextChunker(chunk_size=500, overlap=50).chunk(text)
        assert len(chunks) == 3

    def test_never_emits_blank_fragments(self) -> None:
        chunks = TextChunker(chunk_size=3, overlap=1).chunk("a \n\n b \n\n\n c")
        assert chunks
        assert all(c.content.strip() for c in chunks)

    def test_zero_overlap_partitions_text(self) -> None:
        text = _words(200)
        pieces = [c.content for c in TextChunker(chunk_size=64, overlap=0).chunk(text)]
        assert "".join(pieces) == text


class TestChunkStats:
    def test_empty(self) -> None:
        stats = TextChunker().get_chunk_stats([])
        assert stats["count"] == 0
        assert stats["avg_chars"] == 0.0

    def test_values(self) -> None:
        chunker = TextChunker(chunk_size=500, overlap=50)
        chunks = chunker.chunk("x" * 1200)
        stats = chunker.get_chunk_stats(chunks)
        assert stats["count"] == 3
        assert stats["total_chars"] == 1300
        assert stats["min_chars"] == 300
        assert stats["max_chars"] == 500
        assert stats["overlap"] == 50
