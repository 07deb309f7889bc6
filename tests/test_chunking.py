"""Tests for the word-safe character chunker and the byte chunker."""
import pytest

from pdfpipe.chunking import chunk_bytes, chunk_text, normalize_whitespace, validate_chunk_params
from pdfpipe.errors import InvalidChunkParams

PROSE = (
    "The quick brown fox jumps over the lazy dog while the farmer watches from "
    "the porch and counts the sheep that wander across the green hills at dusk."
)

GREEK = (
    "alpha beta gamma delta epsilon zeta eta theta iota kappa lambda mu nu xi "
    "omicron pi rho sigma tau upsilon phi chi psi omega"
)


class TestValidateChunkParams:
    @pytest.mark.parametrize("size,overlap", [(10, 10), (10, 20), (0, 0), (-5, 0), (10, -1)])
    def test_rejects_invalid_params(self, size, overlap):
        with pytest.raises(InvalidChunkParams) as exc_info:
            validate_chunk_params(size, overlap)
        assert str(exc_info.value).startswith("Invalid chunking params:")

    def test_invalid_params_are_value_errors(self):
        with pytest.raises(ValueError):
            chunk_text("some text", size=5, overlap=5)

    def test_zero_overlap_allowed(self):
        validate_chunk_params(10, 0)


class TestChunkText:
    def test_empty_and_whitespace_only(self):
        assert chunk_text("", 20, 5) == []
        assert chunk_text(" \n\t  ", 20, 5) == []

    def test_short_text_single_chunk(self):
        assert chunk_text("  Hello \n world.  ", 20, 5) == ["Hello world."]

    @pytest.mark.parametrize("size,overlap", [(20, 5), (40, 10), (64, 0), (25, 24)])
    def test_chunks_respect_size(self, size, overlap):
        chunks = chunk_text(PROSE, size, overlap)
        assert chunks
        assert all(0 < len(c) <= size for c in chunks)

    @pytest.mark.parametrize("size,overlap", [(20, 5), (40, 10), (64, 0)])
    def test_chunks_come_from_normalized_text_in_order(self, size, overlap):
        clean = normalize_whitespace(PROSE)
        position = 0
        for chunk in chunk_text(PROSE, size, overlap):
            found = clean.find(chunk, max(0, position - size))
            assert found >= 0
            assert found >= position - size
            position = found + len(chunk)
        assert position == len(clean)

    def test_does_not_cut_words_when_space_available(self):
        words = set(normalize_whitespace(PROSE).split(" "))
        for chunk in chunk_text(PROSE, 30, 0):
            for word in chunk.split(" "):
                assert word in words

    def test_overlap_reconstructs_text_without_spaces(self):
        text = "abcdefghij" * 7
        size, overlap = 16, 4
        chunks = chunk_text(text, size, overlap)

        rebuilt = chunks[0] + "".join(c[overlap:] for c in chunks[1:])
        assert rebuilt == text
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev[-overlap:] == nxt[:overlap]

    @pytest.mark.parametrize(
        "text,size,overlap",
        [
            (GREEK, 20, 5),
            (GREEK, 16, 6),
            (GREEK, 30, 8),
            (PROSE, 20, 5),
            (PROSE, 40, 10),
            (PROSE, 60, 15),
        ],
    )
    def test_neighbouring_chunks_share_overlap_in_prose(self, text, size, overlap):
        """The tail of each chunk reappears at the head of the next, even across a space."""
        chunks = chunk_text(text, size, overlap)
        assert len(chunks) > 1
        for prev, nxt in zip(chunks, chunks[1:]):
            shared = max(k for k in range(min(len(prev), len(nxt)) + 1) if prev.endswith(nxt[:k]))
            assert shared >= overlap, (prev, nxt, shared)
            assert len(nxt) <= size

    def test_terminates_when_overlap_close_to_size(self):
        chunks = chunk_text("x" * 50, size=3, overlap=2)
        assert all(len(c) <= 3 for c in chunks)
        assert len(chunks) == 48


class TestChunkBytes:
    def test_empty(self):
        assert chunk_bytes("", 10) == []

    def test_ascii_split(self):
        assert chunk_bytes("abcdefghij", 4) == ["abcd", "efgh", "ij"]

    def test_never_splits_multibyte_characters(self):
        text = "héllo wörld €€€ \U0001F600 done" * 5
        pieces = chunk_bytes(text, 7)

        assert "".join(pieces) == text
        for piece in pieces:
            assert len(piece.encode("utf-8")) <= 7

    def test_character_wider_than_limit_is_emitted_whole(self):
        assert chunk_bytes("a\U0001F600b", 2) == ["a", "\U0001F600", "b"]

    def test_rejects_non_positive_size(self):
        with pytest.raises(InvalidChunkParams):
            chunk_bytes("abc", 0)
