"""Tests for coderag.chunk: line-based chunking."""

from __future__ import annotations

import pytest

from coderag.chunk import BaseChunker, LineChunker
from coderag.chunk.lines import split_lines
from coderag.config import ChunkConfig
from coderag.exceptions import ChunkError

# --- Helpers ---


def _make_lines(n: int, width: int = 29) -> str:
    """n lines of exactly ``width`` chars, each followed by a newline."""
    return "".join(f"{i:0{width}d}\n" for i in range(1, n + 1))


class TestSplitLines:
    def test_empty(self):
        assert split_lines("") == []

    def test_trailing_newline_not_a_line(self):
        assert split_lines("a\nb\n") == ["a", "b"]

    def test_no_trailing_newline(self):
        assert split_lines("a\nb") == ["a", "b"]

    def test_blank_lines_kept(self):
        assert split_lines("a\n\nb\n") == ["a", "", "b"]


class TestLineChunker:
    def test_is_base_chunker(self):
        assert isinstance(LineChunker(), BaseChunker)

    def test_empty_text_no_chunks(self):
        assert LineChunker().chunk("", ChunkConfig()) == []
        assert LineChunker().chunk("   \n\n", ChunkConfig()) == []

    def test_small_file_single_chunk(self):
        text = "".join(f"line {i}\n" for i in range(1, 51))
        chunks = LineChunker().chunk(text, ChunkConfig())
        assert len(chunks) == 1
        assert chunks[0].start_line == 1
        assert chunks[0].end_line == 50
        assert chunks[0].text == text.rstrip("\n")

    def test_short_file_below_min_size_still_one_chunk(self):
        chunks = LineChunker().chunk("x = 1\n", ChunkConfig(min_chunk_size=100))
        assert len(chunks) == 1
        assert chunks[0].start_line == chunks[0].end_line == 1

    def test_large_file_overlapping_chunks(self):
        text = _make_lines(100)
        assert len(text) == 3000
        chunks = LineChunker().chunk(text, ChunkConfig())
        assert len(chunks) >= 3
        for prev, nxt in zip(chunks, chunks[1:], strict=False):
            assert nxt.start_line <= prev.end_line
            assert nxt.start_line > prev.start_line

    def test_chunks_cover_first_and_last_line(self):
        chunks = LineChunker().chunk(_make_lines(100), ChunkConfig())
        assert chunks[0].start_line == 1
        assert chunks[-1].end_line == 100

    def test_chunk_text_matches_line_span(self):
        text = _make_lines(100)
        lines = text.split("\n")
        for chunk in LineChunker().chunk(text, ChunkConfig()):
            expected = "\n".join(lines[chunk.start_line - 1 : chunk.end_line])
            assert chunk.text == expected

    def test_chunk_size_reached_before_close(self):
        config = ChunkConfig(chunk_size=300, chunk_overlap=0, min_chunk_size=0)
        chunks = LineChunker().chunk(_make_lines(40), config)
        # 30 chars per line including newline: 10 lines per chunk
        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 10), (11, 20), (21, 30), (31, 40)]

    def test_small_tail_dropped(self):
        config = ChunkConfig(chunk_size=300, chunk_overlap=0, min_chunk_size=100)
        chunks = LineChunker().chunk(_make_lines(12), config)
        # lines 11-12 are 60 chars, under the minimum
        assert [(c.start_line, c.end_line) for c in chunks] == [(1, 10)]

    def test_no_overlap_is_contiguous(self):
        config = ChunkConfig(chunk_size=300, chunk_overlap=0, min_chunk_size=0)
        chunks = LineChunker().chunk(_make_lines(25), config)
        for prev, nxt in zip(chunks, chunks[1:], strict=False):
            assert nxt.start_line == prev.end_line + 1

    def test_invalid_size_raises(self):
        with pytest.raises(ChunkError, match="chunk_size"):
            LineChunker().chunk("x", ChunkConfig(chunk_size=0, chunk_overlap=0))

    def test_overlap_not_below_size_raises(self):
        with pytest.raises(ChunkError, match="chunk_overlap"):
            LineChunker().chunk("x", ChunkConfig(chunk_size=100, chunk_overlap=100))
