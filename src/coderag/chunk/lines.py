"""Line-based chunker with character budget and line-granular overlap.

Walks the file line by line and closes a chunk once the accumulated size
(each line plus its newline) reaches ``chunk_size``. The next chunk is seeded
with the tail of the closed one, sized to approximate ``chunk_overlap``
characters from the chunk's average line length. Overlap is therefore
approximate: it is measured in whole lines, never split mid-line.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from coderag.chunk.base import BaseChunker
from coderag.exceptions import ChunkError
from coderag.types import Chunk

if TYPE_CHECKING:
    from coderag.config import ChunkConfig

__all__ = ["LineChunker", "split_lines"]

logger = logging.getLogger(__name__)


def split_lines(text: str) -> list[str]:
    """Split text on newlines, without a phantom empty line after a final newline."""
    if not text:
        return []
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return lines


def _overlap_line_count(lines: list[str], size: int, overlap: int) -> int:
    if overlap <= 0 or len(lines) < 2:
        return 0
    average = size / len(lines)
    return min(math.ceil(overlap / average), len(lines) - 1)


class LineChunker(BaseChunker):
    """Splits source text into overlapping chunks with 1-based line spans.

    A trailing remainder smaller than ``min_chunk_size`` is dropped, unless
    it is the only content in the file: a short file still produces one chunk
    covering all of its lines.
    """

    def chunk(self, text: str, config: ChunkConfig) -> list[Chunk]:
        size = config.chunk_size
        overlap = config.chunk_overlap
        minimum = config.min_chunk_size

        if size < 1:
            raise ChunkError(f"chunk_size must be >= 1, got {size}")
        if overlap < 0 or overlap >= size:
            raise ChunkError(f"chunk_overlap must be in [0, chunk_size), got {overlap}")

        if not text.strip():
            return []

        lines = split_lines(text)
        chunks: list[Chunk] = []
        current: list[str] = []
        current_size = 0
        start_line = 1
        fresh = 0

        for line_no, line in enumerate(lines, start=1):
            current.append(line)
            current_size += len(line) + 1
            fresh += 1

            if current_size < size:
                continue

            chunks.append(Chunk(text="\n".join(current), start_line=start_line, end_line=line_no))

            keep = _overlap_line_count(current, current_size, overlap)
            current = current[len(current) - keep :] if keep else []
            current_size = sum(len(kept) + 1 for kept in current)
            start_line = line_no - len(current) + 1
            fresh = 0

        if fresh and (current_size >= minimum or not chunks):
            tail = "\n".join(current)
            if tail.strip():
                chunks.append(Chunk(text=tail, start_line=start_line, end_line=len(lines)))
        elif fresh:
            logger.debug(
                "Dropped %d-char tail (lines %d-%d) below min_chunk_size=%d",
                current_size,
                start_line,
                len(lines),
                minimum,
            )

        logger.debug("Chunked %d lines into %d chunks", len(lines), len(chunks))
        return chunks
