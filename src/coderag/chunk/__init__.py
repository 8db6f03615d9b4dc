"""Chunking engine: line-based splitting with overlap."""

from coderag.chunk.base import BaseChunker
from coderag.chunk.lines import LineChunker

__all__ = ["BaseChunker", "LineChunker"]
