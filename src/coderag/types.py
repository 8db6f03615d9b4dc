"""Data contracts for coderag.

Frozen dataclasses that flow between stages:
  file text → list[Chunk] → list[Document] → list[DocumentWithEmbedding] → stored
  query → list[SearchResult] → QueryResult
  diff text → list[ParsedDiff] → list[TextEdit] → new content
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "Chunk",
    "CodeChange",
    "Document",
    "DocumentMetadata",
    "DocumentWithEmbedding",
    "IndexReport",
    "LineDiff",
    "LineType",
    "ParsedDiff",
    "ParsedDiffHunk",
    "QueryOutcome",
    "QueryResult",
    "SearchResult",
    "TextEdit",
]


@dataclass(frozen=True)
class Chunk:
    """A contiguous line-range slice of a file. Lines are 1-based and inclusive."""

    text: str
    start_line: int
    end_line: int


@dataclass(frozen=True)
class DocumentMetadata:
    """Metadata attached to every stored document."""

    file_path: str
    start_line: int | None = None
    end_line: int | None = None
    language: str | None = None
    chunk_index: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a plain dict; ``extra`` keys sit beside the named fields."""
        data: dict[str, Any] = dict(self.extra)
        data["file_path"] = self.file_path
        for key in ("start_line", "end_line", "language", "chunk_index"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentMetadata:
        named = {"file_path", "start_line", "end_line", "language", "chunk_index"}
        return cls(
            file_path=str(data.get("file_path", "")),
            start_line=data.get("start_line"),
            end_line=data.get("end_line"),
            language=data.get("language"),
            chunk_index=data.get("chunk_index"),
            extra={k: v for k, v in data.items() if k not in named},
        )


@dataclass(frozen=True)
class Document:
    """A stored text record. Replaced by delete + insert, never mutated."""

    id: str
    text: str
    metadata: DocumentMetadata


@dataclass(frozen=True)
class DocumentWithEmbedding:
    """A document with its embedding vector attached."""

    document: Document
    embedding: tuple[float, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SearchResult:
    """A search result: document + similarity score in [0, 1]."""

    document: Document
    score: float


@dataclass(frozen=True)
class IndexReport:
    """Aggregate outcome of an indexing run."""

    files_indexed: int = 0
    files_skipped: int = 0
    chunks: int = 0
    degraded: int = 0
    failures: tuple[tuple[str, str], ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures


class QueryOutcome(enum.Enum):
    """Terminal states of a retrieval query."""

    DIRECT_RESULT = "direct_result"
    RAG_ONLY_RESULT = "rag_only_result"
    NO_CONTEXT_RESULT = "no_context_result"
    ERROR = "error"


@dataclass(frozen=True)
class QueryResult:
    """What a query produced, and which path produced it."""

    outcome: QueryOutcome
    content: str
    results: tuple[SearchResult, ...] = ()


@dataclass(frozen=True)
class ChatMessage:
    """A single chat message for a generation provider."""

    role: str
    content: str


@dataclass(frozen=True)
class ChatResponse:
    """Generation output. Streaming callbacks get cumulative ``content``."""

    content: str
    done: bool = True


class LineType(str, enum.Enum):
    """Kind of a line inside a diff hunk."""

    ADD = "add"
    REMOVE = "remove"
    CONTEXT = "context"


@dataclass(frozen=True)
class LineDiff:
    """One line of a hunk.

    ``line_number`` is the old-file number for removes and context lines and
    the new-file number for adds. ``no_newline`` marks a line followed by
    ``\\ No newline at end of file``.
    """

    type: LineType
    content: str
    line_number: int | None = None
    no_newline: bool = False


@dataclass(frozen=True)
class ParsedDiffHunk:
    """A contiguous changed region of a unified diff."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    line_diffs: tuple[LineDiff, ...] = ()
    header: str = ""

    @property
    def old_side(self) -> list[LineDiff]:
        return [ld for ld in self.line_diffs if ld.type is not LineType.ADD]

    @property
    def new_side(self) -> list[LineDiff]:
        return [ld for ld in self.line_diffs if ld.type is not LineType.REMOVE]


@dataclass(frozen=True)
class ParsedDiff:
    """All hunks for one file section of a diff."""

    old_path: str | None = None
    new_path: str | None = None
    hunks: tuple[ParsedDiffHunk, ...] = ()
    language: str | None = None

    @property
    def path(self) -> str | None:
        """Target path: the new path, or the old one for deletions."""
        return self.new_path or self.old_path


@dataclass(frozen=True)
class TextEdit:
    """Replace lines ``[start, end)`` (0-based) with ``lines``.

    Each line is a ``(text, has_newline)`` pair.
    """

    start: int
    end: int
    lines: tuple[tuple[str, bool], ...] = ()


@dataclass(frozen=True)
class CodeChange:
    """A code change proposed in free-form model output.

    Changes extracted from a diff block keep the raw diff in ``diff``;
    ``original_code``/``new_code`` then hold the reconstructed old and new
    sides.
    """

    new_code: str
    language: str = ""
    original_code: str | None = None
    description: str | None = None
    file_path: str | None = None
    diff: str | None = None

    @property
    def is_diff(self) -> bool:
        return self.diff is not None
