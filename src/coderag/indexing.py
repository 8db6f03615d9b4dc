"""Indexing orchestrator for coderag.

Composes file discovery → chunker → embedder → store via constructor
injection. A workspace index is single-flight: while one runs, another
request raises :class:`IndexBusyError` and watcher-driven per-file updates
are skipped.
"""

from __future__ import annotations

import functools
import logging
import os
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from coderag.exceptions import (
    CoderagError,
    DimensionMismatchError,
    IndexBusyError,
    IndexingError,
)
from coderag.languages import language_for_path
from coderag.manifest import Manifest, compute_hash, make_entry, save_manifest
from coderag.types import Document, DocumentMetadata, DocumentWithEmbedding, IndexReport

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from coderag.chunk.base import BaseChunker
    from coderag.config import CoderagConfig
    from coderag.embed.base import BaseEmbedder
    from coderag.store.base import BaseStore

__all__ = ["Indexer", "SourceFile", "glob_to_regex", "matches_any", "read_source"]

logger = logging.getLogger(__name__)


# --- Glob matching ---


def _expand_braces(pattern: str) -> list[str]:
    """Expand the first ``{a,b}`` group recursively: ``*.{js,ts}`` → ``*.js``, ``*.ts``."""
    match = re.search(r"\{([^{}]*)\}", pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(_expand_braces(head + option + tail))
    return expanded


@functools.lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a workspace glob (``**``, ``*``, ``?``, ``{a,b}``) to a regex.

    ``**/`` matches zero or more directories, ``*`` never crosses ``/``.
    """
    alternatives: list[str] = []
    for expanded in _expand_braces(pattern):
        out: list[str] = []
        i = 0
        while i < len(expanded):
            if expanded.startswith("**/", i):
                out.append("(?:.*/)?")
                i += 3
            elif expanded.startswith("**", i):
                out.append(".*")
                i += 2
            elif expanded[i] == "*":
                out.append("[^/]*")
                i += 1
            elif expanded[i] == "?":
                out.append("[^/]")
                i += 1
            else:
                out.append(re.escape(expanded[i]))
                i += 1
        alternatives.append("".join(out))
    return re.compile("^(?:" + "|".join(alternatives) + ")$")


def matches_any(rel_path: str, patterns: Sequence[str]) -> bool:
    """True if the POSIX-style relative path matches any glob pattern."""
    return any(glob_to_regex(p).match(rel_path) for p in patterns)


# --- File reading ---


@dataclass(frozen=True)
class SourceFile:
    """A workspace file accepted for indexing."""

    path: Path
    rel_path: str
    text: str
    language: str


def read_source(path: Path, rel_path: str, max_bytes: int) -> SourceFile | str:
    """Read a file for indexing.

    Returns:
        A ``SourceFile``, or a short reason string when the file is skipped
        (directory, too large, empty, not UTF-8, unreadable).
    """
    try:
        if not path.is_file():
            return "not a regular file"
        size = path.stat().st_size
        if size > max_bytes:
            return f"larger than {max_bytes} bytes"
        if size == 0:
            return "empty"
        raw = path.read_bytes()
    except OSError as e:
        return f"unreadable: {e}"

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return "not UTF-8 text"

    if not text.strip():
        return "empty"
    return SourceFile(path=path, rel_path=rel_path, text=text, language=language_for_path(path))


@dataclass
class _RunStats:
    indexed: int = 0
    skipped: int = 0
    chunks: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)


class Indexer:
    """Indexes workspace files into a vector store.

    All dependencies are injected via the constructor, making the indexer
    fully testable with mock implementations.

    Usage::

        indexer = Indexer(
            root=project.root,
            chunker=LineChunker(),
            embedder=cached_embedder,
            store=json_store,
            config=config,
            manifest=manifest,
            manifest_path=project.manifest_path,
        )
        report = indexer.index_workspace()
    """

    def __init__(
        self,
        root: Path,
        chunker: BaseChunker,
        embedder: BaseEmbedder,
        store: BaseStore,
        config: CoderagConfig,
        manifest: Manifest | None = None,
        manifest_path: Path | None = None,
    ) -> None:
        self.root = root.resolve()
        self.chunker = chunker
        self.embedder = embedder
        self.store = store
        self.config = config
        self.manifest = manifest if manifest is not None else Manifest()
        self.manifest_path = manifest_path
        self._busy = threading.Lock()

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    # --- Discovery ---

    def relative_path(self, path: Path) -> str:
        """Workspace-relative POSIX path; paths outside the root stay absolute."""
        resolved = path if path.is_absolute() else self.root / path
        resolved = resolved.resolve()
        try:
            return resolved.relative_to(self.root).as_posix()
        except ValueError:
            return resolved.as_posix()

    def is_indexable(self, rel_path: str) -> bool:
        """Apply include/exclude patterns to a workspace-relative path."""
        patterns = self.config.index
        return matches_any(rel_path, patterns.include) and not matches_any(
            rel_path, patterns.exclude
        )

    def discover_files(self) -> list[Path]:
        """All files under the root matching include and not exclude, sorted."""
        return sorted(self._walk())

    def _walk(self) -> Iterator[Path]:
        exclude = self.config.index.exclude
        for dirpath, dirnames, filenames in os.walk(self.root):
            base = Path(dirpath)
            rel_dir = base.relative_to(self.root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            dirnames[:] = [d for d in dirnames if not matches_any(f"{prefix}{d}/", exclude)]
            for name in filenames:
                if self.is_indexable(f"{prefix}{name}"):
                    yield base / name

    # --- Indexing ---

    def index_file(self, path: Path) -> int:
        """Chunk, embed and store one file, replacing its previous documents.

        The previous documents stay in place if chunking or embedding fails,
        or if the new vectors do not match the store's dimension.

        Returns:
            Number of documents stored (0 when the file is skipped).

        Raises:
            IndexingError: If chunking, embedding or storage fails.
        """
        rel_path = self.relative_path(path)
        source = read_source(self._absolute(path), rel_path, self.config.index.max_file_bytes)
        if isinstance(source, str):
            logger.info("Skipping %s: %s", rel_path, source)
            self._forget(rel_path)
            return 0

        try:
            chunks = self.chunker.chunk(source.text, self.config.chunk)
            logger.debug("Chunked %s into %d chunks", rel_path, len(chunks))

            documents = [
                Document(
                    id=str(uuid.uuid4()),
                    text=chunk.text,
                    metadata=DocumentMetadata(
                        file_path=rel_path,
                        start_line=chunk.start_line,
                        end_line=chunk.end_line,
                        language=source.language,
                        chunk_index=i,
                    ),
                )
                for i, chunk in enumerate(chunks)
            ]
            vectors = self.embedder.embed_texts([d.text for d in documents]) if documents else []
            self._check_dimension(vectors)

            # Old documents go only once the new ones are known to fit
            self.store.delete_documents({"metadata.file_path": rel_path})
            count = self.store.add_documents(
                [
                    DocumentWithEmbedding(document=doc, embedding=tuple(vec))
                    for doc, vec in zip(documents, vectors, strict=True)
                ]
            )
        except IndexingError:
            raise
        except Exception as e:
            raise IndexingError(f"Indexing failed for {rel_path}: {e}") from e

        self.manifest.add_file(
            make_entry(rel_path, compute_hash(source.path), chunks=count, language=source.language)
        )
        logger.info("Indexed %s (%d chunks)", rel_path, count)
        return count

    def index_files(self, paths: Sequence[Path], *, incremental: bool = False) -> IndexReport:
        """Index a set of files in batches, continuing past per-file failures.

        With ``incremental``, files whose content hash matches the manifest
        are skipped.
        """
        stats = _RunStats()
        degraded_before = self._degraded()
        batch_size = max(1, self.config.index.batch_size)

        with self.store.batch():
            for batch_start in range(0, len(paths), batch_size):
                batch = paths[batch_start : batch_start + batch_size]
                logger.debug(
                    "Indexing batch %d (%d files)", batch_start // batch_size + 1, len(batch)
                )
                for path in batch:
                    self._index_one(path, stats, incremental=incremental)

        self._save_manifest()
        report = IndexReport(
            files_indexed=stats.indexed,
            files_skipped=stats.skipped,
            chunks=stats.chunks,
            degraded=self._degraded() - degraded_before,
            failures=tuple(stats.failures),
        )
        if report.degraded:
            logger.warning(
                "%d chunks were embedded with random fallback vectors", report.degraded
            )
        return report

    def index_workspace(self, *, full: bool = True) -> IndexReport:
        """Index every discoverable file under the root.

        A full run clears the store and manifest first. An incremental run
        skips unchanged files and drops documents of files that disappeared.

        Raises:
            IndexBusyError: If another workspace index is running.
        """
        if not self._busy.acquire(blocking=False):
            raise IndexBusyError("Indexing is already in progress")
        try:
            files = self.discover_files()
            logger.info("Found %d files to index under %s", len(files), self.root)

            if full:
                removed = self.store.delete_documents({})
                self.manifest.clear()
                logger.info("Cleared %d documents for full re-index", removed)
            else:
                present = {self.relative_path(p) for p in files}
                for entry in self.manifest.files:
                    if entry.path not in present:
                        self._remove(entry.path)

            report = self.index_files(files, incremental=not full)
            self.manifest.last_indexed = datetime.now(UTC).isoformat()
            self._save_manifest()
            logger.info(
                "Indexed %d files (%d chunks, %d skipped, %d failed)",
                report.files_indexed,
                report.chunks,
                report.files_skipped,
                len(report.failures),
            )
            return report
        finally:
            self._busy.release()

    # --- Watcher hooks ---

    def handle_file_change(self, path: Path) -> bool:
        """Re-index one changed file. Skipped while a workspace index runs.

        Returns:
            True if the file was processed.
        """
        rel_path = self.relative_path(path)
        if not self.is_indexable(rel_path):
            return False
        if not self._busy.acquire(blocking=False):
            logger.debug("Skipping change to %s: indexing in progress", rel_path)
            return False
        try:
            self.index_file(path)
            self._save_manifest()
        except CoderagError as e:
            logger.error("Failed to re-index %s: %s", rel_path, e)
            return False
        finally:
            self._busy.release()
        return True

    def handle_file_delete(self, path: Path) -> int:
        """Drop the documents of a deleted file. Skipped while a workspace index runs."""
        rel_path = self.relative_path(path)
        if not self._busy.acquire(blocking=False):
            logger.debug("Skipping delete of %s: indexing in progress", rel_path)
            return 0
        try:
            return self.remove_file(path)
        finally:
            self._busy.release()

    def remove_file(self, path: Path) -> int:
        """Delete a file's documents and manifest entry.

        Raises:
            IndexingError: If the store rejects the deletion.
        """
        rel_path = self.relative_path(path)
        count = self._remove(rel_path)
        self._save_manifest()
        return count

    # --- Internals ---

    def _index_one(self, path: Path, stats: _RunStats, *, incremental: bool) -> None:
        rel_path = self.relative_path(path)
        try:
            current_hash = compute_hash(self._absolute(path))
            if incremental and not self.manifest.is_changed(rel_path, current_hash):
                logger.debug("Unchanged: %s", rel_path)
                stats.skipped += 1
                return
            count = self.index_file(path)
        except CoderagError as e:
            logger.error("Failed to index %s: %s", rel_path, e)
            stats.failures.append((rel_path, str(e)))
            return

        if count:
            stats.indexed += 1
            stats.chunks += count
        else:
            stats.skipped += 1

    def _remove(self, rel_path: str) -> int:
        try:
            count = self.store.delete_documents({"metadata.file_path": rel_path})
        except CoderagError as e:
            raise IndexingError(f"Failed to remove {rel_path}: {e}") from e
        self.manifest.remove_file(rel_path)
        logger.info("Removed %d documents for %s", count, rel_path)
        return count

    def _forget(self, rel_path: str) -> None:
        if self.manifest.get_file(rel_path) is not None:
            self._remove(rel_path)

    def _check_dimension(self, vectors: list[list[float]]) -> None:
        expected = self.store.dimension
        if expected is None:
            return
        for vector in vectors:
            if len(vector) != expected:
                raise DimensionMismatchError(expected, len(vector))

    def _absolute(self, path: Path) -> Path:
        return path if path.is_absolute() else self.root / path

    def _degraded(self) -> int:
        return int(getattr(self.embedder, "degraded_count", 0))

    def _save_manifest(self) -> None:
        if self.manifest_path is not None:
            save_manifest(self.manifest, self.manifest_path)
