"""File-backed brute-force vector store.

Keeps every document and its embedding in memory, scores a query against all
of them with numpy, and persists the collection as a single JSON file::

    {"documents": [{"id", "text", "metadata", "embedding"}, ...],
     "metadata": {"embedding_dimension", "created", "version"}}

Suited to a single workspace on a single process; writes are not
coordinated across processes.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import numpy as np

from coderag.exceptions import DimensionMismatchError, InputError, StoreError
from coderag.store.base import BaseStore
from coderag.store.filters import SIMILARITY_MODES, cosine_scores, matches_filter
from coderag.types import Document, DocumentMetadata, SearchResult

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence
    from pathlib import Path

    from coderag.types import DocumentWithEmbedding

__all__ = ["JsonStore"]

logger = logging.getLogger(__name__)

STORE_FILE = "vectors.json"
_FORMAT_VERSION = "1"


class JsonStore(BaseStore):
    """Brute-force cosine store persisted to ``persist_path`` (or memory only).

    Usage::

        store = JsonStore(persist_path=project.index_dir / "vectors.json")
        store.add_documents(embedded_docs)
        results = store.similarity_search(query_vec, limit=5, min_score=0.1)
    """

    def __init__(
        self,
        persist_path: Path | None = None,
        *,
        similarity: str = "absolute",
    ) -> None:
        if similarity not in SIMILARITY_MODES:
            raise StoreError(
                f"Unknown similarity mode {similarity!r}; expected one of {SIMILARITY_MODES}"
            )
        self._persist_path = persist_path
        self._similarity = similarity
        self._documents: list[Document] = []
        self._vectors: list[np.ndarray] = []
        self._matrix: np.ndarray | None = None
        self._dimension: int | None = None
        self._deferred = 0
        self._dirty = False
        self._created = datetime.now(UTC).isoformat()

        if persist_path is not None and persist_path.exists():
            self._load(persist_path)

        logger.info(
            "JsonStore ready (%d documents, path=%s, similarity=%s)",
            len(self._documents),
            persist_path,
            similarity,
        )

    @property
    def dimension(self) -> int | None:
        return self._dimension

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Hold back file writes until the outermost batch exits."""
        self._deferred += 1
        try:
            yield
        finally:
            self._deferred -= 1
            if self._deferred == 0 and self._dirty:
                self._save()

    def add_documents(self, docs: list[DocumentWithEmbedding]) -> int:
        if not docs:
            return 0

        expected = self._dimension or len(docs[0].embedding)
        if expected == 0:
            raise InputError(f"Document {docs[0].document.id} has an empty embedding")
        vectors: list[np.ndarray] = []
        for doc in docs:
            if len(doc.embedding) != expected:
                raise DimensionMismatchError(expected, len(doc.embedding))
            vectors.append(np.asarray(doc.embedding, dtype=np.float64))

        self._dimension = expected
        self._documents.extend(d.document for d in docs)
        self._vectors.extend(vectors)
        self._matrix = None
        self._save()

        logger.info("Added %d documents (total %d)", len(docs), len(self._documents))
        return len(docs)

    def similarity_search(
        self,
        embedding: Sequence[float],
        *,
        limit: int = 10,
        min_score: float | None = None,
        filter: Mapping[str, Any] | None = None,  # noqa: A002
    ) -> list[SearchResult]:
        if not self._documents or limit <= 0:
            return []

        query = np.asarray(embedding, dtype=np.float64)
        if self._dimension is not None and query.shape[0] != self._dimension:
            raise DimensionMismatchError(self._dimension, int(query.shape[0]))

        scores = cosine_scores(self._stacked(), query, self._similarity)

        results: list[SearchResult] = []
        for document, score in zip(self._documents, scores, strict=True):
            value = float(score)
            if min_score is not None and value < min_score:
                continue
            if not matches_filter(document, filter):
                continue
            results.append(SearchResult(document=document, score=value))

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    def delete_documents(self, filter: Mapping[str, Any] | None = None) -> int:  # noqa: A002
        if not filter:
            count = len(self._documents)
            self._documents.clear()
            self._vectors.clear()
        else:
            keep = [
                i for i, doc in enumerate(self._documents) if not matches_filter(doc, filter)
            ]
            count = len(self._documents) - len(keep)
            if count == 0:
                return 0
            self._documents = [self._documents[i] for i in keep]
            self._vectors = [self._vectors[i] for i in keep]

        if not self._documents:
            self._dimension = None
        self._matrix = None
        self._save()

        logger.info("Deleted %d documents (filter=%s)", count, dict(filter or {}))
        return count

    def get_document_count(self) -> int:
        return len(self._documents)

    def close(self) -> None:
        self._save()

    # --- Internals ---

    def _stacked(self) -> np.ndarray:
        if self._matrix is None:
            self._matrix = np.vstack(self._vectors)
        return self._matrix

    def _save(self) -> None:
        if self._persist_path is None:
            return
        if self._deferred:
            self._dirty = True
            return
        data = {
            "documents": [
                {
                    "id": doc.id,
                    "text": doc.text,
                    "metadata": doc.metadata.to_dict(),
                    "embedding": vec.tolist(),
                }
                for doc, vec in zip(self._documents, self._vectors, strict=True)
            ],
            "metadata": {
                "embedding_dimension": self._dimension,
                "created": self._created,
                "version": _FORMAT_VERSION,
            },
        }
        path = self._persist_path
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(f"Failed to save vector store to {path}: {e}") from e
        self._dirty = False

    def _load(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to load vector store from {path}: {e}") from e

        meta = data.get("metadata", {})
        self._created = str(meta.get("created", self._created))
        dimension = meta.get("embedding_dimension")
        self._dimension = int(dimension) if dimension else None

        skipped = 0
        for raw in data.get("documents", []):
            try:
                document = Document(
                    id=str(raw["id"]),
                    text=str(raw["text"]),
                    metadata=DocumentMetadata.from_dict(dict(raw.get("metadata", {}))),
                )
                vector = np.asarray(raw["embedding"], dtype=np.float64)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable stored document: %s", e)
                skipped += 1
                continue
            if self._dimension is None:
                self._dimension = int(vector.shape[0])
            if vector.shape[0] != self._dimension:
                logger.warning("Skipping stored document %s: wrong dimension", document.id)
                skipped += 1
                continue
            self._documents.append(document)
            self._vectors.append(vector)

        if not self._documents:
            self._dimension = None
        if skipped:
            logger.warning("Skipped %d unreadable documents in %s", skipped, path)
