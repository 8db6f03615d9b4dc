"""ChromaDB vector store using PersistentClient.

Stores embedded documents with flattened metadata in a cosine-space
collection. Uses file-based persistence, no server required.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import chromadb

from coderag.exceptions import DimensionMismatchError, InputError, StoreError
from coderag.store.base import BaseStore
from coderag.store.filters import SIMILARITY_MODES, normalize_filter_key
from coderag.types import Document, DocumentMetadata, SearchResult

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from coderag.types import DocumentWithEmbedding

__all__ = ["ChromaStore", "to_where"]

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


def to_where(filter: Mapping[str, Any] | None) -> dict[str, Any] | None:  # noqa: A002
    """Translate a store filter into a ChromaDB ``where`` clause.

    ``metadata.``-prefixed keys are flattened; list values become ``$in``;
    several keys are combined with ``$and``.
    """
    if not filter:
        return None
    clauses: list[dict[str, Any]] = []
    for key, value in filter.items():
        field = normalize_filter_key(key)
        if field.startswith("metadata."):
            field = field[len("metadata.") :]
        if "." in field:
            raise StoreError(f"ChromaStore cannot filter on nested key {key!r}")
        if isinstance(value, (list, tuple, set, frozenset)):
            clauses.append({field: {"$in": list(value)}})
        else:
            clauses.append({field: value})
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _flatten_metadata(metadata: DocumentMetadata) -> dict[str, Any]:
    """ChromaDB metadata values must be scalars; everything else is stringified."""
    flat: dict[str, Any] = {}
    for key, value in metadata.to_dict().items():
        if value is None:
            continue
        flat[key] = value if isinstance(value, _SCALAR_TYPES) else str(value)
    return flat


class ChromaStore(BaseStore):
    """Vector store backed by ChromaDB with file-based persistence.

    Chroma reports cosine *distance* (``1 - cos``); scores are mapped back to
    cosine similarity and then folded like :class:`JsonStore` does. Every
    matching document is scored, so results agree with the brute-force store.

    Usage::

        store = ChromaStore(persist_path=project.index_dir / "chroma")
        store.add_documents(embedded_docs)
        results = store.similarity_search(query_vec, limit=5)
    """

    def __init__(
        self,
        persist_path: Path,
        collection_name: str = "coderag",
        *,
        similarity: str = "absolute",
    ) -> None:
        if similarity not in SIMILARITY_MODES:
            raise StoreError(
                f"Unknown similarity mode {similarity!r}; expected one of {SIMILARITY_MODES}"
            )
        self._persist_path = persist_path
        self._collection_name = collection_name
        self._similarity = similarity
        self._dimension: int | None = None

        try:
            self._client = chromadb.PersistentClient(path=str(persist_path))
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as e:
            raise StoreError(f"Failed to initialize ChromaDB at {persist_path}: {e}") from e

        logger.info(
            "ChromaDB store initialized at %s (collection=%s)", persist_path, collection_name
        )

    @property
    def dimension(self) -> int | None:
        return self._stored_dimension()

    def add_documents(self, docs: list[DocumentWithEmbedding]) -> int:
        if not docs:
            return 0

        expected = self._stored_dimension() or len(docs[0].embedding)
        if expected == 0:
            raise InputError(f"Document {docs[0].document.id} has an empty embedding")
        for doc in docs:
            if len(doc.embedding) != expected:
                raise DimensionMismatchError(expected, len(doc.embedding))

        try:
            self._collection.add(
                ids=[d.document.id for d in docs],
                embeddings=[list(d.embedding) for d in docs],  # type: ignore[arg-type]
                documents=[d.document.text for d in docs],
                metadatas=[_flatten_metadata(d.document.metadata) for d in docs],  # type: ignore[arg-type]
            )
        except Exception as e:
            raise StoreError(f"Failed to add {len(docs)} documents: {e}") from e

        self._dimension = expected
        logger.info("Added %d documents to %s", len(docs), self._collection_name)
        return len(docs)

    def similarity_search(
        self,
        embedding: Sequence[float],
        *,
        limit: int = 10,
        min_score: float | None = None,
        filter: Mapping[str, Any] | None = None,  # noqa: A002
    ) -> list[SearchResult]:
        total = self.get_document_count()
        if total == 0 or limit <= 0:
            return []

        stored = self._stored_dimension()
        if stored is not None and len(embedding) != stored:
            raise DimensionMismatchError(stored, len(embedding))

        where = to_where(filter)
        try:
            results = self._query(embedding, total, where)
        except Exception as e:
            if where is None or "NotEnough" not in type(e).__name__:
                raise StoreError(f"Search failed: {e}") from e
            # Some ChromaDB versions raise when n_results exceeds the filtered
            # match count; re-query with the exact count.
            logger.debug("Filtered search failed, retrying: %s", e)
            try:
                match_count = len(self._collection.get(where=where, include=[])["ids"])  # type: ignore[arg-type]
                if match_count == 0:
                    return []
                results = self._query(embedding, match_count, where)
            except Exception as retry_err:
                raise StoreError(f"Search failed: {retry_err}") from retry_err

        raw_ids = results.get("ids")
        raw_docs = results.get("documents")
        raw_metas = results.get("metadatas")
        raw_dists = results.get("distances")
        if not raw_ids or not raw_docs or not raw_metas or not raw_dists:
            return []

        search_results: list[SearchResult] = []
        for doc_id, text, meta, dist in zip(
            raw_ids[0], raw_docs[0], raw_metas[0], raw_dists[0], strict=True
        ):
            cosine = 1.0 - float(dist)
            score = abs(cosine) if self._similarity == "absolute" else max(cosine, 0.0)
            score = min(score, 1.0)
            if min_score is not None and score < min_score:
                continue
            document = Document(
                id=doc_id,
                text=text or "",
                metadata=DocumentMetadata.from_dict(dict(meta or {})),
            )
            search_results.append(SearchResult(document=document, score=score))

        search_results.sort(key=lambda r: r.score, reverse=True)
        return search_results[:limit]

    def delete_documents(self, filter: Mapping[str, Any] | None = None) -> int:  # noqa: A002
        try:
            existing = self._collection.get(where=to_where(filter), include=[])  # type: ignore[arg-type]
            ids = existing["ids"]
            if ids:
                self._collection.delete(ids=ids)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to delete documents: {e}") from e

        if ids and self.get_document_count() == 0:
            self._dimension = None
        logger.info("Deleted %d documents (filter=%s)", len(ids), dict(filter or {}))
        return len(ids)

    def get_document_count(self) -> int:
        try:
            return self._collection.count()
        except Exception as e:
            raise StoreError(f"Failed to count documents: {e}") from e

    def _query(
        self, embedding: Sequence[float], n_results: int, where: dict[str, Any] | None
    ) -> Any:
        return self._collection.query(
            query_embeddings=[list(embedding)],  # type: ignore[arg-type]
            n_results=n_results,
            where=where,  # type: ignore[arg-type]
            include=["documents", "metadatas", "distances"],
        )

    def _stored_dimension(self) -> int | None:
        if self._dimension is not None:
            return self._dimension
        try:
            sample = self._collection.get(limit=1, include=["embeddings"])
        except Exception as e:
            raise StoreError(f"Failed to inspect collection: {e}") from e
        embeddings = sample.get("embeddings")
        if embeddings is not None and len(embeddings) > 0:
            self._dimension = len(embeddings[0])
        return self._dimension
