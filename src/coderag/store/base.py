"""Abstract base class for vector stores."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from coderag.types import DocumentWithEmbedding, SearchResult

__all__ = ["BaseStore"]

logger = logging.getLogger(__name__)


class BaseStore(ABC):
    """Base class for all vector stores.

    Subclasses persist embedded documents and support similarity search.
    Every embedding in one store shares a single dimension.
    """

    @property
    def dimension(self) -> int | None:
        """Dimension shared by the stored embeddings, or ``None`` while empty."""
        return None

    @abstractmethod
    def add_documents(self, docs: list[DocumentWithEmbedding]) -> int:
        """Append embedded documents to the store.

        Args:
            docs: Documents with embeddings. Ids are not checked for uniqueness.

        Returns:
            Number of documents added.

        Raises:
            DimensionMismatchError: If any embedding has the wrong dimension.
                Nothing is added in that case.
            StoreError: If storage fails.
        """

    @abstractmethod
    def similarity_search(
        self,
        embedding: Sequence[float],
        *,
        limit: int = 10,
        min_score: float | None = None,
        filter: Mapping[str, Any] | None = None,  # noqa: A002
    ) -> list[SearchResult]:
        """Score every stored document against ``embedding``.

        Args:
            embedding: Query vector.
            limit: Maximum number of results.
            min_score: Drop results scoring below this.
            filter: Metadata filter; see :func:`coderag.store.filters.matches_filter`.

        Returns:
            Results in non-increasing score order, at most ``limit`` long.

        Raises:
            DimensionMismatchError: If the query dimension differs from the store's.
            StoreError: If search fails.
        """

    @abstractmethod
    def delete_documents(self, filter: Mapping[str, Any] | None = None) -> int:  # noqa: A002
        """Delete documents matching ``filter``; an empty filter deletes everything.

        Returns:
            Number of documents deleted.

        Raises:
            StoreError: If deletion fails.
        """

    @abstractmethod
    def get_document_count(self) -> int:
        """Return the total number of documents in the store."""

    def close(self) -> None:
        """Flush and release resources. The default does nothing."""

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group several mutations; persistent stores may write once at exit.

        The default applies every mutation immediately.
        """
        yield
