"""Abstract base class for embedding providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

__all__ = ["BaseEmbedder"]

logger = logging.getLogger(__name__)


class BaseEmbedder(ABC):
    """Base class for all embedding providers.

    Subclasses turn texts into fixed-dimension vectors.
    """

    @abstractmethod
    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a list of texts, in input order.

        Args:
            texts: Texts to embed.

        Returns:
            One vector per input text.

        Raises:
            EmbeddingError: If embedding generation fails.
        """

    def embed_query(self, text: str) -> list[float]:
        """Generate an embedding for a search query.

        Raises:
            EmbeddingError: If embedding generation fails.
        """
        return self.embed_texts([text])[0]

    def is_available(self) -> bool:
        """Cheap reachability probe. Local providers are always available."""
        return True

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Identifier of the embedding model, used in cache keys."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimensionality of the embedding vectors."""
