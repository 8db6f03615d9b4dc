"""ChromaDB built-in embedding provider using ONNX runtime.

Runs all-MiniLM-L6-v2 (384 dimensions) locally: no GPU, no server, no API
key. The model is downloaded on first use (~80MB).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chromadb.utils.embedding_functions import DefaultEmbeddingFunction

from coderag.embed.base import BaseEmbedder
from coderag.exceptions import EmbeddingError

if TYPE_CHECKING:
    from coderag.config import CoderagConfig

__all__ = ["ChromaDBEmbedder"]

logger = logging.getLogger(__name__)


class ChromaDBEmbedder(BaseEmbedder):
    """Embedding provider using ChromaDB's built-in ONNX embedding function.

    Config fields used::

        [embedding]
        provider = "chromadb"
        model = "all-MiniLM-L6-v2"
    """

    _FIXED_MODEL = "all-MiniLM-L6-v2"

    def __init__(self, config: CoderagConfig) -> None:
        if config.embedding.model and config.embedding.model != self._FIXED_MODEL:
            logger.warning(
                "ChromaDB provider only supports %s, ignoring model=%r",
                self._FIXED_MODEL,
                config.embedding.model,
            )

        try:
            self._ef = DefaultEmbeddingFunction()
        except Exception as e:
            raise EmbeddingError(f"Failed to initialize ChromaDB embedding function: {e}") from e

        self._dimension: int | None = None
        logger.info("ChromaDBEmbedder initialized (ONNX %s)", self._FIXED_MODEL)

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            vectors = self._ef(texts)
        except Exception as e:
            raise EmbeddingError(f"ChromaDB embedding failed: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"ChromaDB returned {len(vectors)} embeddings for {len(texts)} inputs"
            )

        results = [[float(v) for v in vec] for vec in vectors]
        if self._dimension is None:
            self._dimension = len(results[0])

        logger.info("Embedded %d texts via ChromaDB (ONNX)", len(results))
        return results

    @property
    def model_name(self) -> str:
        return self._FIXED_MODEL

    @property
    def dimension(self) -> int:
        """Return the dimensionality of the embedding vectors (384 for MiniLM)."""
        if self._dimension is None:
            vec = self.embed_query("dimension probe")
            self._dimension = len(vec)
        return self._dimension
