"""Caching wrapper around any embedding provider.

Looks up each text under ``embedding:{model}:{sha256(text)}`` before calling
the provider, embeds only the misses in batches, and writes fresh vectors
back to both cache tiers.

When the provider is unreachable and ``random_fallback`` is on, misses get
uniform random vectors in [-1, 1] instead. Those vectors keep indexing
alive but carry no meaning, so they are never cached, always logged at
warning level, and counted in :attr:`CachedEmbedder.degraded_count`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from coderag.cache import embedding_cache_key
from coderag.embed.base import BaseEmbedder
from coderag.exceptions import EmbeddingError

if TYPE_CHECKING:
    from coderag.cache import CacheService

__all__ = ["CachedEmbedder"]

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 24 * 60 * 60 * 1000


class CachedEmbedder(BaseEmbedder):
    """Adds per-text caching, batching and degraded fallback to an embedder.

    Args:
        inner: The real embedding provider.
        cache: Shared cache service, or ``None`` to disable caching.
        batch_size: Texts per provider call.
        ttl_ms: Lifetime of cached vectors.
        persistent: Also write vectors to the disk tier.
        random_fallback: Substitute random vectors when ``inner`` is unreachable.
        fallback_dimension: Dimension of fallback vectors when ``inner`` has
            never reported one.
        seed: Seed for the fallback generator, for tests.
    """

    def __init__(
        self,
        inner: BaseEmbedder,
        cache: CacheService | None = None,
        *,
        batch_size: int = 10,
        ttl_ms: int = DEFAULT_TTL_MS,
        persistent: bool = True,
        random_fallback: bool = True,
        fallback_dimension: int = 384,
        seed: int | None = None,
    ) -> None:
        if batch_size < 1:
            raise EmbeddingError(f"batch_size must be >= 1, got {batch_size}")
        self._inner = inner
        self._cache = cache
        self._batch_size = batch_size
        self._ttl_ms = ttl_ms
        self._persistent = persistent
        self._random_fallback = random_fallback
        self._fallback_dimension = fallback_dimension
        self._rng = np.random.default_rng(seed)
        self._known_dimension: int | None = None
        self.degraded_count = 0

    @property
    def inner(self) -> BaseEmbedder:
        return self._inner

    @property
    def model_name(self) -> str:
        return self._inner.model_name

    @property
    def dimension(self) -> int:
        if self._known_dimension is not None:
            return self._known_dimension
        try:
            return self._inner.dimension
        except EmbeddingError:
            if not self._random_fallback:
                raise
            return self._fallback_dimension

    def is_available(self) -> bool:
        return self._inner.is_available()

    def embed_query(self, text: str) -> list[float]:
        """Embed a search query. Queries never receive fallback vectors.

        Raises:
            EmbeddingError: If the provider fails.
        """
        return self._embed_all([text], fallback=False)[0]

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed texts, serving cached vectors where possible.

        Raises:
            EmbeddingError: If the provider fails and no fallback applies.
        """
        return self._embed_all(texts, fallback=self._random_fallback)

    def _embed_all(self, texts: list[str], *, fallback: bool) -> list[list[float]]:
        if not texts:
            return []

        results: list[list[float] | None] = [None] * len(texts)
        missing: list[int] = []
        for i, text in enumerate(texts):
            cached = self._lookup(text)
            if cached is None:
                missing.append(i)
            else:
                results[i] = cached

        if len(missing) < len(texts):
            logger.debug(
                "Embedding cache: %d hits, %d misses", len(texts) - len(missing), len(missing)
            )

        for batch_start in range(0, len(missing), self._batch_size):
            batch_idx = missing[batch_start : batch_start + self._batch_size]
            batch = [texts[i] for i in batch_idx]
            for i, vector in zip(batch_idx, self._embed_batch(batch, fallback), strict=True):
                results[i] = vector

        return [vec for vec in results if vec is not None]

    def _embed_batch(self, batch: list[str], fallback: bool) -> list[list[float]]:
        try:
            vectors = self._inner.embed_texts(batch)
        except EmbeddingError as e:
            if not fallback or self._inner.is_available():
                raise
            logger.warning(
                "Embedding provider unavailable (%s); using random vectors for %d texts. "
                "Search quality is degraded until the provider is reachable.",
                e,
                len(batch),
            )
            self.degraded_count += len(batch)
            return [self._random_vector() for _ in batch]

        if vectors:
            self._known_dimension = len(vectors[0])
        for text, vector in zip(batch, vectors, strict=True):
            self._store(text, vector)
        return vectors

    def _random_vector(self) -> list[float]:
        dim = self._known_dimension or self._fallback_dimension
        return self._rng.uniform(-1.0, 1.0, size=dim).tolist()

    def _lookup(self, text: str) -> list[float] | None:
        if self._cache is None:
            return None
        value = self._cache.get(embedding_cache_key(self.model_name, text))
        if isinstance(value, list):
            return value
        return None

    def _store(self, text: str, vector: list[float]) -> None:
        if self._cache is None:
            return
        self._cache.set(
            embedding_cache_key(self.model_name, text),
            list(vector),
            ttl_ms=self._ttl_ms,
            persistent=self._persistent,
        )
