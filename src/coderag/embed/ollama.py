"""Ollama embedding provider using the /api/embed endpoint.

Default provider for coderag: a locally running Ollama with nomic-embed-text.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from coderag.embed.base import BaseEmbedder
from coderag.exceptions import EmbeddingError

if TYPE_CHECKING:
    from coderag.config import CoderagConfig

__all__ = ["DEFAULT_OLLAMA_URL", "OllamaEmbedder", "ollama_is_running"]

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
_PROBE_TIMEOUT = 2  # seconds


def ollama_is_running(base_url: str, timeout: float = _PROBE_TIMEOUT) -> bool:
    """Return True if ``GET {base_url}/api/version`` answers with HTTP 200."""
    url = f"{base_url.rstrip('/')}/api/version"
    try:
        with urlopen(Request(url), timeout=timeout) as resp:
            return resp.status == 200
    except (OSError, ValueError) as e:
        logger.debug("Ollama probe at %s failed: %s", url, e)
        return False


class OllamaEmbedder(BaseEmbedder):
    """Embedding provider using a local Ollama instance.

    Calls the ``/api/embed`` endpoint with batch support.
    Default model is ``nomic-embed-text`` (768 dimensions).

    Config fields used::

        [embedding]
        model = "nomic-embed-text"
        provider = "ollama"
        base_url = ""           # empty = http://localhost:11434
        batch_size = 10
    """

    _DEFAULT_TIMEOUT = 120  # seconds

    def __init__(self, config: CoderagConfig) -> None:
        self._model = config.embedding.model
        self._base_url = (config.embedding.base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self._batch_size = config.embedding.batch_size
        self._dimension: int | None = None

        if self._batch_size < 1:
            raise EmbeddingError(f"batch_size must be >= 1, got {self._batch_size}")

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings via Ollama in batches of ``batch_size``.

        Raises:
            EmbeddingError: If Ollama is not reachable or returns an error.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for batch_start in range(0, len(texts), self._batch_size):
            batch = texts[batch_start : batch_start + self._batch_size]
            vectors.extend(self._call_embed(batch))

        logger.info("Embedded %d texts via Ollama (%s)", len(vectors), self._model)
        return vectors

    def is_available(self) -> bool:
        return ollama_is_running(self._base_url)

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Warning:
            First access makes a network call to probe the model.
        """
        if self._dimension is None:
            vec = self.embed_query("dimension probe")
            self._dimension = len(vec)
        return self._dimension

    def _call_embed(self, texts: list[str]) -> list[list[float]]:
        """Call the Ollama /api/embed endpoint.

        Raises:
            EmbeddingError: On connection or API errors.
        """
        url = f"{self._base_url}/api/embed"
        payload = json.dumps({"model": self._model, "input": texts}).encode("utf-8")
        req = Request(url, data=payload, headers={"Content-Type": "application/json"})

        try:
            with urlopen(req, timeout=self._DEFAULT_TIMEOUT) as resp:
                body = resp.read()
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise EmbeddingError(f"Ollama returned invalid JSON from {url}") from e
        except HTTPError as e:
            raise EmbeddingError(f"Ollama API error (HTTP {e.code}): {e.reason}") from e
        except (ConnectionError, URLError, TimeoutError) as e:
            raise EmbeddingError(
                f"Ollama not reachable at {self._base_url}. Is Ollama running? Error: {e}"
            ) from e

        embeddings: list[list[float]] = data.get("embeddings", [])
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Ollama returned {len(embeddings)} embeddings for {len(texts)} inputs"
            )

        if embeddings and self._dimension is None:
            self._dimension = len(embeddings[0])

        return embeddings
