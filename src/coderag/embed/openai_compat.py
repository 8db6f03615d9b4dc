"""OpenAI-compatible embedding provider.

Works with any server implementing the OpenAI /v1/embeddings API:
OpenAI, LiteLLM proxy, vLLM, Ollama (OpenAI-compat mode), etc.
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from coderag.embed.base import BaseEmbedder
from coderag.exceptions import EmbeddingError

if TYPE_CHECKING:
    from coderag.config import CoderagConfig

__all__ = ["OpenAICompatEmbedder"]

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAICompatEmbedder(BaseEmbedder):
    """Embedding provider using any OpenAI-compatible /v1/embeddings endpoint.

    Supports both cloud APIs (with API key) and local servers (without API key).

    Config fields used::

        [embedding]
        model = "text-embedding-3-small"
        provider = "openai"
        api_key_env = "OPENAI_API_KEY"   # env var name; empty = no auth
        base_url = ""                     # empty = https://api.openai.com/v1
        batch_size = 10
    """

    _DEFAULT_TIMEOUT = 120  # seconds

    def __init__(self, config: CoderagConfig) -> None:
        self._model = config.embedding.model
        self._base_url = (config.embedding.base_url or _DEFAULT_BASE_URL).rstrip("/")
        self._batch_size = config.embedding.batch_size
        self._dimension: int | None = None

        if self._batch_size < 1:
            raise EmbeddingError(f"batch_size must be >= 1, got {self._batch_size}")

        self._api_key_env = config.embedding.api_key_env
        self._api_key: str | None = None
        if self._api_key_env:
            self._api_key = os.environ.get(self._api_key_env)
            if not self._api_key:
                logger.warning(
                    "API key env var %s is not set; requests may fail", self._api_key_env
                )

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings in batches of ``batch_size``.

        Raises:
            EmbeddingError: If the API returns an error.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for batch_start in range(0, len(texts), self._batch_size):
            batch = texts[batch_start : batch_start + self._batch_size]
            vectors.extend(self._call_embeddings(batch))

        logger.info("Embedded %d texts via OpenAI-compatible API (%s)", len(vectors), self._model)
        return vectors

    def is_available(self) -> bool:
        """An authenticated endpoint counts as available once its key is set."""
        return not self._api_key_env or bool(self._api_key)

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

    def _call_embeddings(self, texts: list[str]) -> list[list[float]]:
        """Call the /v1/embeddings endpoint.

        Returns:
            List of embedding vectors, ordered by input index.

        Raises:
            EmbeddingError: On connection or API errors.
        """
        url = f"{self._base_url}/embeddings"
        payload = json.dumps({"model": self._model, "input": texts}).encode("utf-8")

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        req = Request(url, data=payload, headers=headers)

        try:
            with urlopen(req, timeout=self._DEFAULT_TIMEOUT) as resp:
                body = resp.read()
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise EmbeddingError(f"Embedding API returned invalid JSON from {url}") from e
        except HTTPError as e:
            raise EmbeddingError(f"Embedding API error (HTTP {e.code}): {e.reason}") from e
        except (ConnectionError, URLError, TimeoutError) as e:
            raise EmbeddingError(
                f"Embedding API not reachable at {self._base_url}. Error: {e}"
            ) from e

        # OpenAI includes "index" per item; sort to guarantee input order
        raw_items = data.get("data", [])
        if raw_items and all("index" in item for item in raw_items):
            raw_items = sorted(raw_items, key=lambda x: x["index"])

        try:
            embeddings: list[list[float]] = [item["embedding"] for item in raw_items]
        except (KeyError, TypeError) as e:
            raise EmbeddingError(
                f"Unexpected response format from {url}: missing 'embedding' field"
            ) from e

        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"API returned {len(embeddings)} embeddings for {len(texts)} inputs"
            )

        if embeddings and self._dimension is None:
            self._dimension = len(embeddings[0])

        return embeddings
