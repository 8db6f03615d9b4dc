"""Tests for coderag.embed: providers and the caching wrapper."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest

from coderag.cache import CacheService, embedding_cache_key
from coderag.config import CoderagConfig
from coderag.embed import BaseEmbedder, CachedEmbedder, OllamaEmbedder, OpenAICompatEmbedder
from coderag.embed.chromadb_embed import ChromaDBEmbedder
from coderag.embed.ollama import ollama_is_running
from coderag.exceptions import EmbeddingError

if TYPE_CHECKING:
    from pathlib import Path

# --- Helpers ---

_FAKE_VECTOR = [0.1, 0.2, 0.3, 0.4, 0.5]


def _ollama_response(embeddings: list[list[float]]) -> bytes:
    """Build a mock Ollama /api/embed response body."""
    return json.dumps({"embeddings": embeddings}).encode("utf-8")


def _openai_response(embeddings: list[list[float]]) -> bytes:
    """Build a mock OpenAI /v1/embeddings response body."""
    data = [{"object": "embedding", "index": i, "embedding": e} for i, e in enumerate(embeddings)]
    return json.dumps({"object": "list", "data": data, "model": "test"}).encode("utf-8")


class _FakeResponse:
    """Minimal mock for urllib.request.urlopen return value."""

    def __init__(self, data: bytes, status: int = 200) -> None:
        self._data = data
        self.status = status

    def read(self) -> bytes:
        return self._data

    def __enter__(self) -> _FakeResponse:
        return self

    def __exit__(self, *args: object) -> None:
        pass


class _FakeEmbedder(BaseEmbedder):
    """In-process embedder that counts calls and can be switched off."""

    def __init__(self, dim: int = 3, *, available: bool = True, fail: bool = False) -> None:
        self.dim = dim
        self.available = available
        self.fail = fail
        self.calls: list[list[str]] = []

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("provider down")
        return [[float(len(t))] + [0.0] * (self.dim - 1) for t in texts]

    def is_available(self) -> bool:
        return self.available

    @property
    def model_name(self) -> str:
        return "fake"

    @property
    def dimension(self) -> int:
        if self.fail:
            raise EmbeddingError("provider down")
        return self.dim


def _ollama_config(**overrides: object) -> CoderagConfig:
    config = CoderagConfig()
    for key, value in overrides.items():
        setattr(config.embedding, key, value)
    return config


# --- OllamaEmbedder ---


class TestOllamaEmbedder:
    def test_embeds_texts(self):
        embedder = OllamaEmbedder(_ollama_config())
        with patch(
            "coderag.embed.ollama.urlopen",
            return_value=_FakeResponse(_ollama_response([_FAKE_VECTOR, _FAKE_VECTOR])),
        ):
            result = embedder.embed_texts(["a", "b"])
        assert result == [_FAKE_VECTOR, _FAKE_VECTOR]

    def test_empty_input_no_call(self):
        embedder = OllamaEmbedder(_ollama_config())
        with patch("coderag.embed.ollama.urlopen") as mock_urlopen:
            assert embedder.embed_texts([]) == []
        mock_urlopen.assert_not_called()

    def test_batches_requests(self):
        embedder = OllamaEmbedder(_ollama_config(batch_size=2))
        responses = [
            _FakeResponse(_ollama_response([_FAKE_VECTOR, _FAKE_VECTOR])),
            _FakeResponse(_ollama_response([_FAKE_VECTOR])),
        ]
        with patch("coderag.embed.ollama.urlopen", side_effect=responses) as mock_urlopen:
            result = embedder.embed_texts(["a", "b", "c"])
        assert len(result) == 3
        assert mock_urlopen.call_count == 2

    def test_request_payload(self):
        embedder = OllamaEmbedder(_ollama_config(model="nomic-embed-text"))
        with patch(
            "coderag.embed.ollama.urlopen",
            return_value=_FakeResponse(_ollama_response([_FAKE_VECTOR])),
        ) as mock_urlopen:
            embedder.embed_texts(["hello"])
        req = mock_urlopen.call_args[0][0]
        assert req.full_url == "http://localhost:11434/api/embed"
        assert json.loads(req.data) == {"model": "nomic-embed-text", "input": ["hello"]}

    def test_custom_base_url(self):
        embedder = OllamaEmbedder(_ollama_config(base_url="http://gpu-box:11434/"))
        with patch(
            "coderag.embed.ollama.urlopen",
            return_value=_FakeResponse(_ollama_response([_FAKE_VECTOR])),
        ) as mock_urlopen:
            embedder.embed_texts(["x"])
        assert mock_urlopen.call_args[0][0].full_url == "http://gpu-box:11434/api/embed"

    def test_connection_error_raises(self):
        embedder = OllamaEmbedder(_ollama_config())
        with (
            patch("coderag.embed.ollama.urlopen", side_effect=URLError("refused")),
            pytest.raises(EmbeddingError, match="not reachable"),
        ):
            embedder.embed_texts(["x"])

    def test_http_error_raises(self):
        embedder = OllamaEmbedder(_ollama_config())
        error = HTTPError("http://x", 404, "model not found", {}, None)  # type: ignore[arg-type]
        with (
            patch("coderag.embed.ollama.urlopen", side_effect=error),
            pytest.raises(EmbeddingError, match="HTTP 404"),
        ):
            embedder.embed_texts(["x"])

    def test_count_mismatch_raises(self):
        embedder = OllamaEmbedder(_ollama_config())
        with (
            patch(
                "coderag.embed.ollama.urlopen",
                return_value=_FakeResponse(_ollama_response([_FAKE_VECTOR])),
            ),
            pytest.raises(EmbeddingError, match="1 embeddings for 2 inputs"),
        ):
            embedder.embed_texts(["a", "b"])

    def test_dimension_learned_from_response(self):
        embedder = OllamaEmbedder(_ollama_config())
        with patch(
            "coderag.embed.ollama.urlopen",
            return_value=_FakeResponse(_ollama_response([_FAKE_VECTOR])),
        ) as mock_urlopen:
            embedder.embed_texts(["a"])
            assert embedder.dimension == 5
        assert mock_urlopen.call_count == 1

    def test_invalid_batch_size(self):
        with pytest.raises(EmbeddingError, match="batch_size"):
            OllamaEmbedder(_ollama_config(batch_size=0))


class TestOllamaProbe:
    def test_running(self):
        with patch("coderag.embed.ollama.urlopen", return_value=_FakeResponse(b"{}")):
            assert ollama_is_running("http://localhost:11434") is True

    def test_not_running(self):
        with patch("coderag.embed.ollama.urlopen", side_effect=URLError("refused")):
            assert ollama_is_running("http://localhost:11434") is False

    def test_non_200(self):
        with patch("coderag.embed.ollama.urlopen", return_value=_FakeResponse(b"", status=503)):
            assert ollama_is_running("http://localhost:11434") is False

    def test_probe_url(self):
        with patch(
            "coderag.embed.ollama.urlopen", return_value=_FakeResponse(b"{}")
        ) as mock_urlopen:
            ollama_is_running("http://host:1/")
        assert mock_urlopen.call_args[0][0].full_url == "http://host:1/api/version"


# --- OpenAICompatEmbedder ---


class TestOpenAICompatEmbedder:
    def test_embeds_texts_in_index_order(self):
        embedder = OpenAICompatEmbedder(_ollama_config(provider="openai"))
        body = json.dumps(
            {
                "data": [
                    {"index": 1, "embedding": [2.0]},
                    {"index": 0, "embedding": [1.0]},
                ]
            }
        ).encode("utf-8")
        with patch("coderag.embed.openai_compat.urlopen", return_value=_FakeResponse(body)):
            assert embedder.embed_texts(["a", "b"]) == [[1.0], [2.0]]

    def test_auth_header_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TEST_EMBED_KEY", "sk-test")
        embedder = OpenAICompatEmbedder(
            _ollama_config(provider="openai", api_key_env="TEST_EMBED_KEY")
        )
        with patch(
            "coderag.embed.openai_compat.urlopen",
            return_value=_FakeResponse(_openai_response([_FAKE_VECTOR])),
        ) as mock_urlopen:
            embedder.embed_texts(["x"])
        req = mock_urlopen.call_args[0][0]
        assert req.get_header("Authorization") == "Bearer sk-test"
        assert req.full_url == "https://api.openai.com/v1/embeddings"

    def test_missing_key_unavailable(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("TEST_EMBED_KEY", raising=False)
        embedder = OpenAICompatEmbedder(
            _ollama_config(provider="openai", api_key_env="TEST_EMBED_KEY")
        )
        assert embedder.is_available() is False

    def test_local_server_available_without_key(self):
        embedder = OpenAICompatEmbedder(
            _ollama_config(provider="openai", base_url="http://localhost:8000/v1")
        )
        assert embedder.is_available() is True

    def test_missing_embedding_field_raises(self):
        embedder = OpenAICompatEmbedder(_ollama_config(provider="openai"))
        body = json.dumps({"data": [{"index": 0}]}).encode("utf-8")
        with (
            patch("coderag.embed.openai_compat.urlopen", return_value=_FakeResponse(body)),
            pytest.raises(EmbeddingError, match="missing 'embedding'"),
        ):
            embedder.embed_texts(["x"])

    def test_connection_error_raises(self):
        embedder = OpenAICompatEmbedder(_ollama_config(provider="openai"))
        with (
            patch("coderag.embed.openai_compat.urlopen", side_effect=URLError("down")),
            pytest.raises(EmbeddingError, match="not reachable"),
        ):
            embedder.embed_texts(["x"])


# --- ChromaDBEmbedder ---


def _mock_ef(texts: list[str]) -> list[list[float]]:
    return [[0.5] * 384 for _ in texts]


class TestChromaDBEmbedder:
    def _make_embedder(self) -> ChromaDBEmbedder:
        config = CoderagConfig()
        config.embedding.provider = "chromadb"
        config.embedding.model = "all-MiniLM-L6-v2"
        mock_ef = MagicMock(side_effect=_mock_ef)
        with patch(
            "coderag.embed.chromadb_embed.DefaultEmbeddingFunction",
            return_value=mock_ef,
        ):
            return ChromaDBEmbedder(config)

    def test_embeds_texts(self):
        result = self._make_embedder().embed_texts(["a", "b"])
        assert len(result) == 2
        assert len(result[0]) == 384

    def test_dimension(self):
        assert self._make_embedder().dimension == 384

    def test_model_name_fixed(self):
        assert self._make_embedder().model_name == "all-MiniLM-L6-v2"

    def test_ef_failure_wrapped(self):
        embedder = self._make_embedder()
        embedder._ef = MagicMock(side_effect=RuntimeError("onnx"))
        with pytest.raises(EmbeddingError, match="ChromaDB embedding failed"):
            embedder.embed_texts(["x"])


# --- CachedEmbedder ---


class TestCachedEmbedder:
    def test_cache_hit_skips_provider(self):
        inner = _FakeEmbedder()
        embedder = CachedEmbedder(inner, CacheService())
        first = embedder.embed_texts(["alpha", "beta"])
        second = embedder.embed_texts(["alpha", "beta"])
        assert first == second
        assert inner.calls == [["alpha", "beta"]]

    def test_only_misses_sent(self):
        inner = _FakeEmbedder()
        embedder = CachedEmbedder(inner, CacheService())
        embedder.embed_texts(["alpha"])
        embedder.embed_texts(["alpha", "beta", "gamma"])
        assert inner.calls[-1] == ["beta", "gamma"]

    def test_order_preserved_with_mixed_hits(self):
        inner = _FakeEmbedder()
        embedder = CachedEmbedder(inner, CacheService())
        embedder.embed_texts(["bb"])
        result = embedder.embed_texts(["a", "bb", "ccc"])
        assert [v[0] for v in result] == [1.0, 2.0, 3.0]

    def test_cache_key_uses_model(self):
        cache = CacheService()
        CachedEmbedder(_FakeEmbedder(), cache).embed_texts(["x"])
        assert embedding_cache_key("fake", "x") in cache

    def test_persistent_vectors_on_disk(self, tmp_path: Path):
        CachedEmbedder(_FakeEmbedder(), CacheService(tmp_path)).embed_texts(["x"])
        inner = _FakeEmbedder()
        CachedEmbedder(inner, CacheService(tmp_path)).embed_texts(["x"])
        assert inner.calls == []

    def test_batching(self):
        inner = _FakeEmbedder()
        CachedEmbedder(inner, None, batch_size=2).embed_texts(["a", "b", "c", "d", "e"])
        assert [len(c) for c in inner.calls] == [2, 2, 1]

    def test_invalid_batch_size(self):
        with pytest.raises(EmbeddingError, match="batch_size"):
            CachedEmbedder(_FakeEmbedder(), batch_size=0)

    def test_random_fallback_when_unavailable(self):
        inner = _FakeEmbedder(available=False, fail=True)
        cache = CacheService()
        embedder = CachedEmbedder(inner, cache, fallback_dimension=8, seed=1)
        vectors = embedder.embed_texts(["a", "b"])
        assert len(vectors) == 2
        assert all(len(v) == 8 for v in vectors)
        assert all(-1.0 <= x <= 1.0 for v in vectors for x in v)
        assert embedder.degraded_count == 2
        # fallback vectors are never cached
        assert len(cache) == 0

    def test_no_fallback_when_provider_reachable(self):
        inner = _FakeEmbedder(available=True, fail=True)
        embedder = CachedEmbedder(inner, CacheService())
        with pytest.raises(EmbeddingError):
            embedder.embed_texts(["a"])

    def test_fallback_disabled_raises(self):
        inner = _FakeEmbedder(available=False, fail=True)
        embedder = CachedEmbedder(inner, CacheService(), random_fallback=False)
        with pytest.raises(EmbeddingError):
            embedder.embed_texts(["a"])

    def test_query_never_falls_back(self):
        inner = _FakeEmbedder(available=False, fail=True)
        embedder = CachedEmbedder(inner, CacheService())
        with pytest.raises(EmbeddingError):
            embedder.embed_query("where is the config loaded")
        assert embedder.degraded_count == 0

    def test_fallback_uses_known_dimension(self):
        inner = _FakeEmbedder(dim=5)
        embedder = CachedEmbedder(inner, None, fallback_dimension=8)
        embedder.embed_texts(["a"])
        inner.fail = True
        inner.available = False
        assert len(embedder.embed_texts(["b"])[0]) == 5

    def test_dimension_falls_back_to_config(self):
        embedder = CachedEmbedder(_FakeEmbedder(fail=True), None, fallback_dimension=384)
        assert embedder.dimension == 384

    def test_delegates_model_and_availability(self):
        inner = _FakeEmbedder(available=False)
        embedder = CachedEmbedder(inner)
        assert embedder.model_name == "fake"
        assert embedder.is_available() is False
        assert embedder.inner is inner
