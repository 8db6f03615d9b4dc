"""Embedding engine: abstract provider interface, concrete providers, caching wrapper."""

from __future__ import annotations

from typing import TYPE_CHECKING

from coderag.embed.base import BaseEmbedder
from coderag.embed.cached import CachedEmbedder
from coderag.embed.ollama import OllamaEmbedder
from coderag.embed.openai_compat import OpenAICompatEmbedder
from coderag.registry import default_registry

if TYPE_CHECKING:
    from coderag.config import CoderagConfig

__all__ = ["BaseEmbedder", "CachedEmbedder", "OllamaEmbedder", "OpenAICompatEmbedder"]


def _create_chromadb(config: CoderagConfig) -> BaseEmbedder:
    # Deferred: importing chromadb's ONNX function is slow
    from coderag.embed.chromadb_embed import ChromaDBEmbedder

    return ChromaDBEmbedder(config)


# Register built-in embedding providers
default_registry.register("embedding", "ollama", lambda cfg: OllamaEmbedder(cfg))
default_registry.register("embedding", "openai", lambda cfg: OpenAICompatEmbedder(cfg))
default_registry.register("embedding", "chromadb", _create_chromadb)
