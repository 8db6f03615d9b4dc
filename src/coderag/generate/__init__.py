"""Generation engine: chat providers and the RAG-only placeholder."""

from __future__ import annotations

from coderag.generate.base import BaseGenerator
from coderag.generate.ollama import OllamaGenerator
from coderag.generate.openai_compat import OpenAICompatGenerator
from coderag.generate.rag_only import RagOnlyGenerator
from coderag.registry import default_registry

__all__ = ["BaseGenerator", "OllamaGenerator", "OpenAICompatGenerator", "RagOnlyGenerator"]

# Register built-in generation providers
default_registry.register("generation", "ollama", lambda cfg: OllamaGenerator(cfg))
default_registry.register("generation", "openai", lambda cfg: OpenAICompatGenerator(cfg))
default_registry.register("generation", "none", lambda cfg: RagOnlyGenerator())
