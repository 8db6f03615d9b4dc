"""Retrieval orchestration: mode selection, context assembly, query flow."""

from coderag.rag.mode import is_provider_available, should_use_rag_only
from coderag.rag.orchestrator import CancellationToken, RagOrchestrator

__all__ = ["CancellationToken", "RagOrchestrator", "is_provider_available", "should_use_rag_only"]
