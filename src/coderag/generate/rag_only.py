"""Placeholder generator for RAG-only mode: never calls a model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from coderag.generate.base import BaseGenerator
from coderag.types import ChatResponse

if TYPE_CHECKING:
    from coderag.types import ChatMessage

__all__ = ["RAG_ONLY_NOTICE", "RagOnlyGenerator"]

RAG_ONLY_NOTICE = (
    "RAG-Only mode is active. No LLM is being used. Please check the RAG results instead."
)


class RagOnlyGenerator(BaseGenerator):
    """Answers every request with a fixed notice.

    Registered as the ``none`` generation provider so configuration can
    select it like any other backend.
    """

    @property
    def name(self) -> str:
        return "RAG-Only Mode"

    def is_available(self) -> bool:
        return False

    def chat(self, messages: list[ChatMessage]) -> ChatResponse:
        return ChatResponse(content=RAG_ONLY_NOTICE, done=True)
