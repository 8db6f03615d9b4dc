"""Abstract base class for chat generation providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from coderag.types import ChatMessage, ChatResponse

__all__ = ["BaseGenerator"]

logger = logging.getLogger(__name__)


class BaseGenerator(ABC):
    """Base class for all generation providers.

    Streaming callbacks receive :class:`ChatResponse` objects whose
    ``content`` is the cumulative text so far; the last one has
    ``done=True``.
    """

    @abstractmethod
    def chat(self, messages: list[ChatMessage]) -> ChatResponse:
        """Send a chat completion request and wait for the full answer.

        Raises:
            GenerationError: If the backend is unreachable or rejects the call.
        """

    def stream_chat(
        self,
        messages: list[ChatMessage],
        callback: Callable[[ChatResponse], None],
    ) -> None:
        """Stream a chat completion. The default delivers :meth:`chat` in one piece.

        Raises:
            GenerationError: If the backend is unreachable or rejects the call.
        """
        callback(self.chat(messages))

    def is_available(self) -> bool:
        """Cheap reachability probe."""
        return True

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""
