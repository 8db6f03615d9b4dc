"""Abstract base class for chunking strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from coderag.config import ChunkConfig
    from coderag.types import Chunk

__all__ = ["BaseChunker"]

logger = logging.getLogger(__name__)


class BaseChunker(ABC):
    """Base class for all chunking strategies.

    Subclasses split file text into a list of ``Chunk`` objects.
    """

    @abstractmethod
    def chunk(self, text: str, config: ChunkConfig) -> list[Chunk]:
        """Split file text into chunks.

        Args:
            text: Full file contents.
            config: Chunk settings (size, overlap, minimum size).

        Returns:
            Chunks in non-decreasing ``start_line`` order.

        Raises:
            ChunkError: If the settings are invalid or chunking fails.
        """
