"""Token counting for prompt budgets (tiktoken ``cl100k_base``)."""

from __future__ import annotations

import functools
import logging

import tiktoken

__all__ = ["count_tokens", "truncate_to_tokens"]

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=1)
def _get_encoding() -> tiktoken.Encoding:
    """Get the tiktoken encoding, lazily initialized and thread-safe."""
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str) -> int:
    """Count tokens in text using cl100k_base encoding."""
    if not text:
        return 0
    return len(_get_encoding().encode(text))


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Cut text down to at most ``max_tokens`` tokens."""
    if max_tokens <= 0:
        return ""
    encoding = _get_encoding()
    tokens = encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return encoding.decode(tokens[:max_tokens])
