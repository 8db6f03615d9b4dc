"""Generation vs. RAG-only mode selection.

A pure decision over configuration plus one availability probe. Rows are
checked in order and the first match wins:

==============================================  ========
condition                                       RAG-only
==============================================  ========
caller forces RAG-only                          yes
``llm.rag_only_forced``                         yes
``llm.provider == "none"``                      yes
``llm.provider == "ollama"``                    no
``llm.rag_only_fallback`` and provider down     yes
otherwise, or the probe itself failed           no
==============================================  ========

Ollama is never demoted automatically: its generator reports a connection
problem with setup guidance instead.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from coderag.embed.ollama import DEFAULT_OLLAMA_URL, ollama_is_running
from coderag.exceptions import CoderagError

if TYPE_CHECKING:
    from collections.abc import Callable

    from coderag.config import CoderagConfig

__all__ = ["is_provider_available", "should_use_rag_only"]

logger = logging.getLogger(__name__)


def is_provider_available(config: CoderagConfig) -> bool:
    """Probe whether the configured generation provider can be used."""
    provider = config.llm.provider
    if provider == "none":
        return False
    if provider == "ollama":
        return ollama_is_running(config.llm.base_url or DEFAULT_OLLAMA_URL)
    if not config.llm.api_key_env:
        return True
    return bool(os.environ.get(config.llm.api_key_env))


def should_use_rag_only(
    config: CoderagConfig,
    *,
    force: bool = False,
    probe: Callable[[CoderagConfig], bool] = is_provider_available,
) -> bool:
    """Decide whether a query skips generation and returns retrieved context."""
    if force:
        logger.debug("RAG-only mode forced by caller")
        return True
    if config.llm.rag_only_forced:
        logger.debug("RAG-only mode forced by configuration")
        return True
    if config.llm.provider == "none":
        return True
    if config.llm.provider == "ollama":
        return False
    if config.llm.rag_only_fallback:
        try:
            available = probe(config)
        except (CoderagError, OSError) as e:
            logger.error("Provider availability check failed: %s", e)
            return False
        if not available:
            logger.info("Provider %s unavailable, falling back to RAG-only", config.llm.provider)
            return True
    return False
