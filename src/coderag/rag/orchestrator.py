"""Retrieval orchestrator: query -> embedding -> search -> answer.

Every query ends in one :class:`QueryOutcome`. Provider and store failures
turn into user-facing messages; :meth:`RagOrchestrator.query` never raises
for them.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from coderag.embed.ollama import DEFAULT_OLLAMA_URL
from coderag.exceptions import CoderagError, InputError, ProviderError
from coderag.rag.context import build_messages, render_no_results, render_rag_only
from coderag.rag.mode import is_provider_available, should_use_rag_only
from coderag.types import QueryOutcome, QueryResult

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from coderag.config import CoderagConfig
    from coderag.embed.base import BaseEmbedder
    from coderag.generate.base import BaseGenerator
    from coderag.store.base import BaseStore
    from coderag.templates import TemplateEngine
    from coderag.types import ChatResponse, SearchResult

__all__ = ["CancellationToken", "RagOrchestrator"]

logger = logging.getLogger(__name__)

EMPTY_QUERY_MESSAGE = "Please provide a query to search for relevant code."
CANCELLED_MESSAGE = "Query cancelled."


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a query."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _Cancelled(Exception):
    """Raised inside a stream callback to abandon the stream."""


def _embedding_failure_message(provider: str, error: Exception) -> str:
    return (
        "I'm having trouble processing your query: the embedding provider "
        f"({provider}) did not respond. Please try again or check that it is running.\n\n"
        f"Error details: {error}"
    )


def _ollama_failure_message(base_url: str, model: str, error: Exception) -> str:
    return (
        "## ⚠️ Ollama Connection Error\n\n"
        f"Cannot connect to Ollama at {base_url}.\n\n"
        "Please make sure:\n"
        "1. Ollama is installed and running\n"
        f"2. The URL in `.coderag/config.toml` is correct ({base_url})\n"
        f'3. The model "{model}" is available (run `ollama pull {model}`)\n\n'
        f"Error details: {error}"
    )


class RagOrchestrator:
    """Runs retrieval-augmented queries against an indexed workspace.

    All collaborators are injected. The orchestrator holds no state between
    queries, so one instance can serve a whole session.

    Args:
        embedder: Embeds the query text.
        store: Vector store holding the indexed chunks.
        generator: Chat provider used outside RAG-only mode.
        config: Project configuration (``[retrieval]`` and ``[llm]``).
        templates: Renders answers and prompt context.
        probe: Availability check used by the mode decision.
    """

    def __init__(
        self,
        embedder: BaseEmbedder,
        store: BaseStore,
        generator: BaseGenerator,
        config: CoderagConfig,
        templates: TemplateEngine,
        *,
        probe: Callable[[CoderagConfig], bool] = is_provider_available,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self._generator = generator
        self._config = config
        self._templates = templates
        self._probe = probe

    # --- Retrieval ---

    def retrieve(
        self,
        query: str,
        *,
        min_score: float | None = None,
        limit: int | None = None,
        filter: Mapping[str, Any] | None = None,  # noqa: A002
    ) -> list[SearchResult]:
        """Search the store for chunks relevant to ``query``.

        Runs a primary search at ``min_score``. When it returns fewer than
        ``retrieval.min_results`` hits, one retry at
        ``retrieval.fallback_min_score`` replaces it only if the retry found
        strictly more.

        Raises:
            InputError: If the query is blank.
            EmbeddingError: If the query cannot be embedded.
            StoreError: If the store fails.
        """
        if not query.strip():
            raise InputError("Query must not be empty")

        retrieval = self._config.retrieval
        threshold = retrieval.min_score if min_score is None else min_score
        max_results = retrieval.max_results if limit is None else limit

        embedding = self._embedder.embed_query(query)
        results = self._store.similarity_search(
            embedding, limit=max_results, min_score=threshold, filter=filter
        )
        logger.info("Primary search at %.2f returned %d results", threshold, len(results))

        if len(results) < retrieval.min_results:
            broader = self._store.similarity_search(
                embedding,
                limit=max_results,
                min_score=retrieval.fallback_min_score,
                filter=filter,
            )
            logger.info(
                "Fallback search at %.2f returned %d results",
                retrieval.fallback_min_score,
                len(broader),
            )
            if len(broader) > len(results):
                results = broader

        return results

    # --- Query ---

    def query(
        self,
        query: str,
        *,
        callback: Callable[[str, bool], None] | None = None,
        cancel: CancellationToken | None = None,
        force_rag_only: bool = False,
    ) -> QueryResult:
        """Answer ``query`` with retrieved context, generated or RAG-only.

        Args:
            query: Natural-language question.
            callback: Receives ``(content, done)``; ``content`` is cumulative.
            cancel: Once cancelled, no further callbacks are made.
            force_rag_only: Skip generation regardless of configuration.

        Returns:
            The terminal outcome with the final content and the results used.
        """
        token = cancel or CancellationToken()

        def emit(content: str, done: bool) -> None:
            if callback is not None and not token.cancelled:
                callback(content, done)

        def finish(outcome: QueryOutcome, content: str, results: list[SearchResult]) -> QueryResult:
            if token.cancelled:
                return QueryResult(QueryOutcome.ERROR, CANCELLED_MESSAGE, tuple(results))
            emit(content, True)
            return QueryResult(outcome, content, tuple(results))

        if not query.strip():
            return finish(QueryOutcome.ERROR, EMPTY_QUERY_MESSAGE, [])

        rag_only = should_use_rag_only(self._config, force=force_rag_only, probe=self._probe)
        logger.info("Answering query in %s mode", "RAG-only" if rag_only else "generation")

        try:
            results = self.retrieve(query)
        except ProviderError as e:
            logger.error("Failed to embed query: %s", e)
            return finish(
                QueryOutcome.ERROR,
                _embedding_failure_message(self._config.embedding.provider, e),
                [],
            )
        except CoderagError as e:
            logger.error("Search failed, continuing without context: %s", e)
            results = []

        if token.cancelled:
            return finish(QueryOutcome.ERROR, CANCELLED_MESSAGE, results)

        if rag_only:
            if not results:
                return finish(
                    QueryOutcome.NO_CONTEXT_RESULT,
                    render_no_results(self._templates, query),
                    results,
                )
            content = render_rag_only(
                self._templates,
                query,
                results,
                header=self._rag_only_header(force_rag_only),
            )
            return finish(QueryOutcome.RAG_ONLY_RESULT, content, results)

        if not results:
            logger.warning("No relevant documents found; answering without workspace context")
        return self._generate(query, results, token, emit, finish)

    # --- Internals ---

    def _generate(
        self,
        query: str,
        results: list[SearchResult],
        token: CancellationToken,
        emit: Callable[[str, bool], None],
        finish: Callable[[QueryOutcome, str, list[SearchResult]], QueryResult],
    ) -> QueryResult:
        messages = build_messages(
            query,
            results,
            self._config.llm,
            self._templates,
            max_context_tokens=self._config.retrieval.max_context_tokens,
        )
        logger.debug("Sending %d messages to %s", len(messages), self._generator.name)

        final = ""

        def on_chunk(response: ChatResponse) -> None:
            nonlocal final
            if token.cancelled:
                raise _Cancelled
            final = response.content
            if not response.done:
                emit(response.content, False)

        try:
            self._generator.stream_chat(messages, on_chunk)
        except _Cancelled:
            logger.info("Query cancelled during generation")
            return finish(QueryOutcome.ERROR, CANCELLED_MESSAGE, results)
        except ProviderError as e:
            logger.error("Generation failed: %s", e)
            return finish(QueryOutcome.ERROR, self._generation_failure_message(e), results)

        return finish(QueryOutcome.DIRECT_RESULT, final, results)

    def _rag_only_header(self, forced: bool) -> str:
        # Reached when forced, with no provider, or after a failed probe
        llm = self._config.llm
        if forced or llm.rag_only_forced or llm.provider == "none":
            return "rag_only"
        return "unavailable"

    def _ollama_url(self) -> str:
        return self._config.llm.base_url or DEFAULT_OLLAMA_URL

    def _generation_failure_message(self, error: Exception) -> str:
        if self._config.llm.provider == "ollama":
            return _ollama_failure_message(self._ollama_url(), self._config.llm.model, error)
        return f"Error streaming response: {error}"
