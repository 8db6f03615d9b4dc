"""Prompt and answer assembly from search results.

Results are flattened into :class:`ResultView` records and rendered through
the jinja2 templates in ``coderag/templates``. The context block handed to a
model is kept under ``retrieval.max_context_tokens``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from coderag.tokens import count_tokens, truncate_to_tokens
from coderag.types import ChatMessage

if TYPE_CHECKING:
    from coderag.config import LlmConfig
    from coderag.templates import TemplateEngine
    from coderag.types import SearchResult

__all__ = [
    "NO_CONTEXT_NOTE",
    "AnswerContext",
    "ResultView",
    "build_messages",
    "render_no_results",
    "render_rag_only",
    "to_views",
]

logger = logging.getLogger(__name__)

NO_CONTEXT_NOTE = (
    "Note: No relevant code context was found in the workspace for this query. "
    "Please provide a general response based on your knowledge."
)

CONTEXT_TEMPLATE = "context.md.j2"
RAG_ONLY_TEMPLATE = "rag_only.md.j2"
NO_RESULTS_TEMPLATE = "no_results.md.j2"


@dataclass(frozen=True)
class ResultView:
    """Template-facing view of one search result."""

    file_path: str
    start_line: int | None
    end_line: int | None
    language: str
    score: float
    text: str


@dataclass(frozen=True)
class AnswerContext:
    """Everything the answer templates render.

    ``header`` selects the opening paragraph of a RAG-only answer:
    ``"rag_only"`` when RAG-only was asked for, ``"unavailable"`` when no
    provider could be reached.
    """

    query: str
    results: tuple[ResultView, ...] = ()
    header: str = "rag_only"


def to_views(results: list[SearchResult]) -> tuple[ResultView, ...]:
    """Flatten search results, highest score first."""
    ordered = sorted(results, key=lambda r: r.score, reverse=True)
    return tuple(
        ResultView(
            file_path=r.document.metadata.file_path,
            start_line=r.document.metadata.start_line,
            end_line=r.document.metadata.end_line,
            language=r.document.metadata.language or "text",
            score=r.score,
            text=r.document.text,
        )
        for r in ordered
    )


def _fit_context(
    engine: TemplateEngine, query: str, views: tuple[ResultView, ...], max_tokens: int
) -> str:
    """Render as many results as fit the token budget.

    A single result that alone exceeds the budget is truncated rather than
    dropped.
    """
    kept: list[ResultView] = []
    rendered = ""
    for view in views:
        candidate = engine.render(
            CONTEXT_TEMPLATE, AnswerContext(query=query, results=(*kept, view))
        )
        if count_tokens(candidate) <= max_tokens:
            kept.append(view)
            rendered = candidate
            continue
        if not kept:
            overhead = count_tokens(
                engine.render(
                    CONTEXT_TEMPLATE,
                    AnswerContext(query=query, results=(replace(view, text=""),)),
                )
            )
            clipped = replace(view, text=truncate_to_tokens(view.text, max_tokens - overhead))
            kept.append(clipped)
            rendered = engine.render(CONTEXT_TEMPLATE, AnswerContext(query=query, results=(clipped,)))
            logger.debug("Truncated top result %s to fit context budget", view.file_path)
        break

    if len(kept) < len(views):
        logger.info(
            "Context budget of %d tokens kept %d of %d results", max_tokens, len(kept), len(views)
        )
    return rendered


def build_messages(
    query: str,
    results: list[SearchResult],
    llm: LlmConfig,
    engine: TemplateEngine,
    *,
    max_context_tokens: int,
) -> list[ChatMessage]:
    """Assemble the chat messages for a retrieval-augmented query.

    With results, the user message carries the context block followed by the
    query. Without results, a system note explains the missing context and
    the raw query is sent.
    """
    messages: list[ChatMessage] = []
    if llm.use_system_prompt and llm.system_prompt:
        messages.append(ChatMessage(role="system", content=llm.system_prompt))

    views = to_views(results)
    if views:
        content = _fit_context(engine, query, views, max_context_tokens)
        messages.append(ChatMessage(role="user", content=content))
    else:
        messages.append(ChatMessage(role="system", content=NO_CONTEXT_NOTE))
        messages.append(ChatMessage(role="user", content=query))
    return messages


def render_rag_only(
    engine: TemplateEngine,
    query: str,
    results: list[SearchResult],
    *,
    header: str = "rag_only",
) -> str:
    """Markdown answer listing retrieved snippets without a model call."""
    return engine.render(
        RAG_ONLY_TEMPLATE,
        AnswerContext(query=query, results=to_views(results), header=header),
    )


def render_no_results(engine: TemplateEngine, query: str) -> str:
    return engine.render(NO_RESULTS_TEMPLATE, AnswerContext(query=query))
