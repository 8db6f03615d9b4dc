"""Unified diff generation by common prefix/suffix reduction.

The changed region is everything between the longest common prefix and the
longest common suffix of the two line sequences, emitted as a single hunk
with up to three lines of context on each side. Two unrelated edits far
apart therefore produce one large hunk spanning both; the parse and apply
stages accept any correct unified diff, so a multi-hunk algorithm can replace
this one without touching them.

Lines compare together with their end-of-line state, so a change that only
adds or drops the final newline still shows up, marked with
``\\ No newline at end of file``.
"""

from __future__ import annotations

import logging

__all__ = [
    "CONTEXT_LINES",
    "NO_CHANGES_HUNK",
    "NO_NEWLINE_MARKER",
    "create_unified_diff",
    "join_lines",
    "split_lines_keepends",
]

logger = logging.getLogger(__name__)

CONTEXT_LINES = 3
NO_NEWLINE_MARKER = "\\ No newline at end of file"
NO_CHANGES_HUNK = "@@ -1,0 +1,0 @@ No changes"

Line = tuple[str, bool]


def split_lines_keepends(text: str) -> list[Line]:
    """Split text into ``(content, has_newline)`` pairs."""
    if not text:
        return []
    parts = text.split("\n")
    lines: list[Line] = [(part, True) for part in parts[:-1]]
    if parts[-1]:
        lines.append((parts[-1], False))
    return lines


def join_lines(lines: list[Line]) -> str:
    """Inverse of :func:`split_lines_keepends`."""
    return "".join(content + ("\n" if eol else "") for content, eol in lines)


def _common_prefix(old: list[Line], new: list[Line]) -> int:
    limit = min(len(old), len(new))
    n = 0
    while n < limit and old[n] == new[n]:
        n += 1
    return n


def _common_suffix(old: list[Line], new: list[Line], prefix: int) -> int:
    limit = min(len(old), len(new)) - prefix
    n = 0
    while n < limit and old[len(old) - 1 - n] == new[len(new) - 1 - n]:
        n += 1
    return n


def _range(start: int, count: int) -> str:
    # A zero-length side names the line after which the change applies
    first = start + 1 if count > 0 else start
    return f"{first},{count}"


def _emit(out: list[str], prefix: str, line: Line) -> None:
    content, eol = line
    out.append(f"{prefix}{content}")
    if not eol:
        out.append(NO_NEWLINE_MARKER)


def create_unified_diff(original: str, new: str, path: str | None = None) -> str:
    """Return a unified diff turning ``original`` into ``new``.

    Args:
        original: Current text.
        new: Proposed text.
        path: Label for the ``--- a/`` and ``+++ b/`` headers (default ``file``).

    Returns:
        Diff text ending in a newline. Identical inputs yield the sentinel
        hunk ``@@ -1,0 +1,0 @@ No changes``.
    """
    label = path or "file"
    out = [f"--- a/{label}", f"+++ b/{label}"]

    old_lines = split_lines_keepends(original)
    new_lines = split_lines_keepends(new)

    if old_lines == new_lines:
        out.append(NO_CHANGES_HUNK)
        return "\n".join(out) + "\n"

    prefix = _common_prefix(old_lines, new_lines)
    suffix = _common_suffix(old_lines, new_lines, prefix)

    old_end = len(old_lines) - suffix
    new_end = len(new_lines) - suffix
    ctx_start = max(0, prefix - CONTEXT_LINES)
    trailing = min(suffix, CONTEXT_LINES)

    old_count = old_end + trailing - ctx_start
    new_count = new_end + trailing - ctx_start

    out.append(f"@@ -{_range(ctx_start, old_count)} +{_range(ctx_start, new_count)} @@")
    for line in old_lines[ctx_start:prefix]:
        _emit(out, " ", line)
    for line in old_lines[prefix:old_end]:
        _emit(out, "-", line)
    for line in new_lines[prefix:new_end]:
        _emit(out, "+", line)
    for line in old_lines[old_end : old_end + trailing]:
        _emit(out, " ", line)

    logger.debug(
        "Computed diff for %s: -%d +%d lines",
        label,
        old_end - prefix,
        new_end - prefix,
    )
    return "\n".join(out) + "\n"
