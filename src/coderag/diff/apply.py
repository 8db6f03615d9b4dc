"""Apply parsed hunks to live content.

Each hunk becomes one :class:`TextEdit`. Hunks are applied bottom-up so an
edit never shifts the line numbers of the hunks still waiting above it.

Per hunk, in order:

1. The old side matches the content at ``old_start``: replace that range.
   A match that differs only in CRLF versus LF line endings also counts;
   the replacement then takes the file's line ending.
2. A block format is registered for the file and every changed line is a
   property: rebuild the enclosing rule from its property map.
3. Otherwise replace ``old_lines`` lines at the stated position, again in
   the file's line ending.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from coderag.diff.blocks import default_formats
from coderag.diff.compute import create_unified_diff, join_lines, split_lines_keepends
from coderag.diff.parse import parse_diff
from coderag.exceptions import PartialApplyError
from coderag.types import LineType, TextEdit

if TYPE_CHECKING:
    from coderag.diff.blocks import BlockFormat, BlockFormatRegistry
    from coderag.types import ParsedDiff, ParsedDiffHunk

__all__ = [
    "apply_diff",
    "apply_edits",
    "apply_new_content",
    "plan_edits",
    "reconcile_block",
    "uses_crlf",
    "with_line_ending",
]

logger = logging.getLogger(__name__)

Line = tuple[str, bool]

_SELECTOR_LOOKBACK = 10
_DEFAULT_INDENT = "    "


def _range_start(hunk: ParsedDiffHunk) -> int:
    # A zero-length old side names the line after which to insert
    return hunk.old_start - 1 if hunk.old_lines > 0 else hunk.old_start


def _old_side(hunk: ParsedDiffHunk) -> list[Line]:
    return [(ld.content, not ld.no_newline) for ld in hunk.old_side]


def _new_side(hunk: ParsedDiffHunk) -> list[Line]:
    return [(ld.content, not ld.no_newline) for ld in hunk.new_side]


def _strip_cr(content: str) -> str:
    return content[:-1] if content.endswith("\r") else content


def uses_crlf(lines: list[Line]) -> bool:
    """Whether most terminated lines end in ``\\r\\n``."""
    terminated = [content for content, eol in lines if eol]
    crlf = sum(1 for content in terminated if content.endswith("\r"))
    return crlf * 2 > len(terminated)


def with_line_ending(lines: list[Line], crlf: bool) -> list[Line]:
    """Re-terminate every newline-ended line as CRLF or LF."""
    suffix = "\r" if crlf else ""
    return [(_strip_cr(content) + suffix if eol else content, eol) for content, eol in lines]


def _baseline_edit(
    hunk: ParsedDiffHunk, lines: list[Line], crlf: bool | None = None
) -> TextEdit:
    start = _range_start(hunk)
    if start > len(lines):
        logger.warning(
            "Hunk starts at line %d but content has %d lines; appending",
            hunk.old_start,
            len(lines),
        )
        start = len(lines)
    end = min(start + hunk.old_lines, len(lines))
    new = _new_side(hunk)
    if crlf is not None:
        new = with_line_ending(new, crlf)
    return TextEdit(start=start, end=end, lines=tuple(new))


def _matches(hunk: ParsedDiffHunk, lines: list[Line], *, ignore_eol: bool = False) -> bool:
    start = _range_start(hunk)
    old = _old_side(hunk)
    if start < 0 or start + len(old) > len(lines):
        return False
    window = lines[start : start + len(old)]
    if ignore_eol:
        return [(_strip_cr(c), e) for c, e in window] == [(_strip_cr(c), e) for c, e in old]
    return window == old


# --- Block reconciliation ---


def _find_selector(
    hunk: ParsedDiffHunk, lines: list[Line], fmt: BlockFormat
) -> str | None:
    candidates = [
        selector
        for ld in hunk.line_diffs
        if ld.type is LineType.CONTEXT and (selector := fmt.selector_of(ld.content))
    ]
    if candidates:
        return min(candidates, key=fmt.selector_rank)

    if hunk.header:
        selector = fmt.selector_of(hunk.header)
        if selector:
            return selector

    anchor = min(_range_start(hunk), len(lines))
    for index in range(anchor - 1, max(anchor - 1 - _SELECTOR_LOOKBACK, -1), -1):
        selector = fmt.selector_of(lines[index][0])
        if selector:
            return selector
    return None


def _rule_end(lines: list[Line], start: int, fmt: BlockFormat) -> int | None:
    depth = 0
    for index in range(start, len(lines)):
        text = lines[index][0]
        depth += fmt.opens(text) - fmt.closes(text)
        if depth <= 0:
            return index
    return None


def _enclosing_rule(
    lines: list[Line], anchor: int, fmt: BlockFormat
) -> tuple[int, int] | None:
    depth = 0
    for index in range(min(anchor, len(lines) - 1), -1, -1):
        text = lines[index][0]
        if index != anchor:
            depth += fmt.closes(text)
        opened = fmt.opens(text)
        if not opened:
            continue
        if depth == 0:
            if not fmt.selector_of(text):
                return None
            end = _rule_end(lines, index, fmt)
            return (index, end) if end is not None and end >= anchor else None
        depth = max(depth - opened, 0)
    return None


def _locate_rule(
    lines: list[Line], selector: str | None, anchor: int, fmt: BlockFormat
) -> tuple[int, int] | None:
    if selector:
        starts = [i for i, (text, _) in enumerate(lines) if fmt.selector_of(text) == selector]
        if starts:
            start = min(starts, key=lambda i: abs(i - anchor))
            end = _rule_end(lines, start, fmt)
            if end is not None:
                return start, end
    return _enclosing_rule(lines, anchor, fmt)


def reconcile_block(
    hunk: ParsedDiffHunk, lines: list[Line], fmt: BlockFormat
) -> TextEdit:
    """Rebuild the rule a property-only hunk targets.

    The rule keeps its original property order. Removed properties are
    dropped unless re-added, changed ones are rewritten in place at the
    indentation of the line they replace, and new ones are appended with the
    indentation of the rule's first property. Rewritten and appended lines
    take the line ending of the file.

    Raises:
        PartialApplyError: If a changed line is not a property or the rule
            cannot be located.
    """
    changed = [ld for ld in hunk.line_diffs if ld.type is not LineType.CONTEXT]
    if not changed:
        raise PartialApplyError("Hunk changes no lines")

    added: dict[str, str] = {}
    removed: set[tuple[str, str]] = set()
    for ld in changed:
        prop = fmt.parse_property(ld.content)
        if prop is None:
            raise PartialApplyError(f"Not a {fmt.name} property line: {ld.content!r}")
        if ld.type is LineType.ADD:
            added[prop[0]] = prop[1]
        else:
            removed.add(prop)

    selector = _find_selector(hunk, lines, fmt)
    anchor = min(max(_range_start(hunk), 0), max(len(lines) - 1, 0))
    rule = _locate_rule(lines, selector, anchor, fmt)
    if rule is None:
        raise PartialApplyError(f"Could not locate {fmt.name} rule {selector or '(unknown)'}")
    start, end = rule
    if end <= start:
        raise PartialApplyError(f"Rule at line {start + 1} is written on a single line")

    body = lines[start + 1 : end]
    crlf = uses_crlf(lines)
    indent = _DEFAULT_INDENT
    for text, _ in body:
        if fmt.parse_property(text) is not None:
            indent = text[: len(text) - len(text.lstrip())]
            break

    rebuilt: list[Line] = [lines[start]]
    emitted: set[str] = set()
    for text, eol in body:
        prop = fmt.parse_property(text)
        if prop is None:
            rebuilt.append((text, eol))
            continue
        name, value = prop
        if name in added and name not in emitted:
            emitted.add(name)
            if value == added[name]:
                rebuilt.append((text, eol))
            else:
                own_indent = text[: len(text) - len(text.lstrip())]
                ending = "\r" if text.endswith("\r") else ""
                rebuilt.append((fmt.format_property(name, added[name], own_indent) + ending, eol))
        elif prop in removed:
            continue
        else:
            rebuilt.append((text, eol))

    for name, value in added.items():
        if name not in emitted:
            line = fmt.format_property(name, value, indent) + ("\r" if crlf else "")
            rebuilt.append((line, True))
    rebuilt.append(lines[end])

    logger.debug(
        "Reconciled %s rule %r at lines %d-%d (+%d -%d)",
        fmt.name,
        selector,
        start + 1,
        end + 1,
        len(added),
        len(removed),
    )
    return TextEdit(start=start, end=end + 1, lines=tuple(rebuilt))


# --- Public API ---


def apply_edits(lines: list[Line], edits: list[TextEdit]) -> list[Line]:
    """Apply edits in the given order, each against the previous result."""
    result = list(lines)
    for edit in edits:
        result[edit.start : edit.end] = list(edit.lines)
    return result


def _plan(
    parsed: ParsedDiff, lines: list[Line], formats: BlockFormatRegistry | None
) -> tuple[list[TextEdit], list[Line]]:
    registry = formats if formats is not None else default_formats()
    fmt = registry.for_path(parsed.path)
    current = list(lines)
    crlf = uses_crlf(current)
    edits: list[TextEdit] = []

    for hunk in sorted(parsed.hunks, key=lambda h: h.old_start, reverse=True):
        if _matches(hunk, current):
            edit = _baseline_edit(hunk, current)
        elif _matches(hunk, current, ignore_eol=True):
            logger.debug("Hunk at line %d matches apart from line endings", hunk.old_start)
            edit = _baseline_edit(hunk, current, crlf)
        elif fmt is not None:
            try:
                edit = reconcile_block(hunk, current, fmt)
            except PartialApplyError as e:
                logger.info("Block reconciliation failed, applying at stated lines: %s", e)
                edit = _baseline_edit(hunk, current, crlf)
        else:
            logger.debug(
                "Hunk at line %d does not match content; applying at stated lines",
                hunk.old_start,
            )
            edit = _baseline_edit(hunk, current, crlf)
        edits.append(edit)
        current = apply_edits(current, [edit])

    return edits, current


def plan_edits(
    parsed: ParsedDiff,
    content: str,
    *,
    formats: BlockFormatRegistry | None = None,
) -> list[TextEdit]:
    """Translate ``parsed`` into text edits against ``content``.

    Edits are listed in application order (bottom-up); each one is relative
    to the content produced by the edits before it.
    """
    edits, _ = _plan(parsed, split_lines_keepends(content), formats)
    return edits


def apply_diff(
    parsed: ParsedDiff,
    content: str,
    *,
    formats: BlockFormatRegistry | None = None,
) -> str:
    """Apply every hunk of ``parsed`` to ``content`` and return the new text.

    Args:
        parsed: One file section from :func:`coderag.diff.parse.parse_diff`.
        content: Current file content.
        formats: Block formats to reconcile against; defaults to the
            built-in set.
    """
    _, result = _plan(parsed, split_lines_keepends(content), formats)
    logger.info("Applied %d hunk(s) to %s", len(parsed.hunks), parsed.path or "content")
    return join_lines(result)


def apply_new_content(
    original: str,
    new: str,
    path: str | None = None,
    *,
    formats: BlockFormatRegistry | None = None,
) -> str:
    """Route a full replacement through compute, parse and apply.

    Returns ``original`` unchanged if the computed diff does not parse.
    """
    parsed = parse_diff(create_unified_diff(original, new, path))
    if not parsed:
        logger.warning("Computed diff for %s did not parse; keeping original", path or "file")
        return original
    return apply_diff(parsed[0], original, formats=formats)
