"""Unified diff parser.

Turns (optionally multi-file) unified diff text into :class:`ParsedDiff`
records. Malformed input never raises: an unparsable hunk header, or a diff
without any hunk, yields an empty list so callers can report "nothing to
apply" themselves.
"""

from __future__ import annotations

import logging
import re

from coderag.diff.compute import NO_NEWLINE_MARKER
from coderag.languages import language_for_path
from coderag.types import LineDiff, LineType, ParsedDiff, ParsedDiffHunk

__all__ = ["HUNK_HEADER_RE", "parse_diff", "strip_path_prefix"]

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")

_PREFIXES = {"+": LineType.ADD, "-": LineType.REMOVE, " ": LineType.CONTEXT}


class _MalformedDiff(Exception):
    """Internal signal that aborts parsing."""


def strip_path_prefix(raw: str) -> str | None:
    """Normalize a ``---``/``+++`` header path.

    Strips a trailing tab-separated timestamp and the ``a/``/``b/`` prefix.
    ``/dev/null`` maps to ``None``.
    """
    path = raw.split("\t", 1)[0].strip()
    if not path or path == "/dev/null":
        return None
    if path.startswith(("a/", "b/")):
        path = path[2:]
    return path


def _git_paths(line: str) -> tuple[str | None, str | None]:
    match = re.match(r"^diff --git a/(\S+) b/(\S+)", line)
    if match is None:
        return None, None
    return match.group(1), match.group(2)


class _Section:
    def __init__(self, old_path: str | None = None, new_path: str | None = None) -> None:
        self.old_path = old_path
        self.new_path = new_path
        self.hunks: list[ParsedDiffHunk] = []

    def build(self) -> ParsedDiff:
        path = self.new_path or self.old_path
        return ParsedDiff(
            old_path=self.old_path,
            new_path=self.new_path,
            hunks=tuple(self.hunks),
            language=language_for_path(path) if path else None,
        )


def _parse_hunk(lines: list[str], pos: int) -> tuple[ParsedDiffHunk, int]:
    """Parse the hunk whose header is at ``lines[pos]``.

    Returns the hunk and the index of the first line after it.
    """
    match = HUNK_HEADER_RE.match(lines[pos])
    if match is None:
        raise _MalformedDiff(f"Unparsable hunk header: {lines[pos]!r}")

    old_start = int(match.group(1))
    old_count = int(match.group(2)) if match.group(2) is not None else 1
    new_start = int(match.group(3))
    new_count = int(match.group(4)) if match.group(4) is not None else 1
    header = match.group(5).strip()

    old_remaining = old_count
    new_remaining = new_count
    old_no = old_start
    new_no = new_start
    diffs: list[LineDiff] = []
    pos += 1

    while pos < len(lines) and (old_remaining > 0 or new_remaining > 0):
        line = lines[pos]
        if line.startswith("\\"):
            _mark_no_newline(diffs)
            pos += 1
            continue
        if line in ("", "\r"):
            # Some tools drop the space in front of empty context lines
            prefix, content = " ", line
        elif line[0] in _PREFIXES:
            prefix, content = line[0], line[1:]
        else:
            break

        kind = _PREFIXES[prefix]
        if kind is LineType.ADD:
            diffs.append(LineDiff(kind, content, new_no))
            new_no += 1
            new_remaining -= 1
        elif kind is LineType.REMOVE:
            diffs.append(LineDiff(kind, content, old_no))
            old_no += 1
            old_remaining -= 1
        else:
            diffs.append(LineDiff(kind, content, old_no))
            old_no += 1
            new_no += 1
            old_remaining -= 1
            new_remaining -= 1
        pos += 1

    # A marker can follow the final counted line
    if pos < len(lines) and lines[pos].startswith("\\"):
        _mark_no_newline(diffs)
        pos += 1

    if old_remaining > 0 or new_remaining > 0:
        logger.debug(
            "Hunk at -%d,%d ran short; recounting from %d lines present",
            old_start,
            old_count,
            len(diffs),
        )
        old_count = sum(1 for d in diffs if d.type is not LineType.ADD)
        new_count = sum(1 for d in diffs if d.type is not LineType.REMOVE)

    hunk = ParsedDiffHunk(
        old_start=old_start,
        old_lines=old_count,
        new_start=new_start,
        new_lines=new_count,
        line_diffs=tuple(diffs),
        header=header,
    )
    return hunk, pos


def _mark_no_newline(diffs: list[LineDiff]) -> None:
    if not diffs:
        return
    last = diffs[-1]
    diffs[-1] = LineDiff(last.type, last.content, last.line_number, no_newline=True)


def parse_diff(text: str) -> list[ParsedDiff]:
    """Parse unified diff text into one :class:`ParsedDiff` per file section.

    Args:
        text: Diff text, with or without ``diff --git`` lines. A bare hunk
            without file headers is accepted; its paths are ``None``.

    Returns:
        Parsed file sections in input order, or ``[]`` when the text is
        malformed or contains no hunks.
    """
    # Line content keeps any "\r" so CRLF files round-trip exactly; diff
    # syntax lines tolerate it through their patterns
    lines = text.split("\n")
    sections: list[_Section] = []
    current: _Section | None = None
    pos = 0

    try:
        while pos < len(lines):
            line = lines[pos]
            if line.startswith("diff --git "):
                current = _Section(*_git_paths(line))
                sections.append(current)
                pos += 1
            elif line.startswith("--- ") and pos + 1 < len(lines) and lines[pos + 1].startswith("+++ "):
                old_path = strip_path_prefix(line[4:])
                new_path = strip_path_prefix(lines[pos + 1][4:])
                if current is None or current.hunks:
                    current = _Section()
                    sections.append(current)
                current.old_path = old_path
                current.new_path = new_path
                pos += 2
            elif line.startswith("@@"):
                if current is None:
                    current = _Section()
                    sections.append(current)
                hunk, pos = _parse_hunk(lines, pos)
                current.hunks.append(hunk)
            else:
                # index lines, mode lines, trailing prose
                pos += 1
    except _MalformedDiff as e:
        logger.warning("Discarding malformed diff: %s", e)
        return []

    parsed = [section.build() for section in sections if section.hunks]
    if not parsed:
        logger.debug("Diff text contained no hunks")
    return parsed
