"""Block formats: rule-structured text that hunks can be reconciled against.

A block format knows how to recognise ``selector { name: value; }`` style
rules in a file: where a rule opens, where it closes, and how one property
line reads and writes. :func:`coderag.diff.apply.apply_diff` uses it to
rebuild a whole rule when a hunk's context no longer lines up with the file.

Formats are looked up by file extension through :class:`BlockFormatRegistry`.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import PurePosixPath

from coderag.exceptions import PluginError

__all__ = [
    "BlockFormat",
    "BlockFormatRegistry",
    "CssBlockFormat",
    "default_formats",
]

logger = logging.getLogger(__name__)


class BlockFormat(ABC):
    """Parser/serializer pair for one rule-block text format.

    Subclasses set :attr:`extensions` (lowercase, with leading dot).
    """

    extensions: tuple[str, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier, e.g. ``"css"``."""

    @abstractmethod
    def parse_property(self, line: str) -> tuple[str, str] | None:
        """Return ``(name, value)`` if ``line`` is a single property line."""

    @abstractmethod
    def format_property(self, name: str, value: str, indent: str) -> str:
        """Render one property line without its newline."""

    @abstractmethod
    def selector_of(self, line: str) -> str | None:
        """Return the selector if ``line`` opens a rule, else ``None``."""

    def selector_rank(self, selector: str) -> int:
        """Preference when several context lines open rules; lower wins."""
        return 0

    def opens(self, line: str) -> int:
        return line.count("{")

    def closes(self, line: str) -> int:
        return line.count("}")


# Property lines never contain braces; the value stops at the first ``;``
_CSS_PROPERTY_RE = re.compile(r"^\s*([\w-]+)\s*:\s*([^;{}]+?)\s*;?\s*$")
_CSS_RULE_OPEN_RE = re.compile(r"^\s*([^{};]+?)\s*\{\s*$")


class CssBlockFormat(BlockFormat):
    """CSS and its preprocessor dialects (``.css``, ``.scss``, ``.less``)."""

    extensions = (".css", ".scss", ".less")

    @property
    def name(self) -> str:
        return "css"

    def parse_property(self, line: str) -> tuple[str, str] | None:
        if line.lstrip().startswith(("/*", "//", "@")):
            return None
        match = _CSS_PROPERTY_RE.match(line)
        if match is None:
            return None
        return match.group(1), match.group(2)

    def format_property(self, name: str, value: str, indent: str) -> str:
        return f"{indent}{name}: {value};"

    def selector_of(self, line: str) -> str | None:
        match = _CSS_RULE_OPEN_RE.match(line)
        if match is None:
            return None
        return match.group(1)

    def selector_rank(self, selector: str) -> int:
        # id selectors are the most specific anchor, then classes, then elements
        if selector.startswith("#"):
            return 0
        if selector.startswith("."):
            return 1
        return 2


class BlockFormatRegistry:
    """Maps file extensions to :class:`BlockFormat` instances.

    Usage::

        formats = BlockFormatRegistry()
        formats.register(CssBlockFormat())
        fmt = formats.for_path("static/site.scss")
    """

    def __init__(self) -> None:
        self._by_extension: dict[str, BlockFormat] = {}

    def register(self, block_format: BlockFormat) -> None:
        """Register a format for each of its extensions.

        Raises:
            PluginError: If the format declares no extensions.
        """
        if not block_format.extensions:
            raise PluginError(f"Block format {block_format.name!r} declares no extensions")
        for ext in block_format.extensions:
            previous = self._by_extension.get(ext.lower())
            if previous is not None and previous is not block_format:
                logger.info(
                    "Block format %s replaces %s for %s", block_format.name, previous.name, ext
                )
            self._by_extension[ext.lower()] = block_format

    def for_path(self, path: str | None) -> BlockFormat | None:
        if not path:
            return None
        return self._by_extension.get(PurePosixPath(path).suffix.lower())

    def extensions(self) -> list[str]:
        return sorted(self._by_extension)


def default_formats() -> BlockFormatRegistry:
    """Registry with the built-in formats."""
    registry = BlockFormatRegistry()
    registry.register(CssBlockFormat())
    return registry
