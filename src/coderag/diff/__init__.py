"""Diff engine: compute, parse and apply unified diffs."""

from coderag.diff.apply import apply_diff, apply_new_content, plan_edits
from coderag.diff.blocks import BlockFormat, BlockFormatRegistry, CssBlockFormat, default_formats
from coderag.diff.compute import create_unified_diff
from coderag.diff.parse import parse_diff

__all__ = [
    "BlockFormat",
    "BlockFormatRegistry",
    "CssBlockFormat",
    "apply_diff",
    "apply_new_content",
    "create_unified_diff",
    "default_formats",
    "parse_diff",
    "plan_edits",
]
