"""File-extension to language-tag mapping shared by indexing and diffs."""

from __future__ import annotations

from pathlib import PurePath

__all__ = ["EXTENSION_LANGUAGES", "language_for_path"]

EXTENSION_LANGUAGES: dict[str, str] = {
    ".js": "javascript",
    ".ts": "typescript",
    ".jsx": "javascriptreact",
    ".tsx": "typescriptreact",
    ".py": "python",
    ".java": "java",
    ".c": "c",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".go": "go",
    ".rb": "ruby",
    ".php": "php",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".less": "less",
    ".md": "markdown",
    ".json": "json",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
}


def language_for_path(path: str | PurePath, default: str = "plaintext") -> str:
    """Return the language tag for a file path, or ``default`` if unknown."""
    suffix = PurePath(path).suffix.lower()
    return EXTENSION_LANGUAGES.get(suffix, default)
