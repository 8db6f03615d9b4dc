"""coderag: code-aware retrieval assistant with a unified diff engine."""

__version__ = "0.1.0"
