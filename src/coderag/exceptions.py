"""Custom exception hierarchy for coderag."""

__all__ = [
    "ChunkError",
    "CoderagError",
    "ConfigError",
    "DimensionMismatchError",
    "EmbeddingError",
    "GenerationError",
    "IndexBusyError",
    "IndexingError",
    "InputError",
    "ManifestError",
    "PartialApplyError",
    "PluginError",
    "ProjectError",
    "ProviderError",
    "StoreError",
    "TemplateError",
    "WorkspaceError",
]


class CoderagError(Exception):
    """Base exception for all coderag errors."""


class ConfigError(CoderagError):
    """Raised when configuration loading or validation fails."""


class ManifestError(CoderagError):
    """Raised when manifest operations fail."""


class ProjectError(CoderagError):
    """Raised when project initialization or discovery fails."""


class InputError(CoderagError):
    """Raised for caller mistakes: malformed diffs, empty queries, bad vectors."""


class DimensionMismatchError(InputError):
    """Raised when an embedding does not match the store's dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class ChunkError(CoderagError):
    """Raised when chunking operations fail."""


class ProviderError(CoderagError):
    """Raised when an embedding or generation backend is unreachable or rejects a call."""


class EmbeddingError(ProviderError):
    """Raised when embedding generation fails."""


class GenerationError(ProviderError):
    """Raised when chat generation fails."""


class StoreError(CoderagError):
    """Raised when vector store operations fail."""


class IndexingError(CoderagError):
    """Raised when indexing orchestration fails."""


class IndexBusyError(IndexingError):
    """Raised when a workspace index is requested while another is running."""


class PartialApplyError(CoderagError):
    """Raised when block reconciliation cannot place a hunk."""


class WorkspaceError(CoderagError):
    """Raised when a workspace file cannot be read or written."""


class TemplateError(CoderagError):
    """Raised when a template is missing or fails to render."""


class PluginError(CoderagError):
    """Raised when plugin loading or registration fails."""
