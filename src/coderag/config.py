"""Configuration system for coderag.

Manages project configuration via .coderag/config.toml with typed dataclasses
and sensible defaults for all values.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import tomli_w

from coderag.exceptions import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

_T = TypeVar("_T")

__all__ = [
    "CacheConfig",
    "ChunkConfig",
    "CoderagConfig",
    "EmbeddingConfig",
    "IndexConfig",
    "LlmConfig",
    "ProjectConfig",
    "RetrievalConfig",
    "StoreConfig",
    "default_config",
    "load_config",
    "save_config",
]

logger = logging.getLogger(__name__)

DEFAULT_INCLUDE = [
    "**/*.js",
    "**/*.ts",
    "**/*.jsx",
    "**/*.tsx",
    "**/*.py",
    "**/*.java",
    "**/*.c",
    "**/*.cpp",
    "**/*.cs",
    "**/*.go",
    "**/*.rb",
    "**/*.php",
    "**/*.html",
    "**/*.css",
    "**/*.md",
]

DEFAULT_EXCLUDE = [
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.git/**",
    "**/.coderag/**",
]

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI coding assistant. Use the following code context to provide "
    "accurate and helpful responses. When referencing code from the context, cite the "
    "file path. If no context is provided or the context is insufficient, acknowledge "
    "this and provide the best general guidance you can."
)


@dataclass
class ProjectConfig:
    """[project] section."""

    name: str = ""
    description: str = ""


@dataclass
class IndexConfig:
    """[index] section."""

    include: list[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    max_file_bytes: int = 10 * 1024 * 1024
    batch_size: int = 10


@dataclass
class ChunkConfig:
    """[chunk] section. Sizes are in characters."""

    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_chunk_size: int = 100


@dataclass
class EmbeddingConfig:
    """[embedding] section."""

    provider: str = "ollama"
    model: str = "nomic-embed-text"
    base_url: str = ""
    api_key_env: str = ""
    batch_size: int = 10
    dimension: int = 384
    random_fallback: bool = True


@dataclass
class CacheConfig:
    """[cache] section."""

    enabled: bool = True
    persistent: bool = True
    ttl_seconds: int = 86400
    max_memory_entries: int = 100
    sweep_interval_seconds: int = 3600


@dataclass
class StoreConfig:
    """[store] section."""

    backend: str = "json"
    collection_name: str = "coderag"
    similarity: str = "absolute"


@dataclass
class RetrievalConfig:
    """[retrieval] section."""

    max_results: int = 5
    min_score: float = 0.1
    fallback_min_score: float = 0.1
    min_results: int = 2
    max_context_tokens: int = 6000


@dataclass
class LlmConfig:
    """[llm] section."""

    provider: str = "ollama"
    model: str = "llama3.2"
    base_url: str = ""
    api_key_env: str = ""
    temperature: float = 0.7
    rag_only_forced: bool = False
    rag_only_fallback: bool = True
    use_system_prompt: bool = True
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass
class CoderagConfig:
    """Root configuration combining all sections."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    chunk: ChunkConfig = field(default_factory=ChunkConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    llm: LlmConfig = field(default_factory=LlmConfig)


_SECTIONS: dict[str, type] = {
    "project": ProjectConfig,
    "index": IndexConfig,
    "chunk": ChunkConfig,
    "embedding": EmbeddingConfig,
    "cache": CacheConfig,
    "store": StoreConfig,
    "retrieval": RetrievalConfig,
    "llm": LlmConfig,
}


def default_config() -> CoderagConfig:
    """Return a config with all default values."""
    return CoderagConfig()


def _config_to_dict(config: CoderagConfig) -> dict[str, object]:
    """Convert CoderagConfig to a nested dict suitable for TOML serialization."""
    return {name: dict(vars(getattr(config, name))) for name in _SECTIONS}


def save_config(config: CoderagConfig, path: Path) -> None:
    """Save configuration to a TOML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _config_to_dict(config)
    try:
        with path.open("wb") as f:
            tomli_w.dump(data, f)
        logger.info("Saved config to %s", path)
    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        raise ConfigError(f"Failed to save config to {path}: {e}") from e


def _load_section(cls: type[_T], data: dict[str, object]) -> _T:
    """Load a dataclass section from a dict, ignoring unknown keys."""
    known_fields = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
    filtered = {k: v for k, v in data.items() if k in known_fields}
    unknown = sorted(set(data) - known_fields)
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", cls.__name__, unknown)
    try:
        return cls(**filtered)
    except TypeError as e:
        raise ConfigError(f"Invalid values for {cls.__name__}: {e}") from e


def load_config(path: Path) -> CoderagConfig:
    """Load configuration from a TOML file.

    Missing sections or keys get default values.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_bytes()
        data = tomllib.loads(raw.decode("utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    config = CoderagConfig()
    for name, cls in _SECTIONS.items():
        section = data.get(name)
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ConfigError(f"Config section [{name}] must be a table")
        setattr(config, name, _load_section(cls, section))

    logger.info("Loaded config from %s", path)
    return config
