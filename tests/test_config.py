"""Tests for coderag.config module."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from coderag.config import (
    DEFAULT_SYSTEM_PROMPT,
    CoderagConfig,
    default_config,
    load_config,
    save_config,
)
from coderag.exceptions import ConfigError

if TYPE_CHECKING:
    from pathlib import Path


class TestDefaultConfig:
    def test_default_has_all_sections(self):
        config = default_config()
        assert config.project is not None
        assert config.index is not None
        assert config.chunk is not None
        assert config.embedding is not None
        assert config.cache is not None
        assert config.store is not None
        assert config.retrieval is not None
        assert config.llm is not None

    def test_default_embedding_model(self):
        config = default_config()
        assert config.embedding.model == "nomic-embed-text"
        assert config.embedding.provider == "ollama"

    def test_default_chunk_sizes(self):
        config = default_config()
        assert config.chunk.chunk_size == 1000
        assert config.chunk.chunk_overlap == 200

    def test_default_retrieval_thresholds(self):
        config = default_config()
        assert config.retrieval.max_results == 5
        assert config.retrieval.min_score == pytest.approx(0.1)
        assert config.retrieval.min_results == 2

    def test_default_llm(self):
        config = default_config()
        assert config.llm.model == "llama3.2"
        assert config.llm.rag_only_forced is False
        assert config.llm.rag_only_fallback is True
        assert config.llm.system_prompt == DEFAULT_SYSTEM_PROMPT

    def test_default_index_patterns(self):
        config = default_config()
        assert "**/*.py" in config.index.include
        assert "**/node_modules/**" in config.index.exclude

    def test_sections_are_independent(self):
        a = default_config()
        b = default_config()
        a.index.include.append("**/*.rs")
        assert "**/*.rs" not in b.index.include


class TestConfigRoundTrip:
    def test_save_and_load_defaults(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        original = default_config()
        save_config(original, path)
        loaded = load_config(path)
        assert loaded == original

    def test_save_and_load_custom_values(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        config = CoderagConfig()
        config.project.name = "demo"
        config.embedding.provider = "openai"
        config.store.backend = "chroma"
        config.retrieval.min_score = 0.35
        config.llm.temperature = 0.2
        save_config(config, path)

        loaded = load_config(path)
        assert loaded.project.name == "demo"
        assert loaded.embedding.provider == "openai"
        assert loaded.store.backend == "chroma"
        assert loaded.retrieval.min_score == pytest.approx(0.35)
        assert loaded.llm.temperature == pytest.approx(0.2)

    def test_save_creates_parent_dirs(self, tmp_path: Path):
        path = tmp_path / "nested" / "dir" / "config.toml"
        save_config(default_config(), path)
        assert path.exists()


class TestLoadConfig:
    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml_raises(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text("[project\nname = ", encoding="utf-8")
        with pytest.raises(ConfigError, match="Failed to load"):
            load_config(path)

    def test_partial_config_gets_defaults(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text('[llm]\nprovider = "none"\n', encoding="utf-8")
        config = load_config(path)
        assert config.llm.provider == "none"
        assert config.llm.model == "llama3.2"
        assert config.embedding.provider == "ollama"

    def test_unknown_keys_ignored(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text('[store]\nbackend = "json"\nshards = 4\n', encoding="utf-8")
        config = load_config(path)
        assert config.store.backend == "json"

    def test_section_must_be_table(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text('store = "json"\n', encoding="utf-8")
        with pytest.raises(ConfigError, match="must be a table"):
            load_config(path)
