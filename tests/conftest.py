"""Shared fixtures for coderag tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from coderag.config import CoderagConfig, save_config
from coderag.manifest import Manifest, save_manifest
from coderag.project import CONFIG_FILE, MANIFEST_FILE, PROJECT_DIR

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A temporary directory simulating a project root."""
    return tmp_path


@pytest.fixture
def initialized_project(tmp_path: Path) -> Path:
    """A temporary project with .coderag/ already initialized.

    Uses the JSON store and no LLM so nothing touches the network.
    """
    project = tmp_path / PROJECT_DIR
    project.mkdir()
    for subdir in ("index", "cache"):
        (project / subdir).mkdir(parents=True)

    config = CoderagConfig()
    config.project.name = "test-project"
    config.store.backend = "json"
    config.llm.provider = "none"
    save_config(config, project / CONFIG_FILE)
    save_manifest(Manifest(), project / MANIFEST_FILE)

    return tmp_path


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    """A small sample file for hash testing."""
    f = tmp_path / "sample.txt"
    f.write_text("Hello, workspace!", encoding="utf-8")
    return f


@pytest.fixture
def workspace_tree(tmp_path: Path) -> Path:
    """A small source tree with indexable and excluded files."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text(
        "def greet(name):\n    return f'hello {name}'\n", encoding="utf-8"
    )
    (tmp_path / "src" / "style.css").write_text(
        ".header {\n    color: red;\n}\n", encoding="utf-8"
    )
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "lib.js").write_text("module.exports = 1;\n", encoding="utf-8")
    return tmp_path
