"""Project manager for coderag.

Handles project initialization, status reporting, and project root discovery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from coderag.config import CoderagConfig, default_config, load_config, save_config
from coderag.manifest import Manifest, load_manifest, save_manifest

__all__ = [
    "CONFIG_FILE",
    "MANIFEST_FILE",
    "PROJECT_DIR",
    "ProjectManager",
    "ProjectStatus",
]

logger = logging.getLogger(__name__)

PROJECT_DIR = ".coderag"
CONFIG_FILE = "config.toml"
MANIFEST_FILE = "manifest.json"

SUBDIRS = [
    "index",
    "cache",
]


@dataclass
class ProjectStatus:
    """Summary of the current project state."""

    initialized: bool
    root: Path
    file_count: int
    chunk_count: int
    last_indexed: str
    config: CoderagConfig | None


class ProjectManager:
    """Manages coderag project lifecycle."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or Path.cwd()

    @property
    def project_dir(self) -> Path:
        return self.root / PROJECT_DIR

    @property
    def config_path(self) -> Path:
        return self.project_dir / CONFIG_FILE

    @property
    def manifest_path(self) -> Path:
        return self.project_dir / MANIFEST_FILE

    @property
    def index_dir(self) -> Path:
        return self.project_dir / "index"

    @property
    def cache_dir(self) -> Path:
        return self.project_dir / "cache"

    @property
    def is_initialized(self) -> bool:
        return (
            self.project_dir.is_dir()
            and self.config_path.exists()
            and self.manifest_path.exists()
        )

    def init(self, name: str = "", embedding_provider: str = "", llm_provider: str = "") -> Path:
        """Initialize a new coderag project.

        Creates the .coderag/ directory structure, default config, and an empty
        manifest. Safe to call on an already-initialized project (idempotent).

        Returns the .coderag/ directory path.
        """
        self.project_dir.mkdir(parents=True, exist_ok=True)
        for subdir in SUBDIRS:
            (self.project_dir / subdir).mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            config = load_config(self.config_path)
            logger.info("Existing config found at %s", self.config_path)
        else:
            config = default_config()

        if embedding_provider:
            config.embedding.provider = embedding_provider
        if llm_provider:
            config.llm.provider = llm_provider
        if name:
            config.project.name = name
        elif not config.project.name:
            config.project.name = self.root.name

        save_config(config, self.config_path)

        if not self.manifest_path.exists():
            save_manifest(Manifest(), self.manifest_path)

        logger.info("Initialized coderag project at %s", self.project_dir)
        return self.project_dir

    def load_config(self) -> CoderagConfig:
        return load_config(self.config_path)

    def load_manifest(self) -> Manifest:
        return load_manifest(self.manifest_path)

    def save_manifest(self, manifest: Manifest) -> None:
        save_manifest(manifest, self.manifest_path)

    def status(self) -> ProjectStatus:
        """Get current project status."""
        if not self.is_initialized:
            return ProjectStatus(
                initialized=False,
                root=self.root,
                file_count=0,
                chunk_count=0,
                last_indexed="",
                config=None,
            )

        config = self.load_config()
        manifest = self.load_manifest()

        return ProjectStatus(
            initialized=True,
            root=self.root,
            file_count=len(manifest.files),
            chunk_count=manifest.chunk_count,
            last_indexed=manifest.last_indexed,
            config=config,
        )

    @staticmethod
    def find_project_root(start: Path | None = None) -> Path | None:
        """Walk up from start directory to find a .coderag/ directory.

        Returns the project root (parent of .coderag/) or None if not found.
        """
        current = (start or Path.cwd()).resolve()
        while True:
            if (current / PROJECT_DIR).is_dir():
                return current
            parent = current.parent
            if parent == current:
                return None
            current = parent
