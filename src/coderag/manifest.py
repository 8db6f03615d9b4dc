"""Manifest system for coderag.

Tracks indexed files with SHA-256 content hashing so ``coderag index`` can
skip unchanged files and replace only the documents of changed ones.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from coderag.exceptions import ManifestError

if TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "FileEntry",
    "Manifest",
    "compute_hash",
    "load_manifest",
    "make_entry",
    "save_manifest",
]

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 65536


@dataclass(frozen=True)
class FileEntry:
    """Immutable record of an indexed file, keyed by workspace-relative path."""

    path: str
    hash: str
    indexed: str
    chunks: int = 0
    language: str = ""


@dataclass
class Manifest:
    """Tracks all indexed files in a project.

    Uses a dict internally for O(1) lookups by path.
    Serializes to/from a list in JSON for readability.
    """

    schema_version: str = "1"
    _files: dict[str, FileEntry] = field(default_factory=dict)
    last_indexed: str = ""

    @property
    def files(self) -> list[FileEntry]:
        """Return entries as a list (for iteration and serialization)."""
        return list(self._files.values())

    @property
    def chunk_count(self) -> int:
        return sum(f.chunks for f in self._files.values())

    def add_file(self, entry: FileEntry) -> None:
        """Add or replace a file entry."""
        self._files[entry.path] = entry

    def remove_file(self, path: str) -> bool:
        """Remove an entry by path. Returns True if found and removed."""
        if path in self._files:
            del self._files[path]
            return True
        return False

    def get_file(self, path: str) -> FileEntry | None:
        return self._files.get(path)

    def clear(self) -> None:
        self._files.clear()

    def is_changed(self, path: str, current_hash: str) -> bool:
        """Return True if the file is new or its hash differs."""
        existing = self.get_file(path)
        if existing is None:
            return True
        return existing.hash != current_hash


def compute_hash(path: Path) -> str:
    """Compute SHA-256 hash of a file's contents."""
    h = hashlib.sha256()
    try:
        with path.open("rb") as f:
            while True:
                chunk = f.read(HASH_CHUNK_SIZE)
                if not chunk:
                    break
                h.update(chunk)
    except OSError as e:
        raise ManifestError(f"Failed to hash file {path}: {e}") from e
    return f"sha256:{h.hexdigest()}"


def _entry_to_dict(entry: FileEntry) -> dict[str, object]:
    d: dict[str, object] = {
        "path": entry.path,
        "hash": entry.hash,
        "indexed": entry.indexed,
        "chunks": entry.chunks,
    }
    if entry.language:
        d["language"] = entry.language
    return d


def _entry_from_dict(data: dict[str, object]) -> FileEntry:
    required = ("path", "hash", "indexed")
    missing = [k for k in required if k not in data]
    if missing:
        raise ManifestError(f"File entry missing required fields: {missing}")
    return FileEntry(
        path=str(data["path"]),
        hash=str(data["hash"]),
        indexed=str(data["indexed"]),
        chunks=int(str(data.get("chunks", 0))),
        language=str(data.get("language", "")),
    )


def save_manifest(manifest: Manifest, path: Path) -> None:
    """Save manifest to a JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "schema_version": manifest.schema_version,
        "files": [_entry_to_dict(f) for f in manifest.files],
        "last_indexed": manifest.last_indexed,
    }
    try:
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        logger.info("Saved manifest to %s", path)
    except OSError as e:
        logger.error("Failed to save manifest to %s: %s", path, e)
        raise ManifestError(f"Failed to save manifest to {path}: {e}") from e


def load_manifest(path: Path) -> Manifest:
    """Load manifest from a JSON file."""
    if not path.exists():
        raise ManifestError(f"Manifest file not found: {path}")

    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Failed to load manifest from %s: %s", path, e)
        raise ManifestError(f"Failed to load manifest from {path}: {e}") from e

    manifest = Manifest(
        schema_version=str(data.get("schema_version", "1")),
        last_indexed=str(data.get("last_indexed", "")),
    )
    for file_data in data.get("files", []):
        manifest.add_file(_entry_from_dict(file_data))

    logger.info("Loaded manifest from %s (%d files)", path, len(manifest.files))
    return manifest


def make_entry(
    rel_path: str, file_hash: str, chunks: int = 0, language: str = ""
) -> FileEntry:
    """Create a FileEntry stamped with the current UTC time."""
    return FileEntry(
        path=rel_path,
        hash=file_hash,
        indexed=datetime.now(UTC).isoformat(),
        chunks=chunks,
        language=language,
    )
