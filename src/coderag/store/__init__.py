"""Vector store: brute-force JSON store and ChromaDB persistent storage."""

from __future__ import annotations

from typing import TYPE_CHECKING

from coderag.exceptions import StoreError
from coderag.registry import default_registry
from coderag.store.base import BaseStore
from coderag.store.json_store import STORE_FILE, JsonStore

if TYPE_CHECKING:
    from pathlib import Path

    from coderag.config import CoderagConfig

__all__ = ["BaseStore", "JsonStore"]


def _create_json(config: CoderagConfig, index_dir: Path | None = None) -> BaseStore:
    persist_path = index_dir / STORE_FILE if index_dir is not None else None
    return JsonStore(persist_path=persist_path, similarity=config.store.similarity)


def _create_chroma(config: CoderagConfig, index_dir: Path | None = None) -> BaseStore:
    from coderag.store.chroma import ChromaStore

    if index_dir is None:
        raise StoreError("ChromaStore requires an index directory")
    return ChromaStore(
        persist_path=index_dir / "chroma",
        collection_name=config.store.collection_name,
        similarity=config.store.similarity,
    )


# Stores need the project's index dir, passed as ``create(..., index_dir=...)``
default_registry.register("store", "json", _create_json)
default_registry.register("store", "chroma", _create_chroma)
