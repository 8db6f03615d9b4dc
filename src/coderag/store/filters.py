"""Metadata filtering and cosine scoring shared by the store backends."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Mapping

    from coderag.types import Document

__all__ = [
    "SIMILARITY_MODES",
    "cosine_scores",
    "matches_filter",
    "normalize_filter_key",
    "resolve_field",
]

logger = logging.getLogger(__name__)

SIMILARITY_MODES = ("absolute", "signed")

_MISSING = object()

# camelCase spellings accepted for the named metadata fields
_KEY_ALIASES = {
    "filePath": "file_path",
    "startLine": "start_line",
    "endLine": "end_line",
    "chunkIndex": "chunk_index",
}


def normalize_filter_key(key: str) -> str:
    """Map camelCase segments of a flat or dotted key onto field names."""
    return ".".join(_KEY_ALIASES.get(part, part) for part in key.split("."))


def _as_record(document: Document) -> dict[str, Any]:
    return {
        "id": document.id,
        "text": document.text,
        "metadata": document.metadata.to_dict(),
    }


def resolve_field(document: Document, key: str) -> Any:
    """Look up ``key`` on a document.

    Dotted keys walk the record ``{"id", "text", "metadata": {...}}``; flat
    keys are looked up in the metadata first, then on the record itself.
    Returns a private sentinel when the field is absent.
    """
    record = _as_record(document)
    key = normalize_filter_key(key)

    if "." in key:
        current: Any = record
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return _MISSING
            current = current[part]
        return current

    metadata = record["metadata"]
    if key in metadata:
        return metadata[key]
    return record.get(key, _MISSING)


def matches_filter(document: Document, filter: Mapping[str, Any] | None) -> bool:  # noqa: A002
    """Return True if every filter entry matches; list values mean "any of"."""
    if not filter:
        return True
    for key, expected in filter.items():
        actual = resolve_field(document, key)
        if actual is _MISSING:
            return False
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def cosine_scores(matrix: np.ndarray, query: np.ndarray, mode: str = "absolute") -> np.ndarray:
    """Cosine similarity of each row of ``matrix`` against ``query``.

    ``absolute`` folds negative cosines into positive similarity, so ``v``
    and ``-v`` score 1.0. ``signed`` keeps the sign and clamps negatives to
    0. Zero-norm vectors score 0 in both modes.
    """
    if mode not in SIMILARITY_MODES:
        raise ValueError(f"Unknown similarity mode {mode!r}; expected one of {SIMILARITY_MODES}")
    if matrix.size == 0:
        return np.zeros(matrix.shape[0])

    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = float(np.linalg.norm(query))
    denom = row_norms * query_norm
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denom > 0, dots / np.where(denom > 0, denom, 1.0), 0.0)

    if mode == "absolute":
        scores = np.abs(scores)
    else:
        scores = np.clip(scores, 0.0, None)
    return np.clip(scores, 0.0, 1.0)
