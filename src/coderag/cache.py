"""Two-tier cache: bounded in-memory map plus one JSON file per key on disk.

Entries expire lazily on access and actively through a periodic sweep that
runs on a daemon thread. Disk failures are logged and swallowed: the cache
degrades to memory-only rather than failing its caller.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path
    from types import TracebackType

__all__ = ["CacheEntry", "CacheService", "embedding_cache_key"]

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 60 * 60 * 1000
DEFAULT_MAX_MEMORY_ENTRIES = 100
DEFAULT_SWEEP_INTERVAL_S = 60 * 60


def embedding_cache_key(model: str, text: str) -> str:
    """Cache key for an embedding vector: model id plus SHA-256 of the text."""
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"embedding:{model}:{digest}"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its creation time and lifetime, both in milliseconds."""

    value: Any
    timestamp: int
    ttl: int

    def is_expired(self, now: int) -> bool:
        return now - self.timestamp > self.ttl

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "timestamp": self.timestamp, "ttl": self.ttl}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(value=data["value"], timestamp=int(data["timestamp"]), ttl=int(data["ttl"]))


class CacheService:
    """Memory + disk cache with TTL expiry and oldest-first memory eviction.

    Args:
        cache_dir: Directory for the persistent tier. ``None`` disables it.
        max_memory_entries: Memory tier bound; exceeding it evicts the entry
            with the oldest timestamp.
        default_ttl_ms: Lifetime used when ``set`` gets no ``ttl_ms``.
        sweep_interval_s: Period of the background expiry sweep.
        clock: Millisecond clock, for tests.

    Usage::

        with CacheService(project.cache_dir) as cache:
            cache.set("k", [0.1, 0.2], persistent=True)
            cache.get("k")
    """

    def __init__(
        self,
        cache_dir: Path | None = None,
        *,
        max_memory_entries: int = DEFAULT_MAX_MEMORY_ENTRIES,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._cache_dir = cache_dir
        self._max_entries = max_memory_entries
        self._default_ttl = default_ttl_ms
        self._sweep_interval = sweep_interval_s
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

        if cache_dir is not None:
            try:
                cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("Cache dir %s unavailable, using memory only: %s", cache_dir, e)
                self._cache_dir = None

    # --- Public API ---

    def get(self, key: str, *, check_persistent: bool = True) -> Any | None:
        """Return the cached value for ``key``, or ``None`` if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._memory.get(key)
            if entry is not None:
                if entry.is_expired(now):
                    del self._memory[key]
                    logger.debug("Memory entry expired: %s", key)
                else:
                    return entry.value

        if not check_persistent or self._cache_dir is None:
            return None

        entry = self._read_file(key)
        if entry is None:
            return None
        if entry.is_expired(now):
            self._delete_file(key)
            return None

        with self._lock:
            self._memory[key] = entry
            self._evict_locked()
        logger.debug("Promoted disk entry into memory: %s", key)
        return entry.value

    def set(
        self,
        key: str,
        value: Any,
        *,
        ttl_ms: int | None = None,
        persistent: bool = False,
    ) -> None:
        """Store ``value``; with ``persistent`` also write it to disk."""
        entry = CacheEntry(
            value=value,
            timestamp=self._clock(),
            ttl=self._default_ttl if ttl_ms is None else ttl_ms,
        )
        with self._lock:
            self._memory.pop(key, None)
            self._memory[key] = entry
            self._evict_locked()

        if persistent and self._cache_dir is not None:
            self._write_file(key, entry)

    def remove(self, key: str) -> None:
        """Remove ``key`` from both tiers."""
        with self._lock:
            self._memory.pop(key, None)
        if self._cache_dir is not None:
            self._delete_file(key)

    def clear(self) -> None:
        """Drop every entry from both tiers."""
        with self._lock:
            self._memory.clear()
        if self._cache_dir is None:
            return
        try:
            files = list(self._cache_dir.glob("*.json"))
        except OSError as e:
            logger.error("Failed to list cache dir %s: %s", self._cache_dir, e)
            return
        for path in files:
            try:
                path.unlink()
            except OSError as e:
                logger.error("Failed to delete cache file %s: %s", path, e)
        logger.info("Cleared cache (%d files)", len(files))

    def sweep(self) -> int:
        """Remove expired entries from both tiers. Returns the number removed.

        Disk files that fail to parse are removed as well.
        """
        now = self._clock()
        removed = 0
        with self._lock:
            expired = [k for k, e in self._memory.items() if e.is_expired(now)]
            for key in expired:
                del self._memory[key]
            removed += len(expired)

        if self._cache_dir is not None:
            removed += self._sweep_files(now)

        if removed:
            logger.info("Cache sweep removed %d entries", removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._memory)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._memory

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the background sweep thread (idempotent)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="coderag-cache-sweep", daemon=True
        )
        self._sweeper.start()
        logger.debug("Cache sweep started (interval=%ss)", self._sweep_interval)

    def close(self) -> None:
        """Stop the background sweep thread."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def __enter__(self) -> CacheService:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # --- Internals ---

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")

    def _evict_locked(self) -> None:
        while len(self._memory) > self._max_entries:
            oldest = min(self._memory, key=lambda k: self._memory[k].timestamp)
            del self._memory[oldest]
            logger.debug("Evicted oldest memory entry: %s", oldest)

    def _file_for(self, key: str) -> Path:
        assert self._cache_dir is not None
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324 (file naming only)
        return self._cache_dir / f"{digest}.json"

    def _read_file(self, key: str) -> CacheEntry | None:
        path = self._file_for(key)
        if not path.exists():
            return None
        try:
            return CacheEntry.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error("Failed to read cache file %s: %s", path, e)
            return None

    def _write_file(self, key: str, entry: CacheEntry) -> None:
        path = self._file_for(key)
        try:
            path.write_text(json.dumps(entry.to_dict()), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to write cache file %s: %s", path, e)

    def _delete_file(self, key: str) -> None:
        path = self._file_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to delete cache file %s: %s", path, e)

    def _sweep_files(self, now: int) -> int:
        assert self._cache_dir is not None
        removed = 0
        try:
            files = list(self._cache_dir.glob("*.json"))
        except OSError as e:
            logger.error("Failed to list cache dir %s: %s", self._cache_dir, e)
            return 0
        for path in files:
            try:
                entry = CacheEntry.from_dict(json.loads(path.read_text(encoding="utf-8")))
                stale = entry.is_expired(now)
            except (OSError, ValueError, KeyError, TypeError):
                stale = True
            if not stale:
                continue
            try:
                path.unlink(missing_ok=True)
                removed += 1
            except OSError as e:
                logger.error("Failed to delete cache file %s: %s", path, e)
        return removed
