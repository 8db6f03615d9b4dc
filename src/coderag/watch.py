"""File watcher that keeps the index in step with the workspace.

watchdog reports create, modify, delete and move events for the workspace
tree. Events for paths the indexer would not index are dropped. The rest are
collected and flushed once the tree has been quiet for ``debounce`` seconds,
so an editor's burst of writes to one file costs a single re-index.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.events import FileSystemEvent, FileSystemMovedEvent
    from watchdog.observers.api import BaseObserver

    from coderag.indexing import Indexer

__all__ = ["DEFAULT_DEBOUNCE", "FileWatcher", "IndexingEventHandler", "WatchEvents"]

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.5
_IDLE_WAIT = 0.5
_JOIN_TIMEOUT = 5.0


@dataclass
class WatchEvents:
    """Files handled in one flush."""

    changed: list[Path] = field(default_factory=list)
    deleted: list[Path] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.changed or self.deleted)


class IndexingEventHandler(FileSystemEventHandler):
    """Feeds watchdog events into the indexer's watcher hooks.

    Args:
        indexer: Indexer whose ``handle_file_change``/``handle_file_delete``
            receive the events.
        debounce: Quiet period in seconds before pending paths are flushed.
    """

    def __init__(self, indexer: Indexer, debounce: float = DEFAULT_DEBOUNCE) -> None:
        super().__init__()
        self.indexer = indexer
        self.debounce = debounce
        self._lock = threading.Lock()
        self._pending: dict[Path, bool] = {}
        self._timer: threading.Timer | None = None

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.queue(_as_path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.queue(_as_path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.queue(_as_path(event.src_path), deleted=True)

    def on_moved(self, event: FileSystemMovedEvent) -> None:
        if event.is_directory:
            return
        self.queue(_as_path(event.src_path), deleted=True)
        self.queue(_as_path(event.dest_path))

    def queue(self, path: Path, *, deleted: bool = False) -> bool:
        """Record a path for the next flush and restart the quiet timer.

        Returns:
            False if the path is not indexable and was ignored.
        """
        if not self.indexer.is_indexable(self.indexer.relative_path(path)):
            return False
        with self._lock:
            self._pending[path] = deleted
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self.flush)
            self._timer.daemon = True
            self._timer.start()
        return True

    @property
    def pending(self) -> dict[Path, bool]:
        with self._lock:
            return dict(self._pending)

    def flush(self) -> WatchEvents:
        """Dispatch every pending path to the indexer.

        A path counts as deleted only if it is still missing on disk, so a
        delete followed by a re-create (atomic saves) is a change.
        """
        with self._lock:
            pending, self._pending = self._pending, {}
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

        events = WatchEvents()
        for path, deleted in pending.items():
            if deleted and not path.exists():
                events.deleted.append(path)
            else:
                events.changed.append(path)

        for path in events.changed:
            if not self.indexer.handle_file_change(path) and self.indexer.is_busy:
                # Skipped during a workspace index; try again after the next quiet period
                self.queue(path)
        for path in events.deleted:
            self.indexer.handle_file_delete(path)

        if events:
            logger.info(
                "Watcher: %d changed, %d deleted", len(events.changed), len(events.deleted)
            )
        return events

    def cancel(self) -> None:
        """Drop pending paths without dispatching them."""
        with self._lock:
            self._pending.clear()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


def _as_path(raw: str | bytes) -> Path:
    return Path(os.fsdecode(raw))


class FileWatcher:
    """Watches the indexer's root with a watchdog observer.

    Usage::

        watcher = FileWatcher(indexer)
        watcher.start()
        ...
        watcher.stop()

    Args:
        indexer: Indexer to keep up to date.
        debounce: Quiet period in seconds before changes are re-indexed.
    """

    def __init__(self, indexer: Indexer, debounce: float = DEFAULT_DEBOUNCE) -> None:
        self.indexer = indexer
        self.handler = IndexingEventHandler(indexer, debounce)
        self._observer: BaseObserver | None = None
        self._stop = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start the observer thread. Calling it twice is a no-op."""
        if self._observer is not None:
            return
        observer = Observer()
        observer.daemon = True
        observer.schedule(self.handler, str(self.indexer.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching %s (debounce %.1fs)", self.indexer.root, self.handler.debounce)

    def run(self) -> None:
        """Start watching and block until :meth:`stop` is called."""
        self.start()
        try:
            while not self._stop.is_set():
                self._stop.wait(_IDLE_WAIT)
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the observer and discard changes not yet flushed."""
        self._stop.set()
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=_JOIN_TIMEOUT)
        self.handler.cancel()
        logger.info("Watcher stopped")
