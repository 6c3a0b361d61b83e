"""Incremental re-indexing driven by file-system events (watchdog).

States::

    STOPPED ──start()──▶ STARTING ──initial scan done──▶ WATCHING
       ▲                                                   │
       └──────────────────────stop()───────────────────────┘

While WATCHING, a created or modified note is re-indexed once it has been
quiet for ``debounce_ms`` (per path, so a burst of saves costs one re-index).
A deleted note leaves the store at once and cancels any pending re-index of
the same path. ``stop()`` cancels every pending timer and waits for a
re-index or removal already in progress before it returns; events that
still trickle in afterwards are ignored.
"""

from __future__ import annotations

import enum
import logging
import os
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from notewell.db.paths import is_same_or_subpath, normalize_path
from notewell.db.store import ContentStore
from notewell.ingest.scanner import (
    DEFAULT_EXTENSIONS,
    DEFAULT_MAX_DEPTH,
    ScanResult,
    index_file,
    is_indexable,
    scan_root,
    switch_root,
)

logger = logging.getLogger(__name__)

TimerFactory = Callable[..., Any]


class WatcherState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    WATCHING = "watching"


class Debouncer:
    """Per-key trailing-edge debounce on top of ``threading.Timer``.

    Scheduling a key that already has a pending timer cancels it and starts
    a new one, so the callback runs once, *delay* seconds after the last
    call.
    """

    def __init__(self, delay: float, timer_factory: TimerFactory = threading.Timer) -> None:
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timers: dict[str, Any] = {}
        self._generation: dict[str, int] = {}

    def schedule(self, key: str, callback: Callable[[], None]) -> None:
        with self._lock:
            previous = self._timers.pop(key, None)
            if previous is not None:
                previous.cancel()
            generation = self._generation.get(key, 0) + 1
            self._generation[key] = generation
            timer = self._timer_factory(self.delay, self._fire, args=(key, generation, callback))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def cancel(self, key: str) -> bool:
        """Cancel the pending callback for *key*. True if one was pending."""
        with self._lock:
            timer = self._timers.pop(key, None)
            self._generation.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> int:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self._generation.clear()
        for timer in timers:
            timer.cancel()
        return len(timers)

    def pending(self) -> list[str]:
        with self._lock:
            return sorted(self._timers)

    def _fire(self, key: str, generation: int, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._generation.get(key) != generation:
                return  # superseded or cancelled
            self._timers.pop(key, None)
            self._generation.pop(key, None)
        try:
            callback()
        except Exception:
            logger.exception("Debounced callback for %s failed", key)


class _NoteEventHandler(FileSystemEventHandler):
    """Forwards watchdog events to the owning NoteWatcher."""

    def __init__(self, watcher: NoteWatcher, session: int) -> None:
        super().__init__()
        self._watcher = watcher
        self._session = session

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.handle_change(event.src_path, self._session)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.handle_change(event.src_path, self._session)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._watcher.handle_unlink(event.src_path, event.is_directory, self._session)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._watcher.handle_unlink(event.src_path, event.is_directory, self._session)
        if not event.is_directory:
            self._watcher.handle_change(event.dest_path, self._session)


class NoteWatcher:
    """Keeps a ContentStore in sync with one notes folder.

    Args:
        store: Initialized content store.
        extensions: Note file extensions to index.
        max_depth: Deepest directory level (below the root) that is indexed.
        debounce_ms: Quiet period before a changed file is re-indexed.
        on_change: Called after any re-index or removal (e.g. to wake the
            embedding pool).
        observer_factory: Builds the watchdog observer.
        timer_factory: ``threading.Timer``-compatible factory for debouncing.
    """

    def __init__(
        self,
        store: ContentStore,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        max_depth: int = DEFAULT_MAX_DEPTH,
        debounce_ms: int = 1_000,
        on_change: Callable[[], None] | None = None,
        observer_factory: Callable[[], Any] = Observer,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._store = store
        self._extensions = tuple(extensions)
        self._max_depth = max_depth
        self._on_change = on_change
        self._observer_factory = observer_factory
        self._debouncer = Debouncer(debounce_ms / 1000.0, timer_factory)
        self._lock = threading.RLock()
        self._state = WatcherState.STOPPED
        self._root: str | None = None
        self._observer: Any = None
        self._session = 0

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def root(self) -> str | None:
        return self._root

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, root: Path | str, scan: bool = True) -> ScanResult | None:
        """Watch *root*, replacing any folder watched so far.

        The previous watch is fully stopped first. Switching to an unrelated
        folder clears the index; the initial scan then indexes new and
        modified notes before live events are processed.

        Raises:
            NotADirectoryError: If *root* is not an existing directory.
        """
        self.stop()
        root_key = normalize_path(root)
        if not Path(root_key).is_dir():
            raise NotADirectoryError(f"Not a directory: {root}")

        with self._lock:
            self._session += 1
            session = self._session
            self._state = WatcherState.STARTING
            self._root = root_key

        try:
            switch_root(self._store, root_key)
            result = (
                scan_root(self._store, root_key, self._extensions, self._max_depth)
                if scan
                else None
            )
            if result is not None and result.indexed:
                self._notify()

            with self._lock:
                if self._session != session:
                    return result  # stopped while scanning
                observer = self._observer_factory()
                observer.schedule(_NoteEventHandler(self, session), root_key, recursive=True)
                observer.start()
                self._observer = observer
                self._state = WatcherState.WATCHING
        except Exception:
            with self._lock:
                self._state = WatcherState.STOPPED
            raise

        logger.info("Watching %s", root_key)
        return result

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop watching.

        Pending re-index timers are cancelled, and a store write already in
        progress finishes before this returns.
        """
        with self._lock:
            if self._state is WatcherState.STOPPED and self._observer is None:
                return
            self._session += 1
            self._state = WatcherState.STOPPED
            observer, self._observer = self._observer, None
            cancelled = self._debouncer.cancel_all()
        if cancelled:
            logger.debug("Cancelled %d pending re-index timers", cancelled)
        if observer is not None:
            observer.stop()
            observer.join(timeout)
        logger.info("Stopped watching %s", self._root)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def handle_change(self, path: str, session: int | None = None) -> bool:
        """Schedule a debounced re-index of *path*. True if scheduled."""
        with self._lock:
            if not self._accepts(session) or self._root is None:
                return False
            if not is_indexable(path, self._root, self._extensions, self._max_depth):
                return False
            key = normalize_path(path)
            current = self._session
            self._debouncer.schedule(key, lambda: self._reindex(key, current))
        return True

    def handle_unlink(self, path: str, is_directory: bool = False, session: int | None = None) -> int:
        """Drop *path* (or everything under a deleted directory) from the store now.

        Returns the number of notes removed.
        """
        key = normalize_path(path)
        removed = 0
        with self._lock:
            if not self._accepts(session):
                return 0
            try:
                if is_directory:
                    for record in self._store.list_files():
                        if is_same_or_subpath(record.path, key):
                            self._debouncer.cancel(record.path)
                            removed += int(self._store.delete_file_by_path(record.path))
                else:
                    self._debouncer.cancel(key)
                    removed = int(self._store.delete_file_by_path(key))
            except Exception:
                logger.exception("Removing %s from the index failed", key)
                return removed
        if removed:
            logger.debug("Removed %d note(s) under %s", removed, key)
            self._notify()
        return removed

    def _accepts(self, session: int | None) -> bool:
        if self._state is not WatcherState.WATCHING:
            return False
        return session is None or session == self._session

    def _reindex(self, key: str, session: int) -> None:
        # Store writes happen under the lock so stop() waits for them.
        with self._lock:
            if not self._accepts(session):
                return
            if not os.path.isfile(key):
                changed = self._store.delete_file_by_path(key)
            else:
                try:
                    index_file(self._store, key)
                except (OSError, ValueError, sqlite3.Error) as exc:
                    logger.warning("Failed to re-index %s: %s", key, exc)
                    return
                logger.debug("Re-indexed %s", key)
                changed = True
        if changed:
            self._notify()

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            logger.exception("Change callback failed")
