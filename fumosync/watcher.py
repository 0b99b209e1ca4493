"""File system watcher for fumosync.

Uses the watchdog library to monitor a project, debounces the raw
events into batches, classifies each batch into project updates and
hands them to the :class:`~fumosync.sync.SyncDriver`.

Threads involved while watching:

* the watchdog observer, feeding raw events into the :class:`Debouncer`;
* the debouncer's ticker, pushing quiet batches into a bounded channel;
* the event consumer, classifying batches and posting updates;
* the sync driver, performing one remote update per wake-up.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from fumosync.config import PACKAGE_DIRECTORY
from fumosync.errors import PathDiffError, WatchSetupError
from fumosync.paths import EventKind, classify, relative_to_project, should_classify
from fumosync.project import push
from fumosync.sync import EditorClient, PendingUpdates, SyncDriver
from fumosync.updates import Update

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0
CHANNEL_CAPACITY = 32

_ACCESS_EVENT_TYPES = frozenset({"opened", "closed", "closed_no_write"})

_STOP = object()


@dataclass(frozen=True)
class RawEvent:
    """A filesystem event reduced to what the classifier needs."""

    kind: EventKind
    paths: tuple[str, ...]


def _fspath(path: Any) -> str:
    return os.fsdecode(path)


def translate_event(event: FileSystemEvent) -> RawEvent:
    """Convert a watchdog event into a :class:`RawEvent`."""
    src = _fspath(event.src_path)
    event_type = event.event_type
    if event_type == EVENT_TYPE_CREATED:
        return RawEvent(EventKind.CREATE, (src,))
    if event_type == EVENT_TYPE_DELETED:
        return RawEvent(EventKind.REMOVE, (src,))
    if event_type == EVENT_TYPE_MODIFIED:
        return RawEvent(EventKind.MODIFY, (src,))
    if event_type == EVENT_TYPE_MOVED:
        dest = getattr(event, "dest_path", "")
        paths = (src, _fspath(dest)) if dest else (src,)
        return RawEvent(EventKind.RENAME, paths)
    if event_type in _ACCESS_EVENT_TYPES:
        return RawEvent(EventKind.ACCESS, (src,))
    return RawEvent(EventKind.OTHER, (src,))


@dataclass
class _PendingPath:
    events: list[RawEvent]
    last_seen: float


class Debouncer(FileSystemEventHandler):
    """Coalesces raw events per path and releases them once the path is quiet.

    Every event for a path is kept in arrival order (repeats collapse
    into the first occurrence) and each one refreshes the path's
    last-seen time.  A ticker thread running every quarter interval
    delivers, as one batch, the events of every path not touched for a
    full *timeout*.  A rename is filed under its destination.
    """

    def __init__(
        self,
        timeout: float,
        on_batch: Callable[[list[RawEvent]], None],
        tick: float | None = None,
    ):
        super().__init__()
        self._timeout = timeout
        self._tick = tick if tick is not None else max(timeout / 4, 0.05)
        self._on_batch = on_batch
        self._pending: dict[str, _PendingPath] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def pending_count(self) -> int:
        """Number of paths waiting to go quiet."""
        with self._lock:
            return len(self._pending)

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="Debouncer")
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def on_any_event(self, event: FileSystemEvent) -> None:
        self.push(translate_event(event))

    def push(self, event: RawEvent, now: float | None = None) -> None:
        """Record *event* as seen at *now*."""
        now = time.monotonic() if now is None else now
        key = event.paths[-1]
        with self._lock:
            entry = self._pending.get(key)
            if entry is None:
                self._pending[key] = _PendingPath([event], now)
                return
            if event not in entry.events:
                entry.events.append(event)
            entry.last_seen = now

    def flush(self, now: float | None = None) -> list[RawEvent]:
        """Remove and return the events of every path that has been quiet long enough."""
        now = time.monotonic() if now is None else now
        ready: list[RawEvent] = []
        with self._lock:
            quiet = [
                key for key, entry in self._pending.items() if now - entry.last_seen >= self._timeout
            ]
            for key in quiet:
                ready.extend(self._pending.pop(key).events)
        return ready

    def _run(self) -> None:
        while not self._stop.wait(timeout=self._tick):
            batch = self.flush()
            if not batch:
                continue
            try:
                self._on_batch(batch)
            except Exception:
                logger.exception("Error delivering %d debounced events", len(batch))


class ProjectWatcher:
    """Watches a project and posts classified updates to a sync driver.

    The project root is watched non-recursively and the module directory
    recursively.  ``start`` raises ``WatchSetupError`` if either watch
    cannot be established.
    """

    def __init__(
        self,
        project_directory: Path,
        pending: PendingUpdates,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        channel_capacity: int = CHANNEL_CAPACITY,
    ):
        self.project_directory = Path(project_directory)
        self._pending = pending
        self._channel: queue.Queue = queue.Queue(maxsize=channel_capacity)
        self._debouncer = Debouncer(debounce_seconds, self._channel.put)
        self._observer: Any | None = None
        self._consumer: threading.Thread | None = None

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching the project."""
        root = self.project_directory
        package = root / PACKAGE_DIRECTORY
        for path in (root, package):
            if not path.is_dir():
                raise WatchSetupError(f"cannot watch {path}: not a directory")

        observer = Observer()
        try:
            observer.schedule(self._debouncer, str(root), recursive=False)
            observer.schedule(self._debouncer, str(package), recursive=True)
            observer.start()
        except OSError as exc:
            observer.stop()
            raise WatchSetupError(f"failed watching {root}: {exc}") from exc

        self._observer = observer
        self._debouncer.start()
        self._consumer = threading.Thread(target=self._consume, daemon=True, name="EventConsumer")
        self._consumer.start()
        logger.info(
            "Watcher is ready to receive events in '%s' (debounce=%.1fs)",
            root,
            self._debouncer.timeout,
        )

    def stop(self) -> None:
        """Stop watching and release resources."""
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._debouncer.stop()
        if self._consumer is not None:
            self._channel.put(_STOP)
            self._consumer.join(timeout=5)
            self._consumer = None
        logger.info("Watcher stopped.")

    @property
    def is_running(self) -> bool:
        """Return whether the watcher is currently active."""
        return self._observer is not None and self._observer.is_alive()

    # ---- event consumer ----

    def _consume(self) -> None:
        while True:
            batch = self._channel.get()
            if batch is _STOP:
                break
            try:
                self.handle_batch(batch)
            except Exception:
                logger.exception("Error handling %d events", len(batch))

    def handle_batch(self, events: list[RawEvent]) -> list[Update]:
        """Classify one debounced batch and post its updates as one message."""
        root = self.project_directory
        updates: list[Update] = []
        for event in events:
            if not should_classify(event.kind):
                logger.debug("Skipping %s event for %s", event.kind.value, ", ".join(event.paths))
                continue
            for raw_path in event.paths:
                try:
                    relative = relative_to_project(raw_path, root)
                except PathDiffError as exc:
                    logger.warning("%s; skipping event", exc)
                    continue
                update = classify(relative, root)
                if update is not None:
                    updates.append(update)

        if self._pending.post(updates):
            logger.debug("Queued %d updates from %d events", len(updates), len(events))
        elif events:
            logger.debug("Ignored batch of %d events", len(events))
        return updates


def watch(
    project_directory: Path,
    client: EditorClient,
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    stop_event: threading.Event | None = None,
) -> SyncDriver:
    """Push the project, then keep it in sync until *stop_event* is set.

    Returns the (stopped) driver so callers can inspect its statistics.
    """
    try:
        root = Path(project_directory).resolve(strict=True)
    except OSError as exc:
        raise WatchSetupError(f"cannot watch {project_directory}: {exc}") from exc

    push(client, root)

    pending = PendingUpdates()
    driver = SyncDriver(root, client, pending)
    watcher = ProjectWatcher(root, pending, debounce_seconds)
    stop = stop_event or threading.Event()

    driver.start()
    try:
        watcher.start()
        while not stop.wait(timeout=1):
            pass
    finally:
        watcher.stop()
        driver.stop(timeout=30)
        stats = driver.stats
        logger.info(
            "Watch ended: %d cycles, %d succeeded, %d failed, %d updates synced",
            stats.total_cycles,
            stats.total_succeeded,
            stats.total_failed,
            stats.total_updates,
        )
    return driver
