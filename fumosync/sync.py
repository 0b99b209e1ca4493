"""
Sync driver for fumosync.

The driver is a single background thread that owns the stream of
pending updates.  The watcher's consumer posts one message per debounce
batch; each time the driver wakes it drains every message already
buffered, reads the current contents of the affected files, and sends
them to the remote editor as one partial update.  Messages posted while
a cycle is running simply wait in the channel for the next iteration.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Protocol

from fumosync.config import DESCRIPTION_FILE, MAIN_SCRIPT_FILE, Configuration
from fumosync.errors import FumoError, ReadFileError
from fumosync.project import read_configuration, read_file
from fumosync.updates import EditorUpdate, Update, UpdateKind, dedupe, editor_updates_for

logger = logging.getLogger(__name__)

_STOP = object()


class EditorClient(Protocol):
    """The part of :class:`fumosync.client.Client` the driver needs."""

    def set_editor(self, script_id: str, updates: Iterable[EditorUpdate]) -> None:
        ...


def _plural(count: int, word: str = "update") -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


class PendingUpdates:
    """Channel of update batches, drained in full by a single consumer."""

    def __init__(self) -> None:
        self._channel: queue.Queue = queue.Queue()
        self._closed = False

    def post(self, updates: Iterable[Update]) -> bool:
        """Queue a batch as one message.  Empty batches are not sent."""
        batch = list(updates)
        if not batch:
            return False
        self._channel.put(batch)
        return True

    def close(self) -> None:
        """Ask the consumer to stop once it has drained what is queued."""
        self._channel.put(_STOP)

    @property
    def closed(self) -> bool:
        """True once the consumer has read the stop message."""
        return self._closed

    def take(self, timeout: float | None = None) -> list[Update]:
        """Wait for a message, then drain everything buffered behind it.

        Returns the distinct updates across all drained messages in
        arrival order, or an empty list if *timeout* expired first.
        """
        if self._closed:
            return self.drain()
        try:
            first = self._channel.get(timeout=timeout)
        except queue.Empty:
            return []
        return self._collect([first])

    def drain(self) -> list[Update]:
        """Take everything currently buffered without waiting."""
        return self._collect([])

    def _collect(self, messages: list) -> list[Update]:
        while True:
            try:
                messages.append(self._channel.get_nowait())
            except queue.Empty:
                break

        updates: list[Update] = []
        for message in messages:
            if message is _STOP:
                self._closed = True
            else:
                updates.extend(message)
        return dedupe(updates)


@dataclass
class CycleRecord:
    """Outcome of one sync cycle."""

    updates: list[str]
    started: float = 0.0
    finished: float = 0.0
    success: bool = False
    sent: bool = False
    error: str = ""

    @property
    def duration(self) -> float:
        if self.finished and self.started:
            return self.finished - self.started
        return 0.0


@dataclass
class SyncStats:
    """Aggregated sync statistics."""

    total_cycles: int = 0
    total_succeeded: int = 0
    total_failed: int = 0
    total_updates: int = 0
    last_error: str = ""
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, rec: CycleRecord) -> None:
        with self._lock:
            self.total_cycles += 1
            if rec.success:
                self.total_succeeded += 1
                self.total_updates += len(rec.updates)
            else:
                self.total_failed += 1
                self.last_error = rec.error


class SyncDriver(threading.Thread):
    """Background thread turning pending updates into remote editor calls."""

    def __init__(
        self,
        project_directory: Path,
        client: EditorClient,
        pending: PendingUpdates | None = None,
        on_cycle_complete: Callable[[CycleRecord], None] | None = None,
    ):
        super().__init__(daemon=True, name="SyncDriver")
        self.project_directory = Path(project_directory)
        self.client = client
        self.pending = pending or PendingUpdates()
        self.stats = SyncStats()
        self._on_cycle_complete = on_cycle_complete

    # ---- lifecycle ----

    def run(self) -> None:
        logger.info("Sync driver started for %s", self.project_directory)
        while True:
            updates = self.pending.take()
            if updates:
                self.run_cycle(updates)
            else:
                logger.debug("Woke with nothing queued.")
            if self.pending.closed:
                break
        logger.info("Sync driver stopped.")

    def stop(self, timeout: float | None = None) -> None:
        """Stop after the in-flight cycle and anything already queued."""
        self.pending.close()
        if self.is_alive():
            self.join(timeout=timeout)

    # ---- cycle ----

    def run_cycle(self, updates: list[Update]) -> CycleRecord | None:
        """Resolve *updates* and send them as one remote update.

        Returns None without touching the network when *updates* is empty.
        A failed cycle is logged and its updates are dropped.
        """
        if not updates:
            return None

        rec = CycleRecord(updates=[update.describe() for update in updates], started=time.time())
        logger.info("Processing %s...", _plural(len(updates)))
        try:
            rec.sent = self._transact(updates)
            rec.success = True
        except FumoError as exc:
            rec.error = str(exc)
            logger.error("Error whilst processing: %s", exc)
        except Exception as exc:
            rec.error = str(exc)
            logger.exception("Unexpected error whilst processing updates")
        finally:
            rec.finished = time.time()

        if rec.success:
            if rec.sent:
                logger.info("Synced successfully in %.1fs.", rec.duration)
        else:
            logger.warning("Dropped %s: %s", _plural(len(updates)), ", ".join(rec.updates))

        self.stats.record(rec)
        if self._on_cycle_complete:
            try:
                self._on_cycle_complete(rec)
            except Exception:
                logger.exception("Error in on_cycle_complete callback")
        return rec

    def _transact(self, updates: list[Update]) -> bool:
        # The id and the configuration fields come from the file as it is now.
        configuration = read_configuration(self.project_directory)

        editor_updates: list[EditorUpdate] = []
        for update in updates:
            resolved = self.resolve(update)
            if resolved is not None:
                editor_updates.extend(editor_updates_for(resolved, configuration))

        if not editor_updates:
            logger.info("Nothing left to send after resolving %s.", _plural(len(updates)))
            return False

        self.send(configuration, editor_updates)
        return True

    def resolve(self, update: Update) -> Update | None:
        """Attach the current on-disk contents to *update*.

        Returns None for module updates that no longer point at a file.
        """
        root = self.project_directory
        if update.kind is UpdateKind.MAIN_SOURCE:
            return update.resolved(read_file(root / MAIN_SCRIPT_FILE))
        if update.kind is UpdateKind.DESCRIPTION:
            return update.resolved(read_file(root / DESCRIPTION_FILE))
        if update.kind is UpdateKind.PROJECT_CONFIGURATION:
            return update

        if update.module_name is None:
            logger.warning("Module at %s has no file name, skipping...", update.path)
            return None
        path = root / update.path
        try:
            return update.resolved(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("Module at %s no longer exists, skipping...", update.path)
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise ReadFileError(path, exc) from exc

    def send(self, configuration: Configuration, editor_updates: list[EditorUpdate]) -> None:
        logger.debug(
            "Sending %s to %s",
            _plural(len(editor_updates), "field update"),
            configuration.script_id,
        )
        self.client.set_editor(configuration.script_id, editor_updates)
