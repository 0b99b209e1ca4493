"""Tests for event translation, debouncing and the watch pipeline."""

import json
import threading
import time
from types import SimpleNamespace

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from fumosync.errors import WatchSetupError
from fumosync.paths import EventKind
from fumosync.sync import PendingUpdates, SyncDriver
from fumosync.updates import Update
from fumosync.watcher import Debouncer, ProjectWatcher, RawEvent, translate_event, watch

from tests.conftest import SCRIPT_ID


class CountingPending(PendingUpdates):
    def __init__(self):
        super().__init__()
        self.posts = []

    def post(self, updates):
        updates = list(updates)
        self.posts.append(updates)
        return super().post(updates)


def modify(path):
    return RawEvent(EventKind.MODIFY, (str(path),))


# ── translate_event ───────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "event, kind",
    [
        (FileCreatedEvent("/p/a"), EventKind.CREATE),
        (FileDeletedEvent("/p/a"), EventKind.REMOVE),
        (FileModifiedEvent("/p/a"), EventKind.MODIFY),
        (DirModifiedEvent("/p"), EventKind.MODIFY),
        (FileClosedEvent("/p/a"), EventKind.ACCESS),
    ],
)
def test_translate_single_path_events(event, kind):
    raw = translate_event(event)
    assert raw.kind is kind
    assert raw.paths == (event.src_path,)


def test_translate_move_keeps_both_paths():
    raw = translate_event(FileMovedEvent("/p/pkg/a.luau", "/p/pkg/b.luau"))
    assert raw == RawEvent(EventKind.RENAME, ("/p/pkg/a.luau", "/p/pkg/b.luau"))


def test_translate_unknown_event_type():
    raw = translate_event(SimpleNamespace(event_type="weird", src_path="/p/a"))
    assert raw.kind is EventKind.OTHER


# ── Debouncer ─────────────────────────────────────────────────────────────────


def test_debouncer_holds_events_until_quiet():
    debouncer = Debouncer(2.0, on_batch=lambda batch: None)
    a = modify("/p/a")
    debouncer.push(a, now=0.0)
    assert debouncer.flush(now=1.9) == []
    assert debouncer.flush(now=2.0) == [a]
    assert debouncer.pending_count == 0


def test_debouncer_coalesces_repeated_events():
    debouncer = Debouncer(2.0, on_batch=lambda batch: None)
    a = modify("/p/a")
    b = modify("/p/b")
    debouncer.push(a, now=0.0)
    debouncer.push(b, now=1.0)
    debouncer.push(a, now=1.5)

    assert debouncer.pending_count == 2
    assert debouncer.flush(now=3.0) == [b]
    assert debouncer.flush(now=3.5) == [a]


def test_debouncer_releases_in_arrival_order():
    debouncer = Debouncer(1.0, on_batch=lambda batch: None)
    events = [modify(f"/p/{name}") for name in "cab"]
    for offset, event in enumerate(events):
        debouncer.push(event, now=offset * 0.1)
    assert debouncer.flush(now=10.0) == events


def test_debouncer_groups_events_by_path():
    debouncer = Debouncer(2.0, on_batch=lambda batch: None)
    created = RawEvent(EventKind.CREATE, ("/p/pkg/foo.luau",))
    modified = modify("/p/pkg/foo.luau")
    other = modify("/p/README.md")
    debouncer.push(created, now=0.0)
    debouncer.push(modified, now=0.0)
    debouncer.push(other, now=0.5)
    debouncer.push(modified, now=1.0)

    assert debouncer.pending_count == 2
    assert debouncer.flush(now=2.5) == [other]
    # The later modify keeps the path open, the create waits with it.
    assert debouncer.flush(now=2.9) == []
    assert debouncer.flush(now=3.0) == [created, modified]


def test_debouncer_files_rename_under_destination():
    debouncer = Debouncer(1.0, on_batch=lambda batch: None)
    renamed = RawEvent(EventKind.RENAME, ("/p/pkg/a.luau", "/p/pkg/b.luau"))
    debouncer.push(renamed, now=0.0)
    debouncer.push(modify("/p/pkg/b.luau"), now=0.5)
    assert debouncer.flush(now=1.2) == []
    assert debouncer.flush(now=1.5) == [renamed, modify("/p/pkg/b.luau")]


def test_debouncer_ticker_delivers_batches():
    batches = []
    delivered = threading.Event()

    def on_batch(batch):
        batches.append(batch)
        delivered.set()

    debouncer = Debouncer(0.05, on_batch=on_batch, tick=0.01)
    debouncer.start()
    try:
        debouncer.push(modify("/p/a"))
        assert delivered.wait(timeout=5)
    finally:
        debouncer.stop()
    assert batches == [[modify("/p/a")]]


# ── ProjectWatcher.handle_batch ───────────────────────────────────────────────


def test_noise_events_contribute_nothing(project):
    pending = CountingPending()
    watcher = ProjectWatcher(project, pending)
    main = str(project / "init.server.luau")

    updates = watcher.handle_batch(
        [
            RawEvent(EventKind.METADATA, (main,)),
            RawEvent(EventKind.ACCESS, (main,)),
            RawEvent(EventKind.OTHER, (main,)),
        ]
    )

    assert updates == []
    assert pending.drain() == []


def test_one_message_per_batch(project):
    pending = CountingPending()
    watcher = ProjectWatcher(project, pending)
    (project / "pkg" / "a.luau").write_text("")

    watcher.handle_batch(
        [
            modify(project / "init.server.luau"),
            modify(project / "README.md"),
            RawEvent(EventKind.CREATE, (str(project / "pkg" / "a.luau"),)),
            modify(project / "types.d.luau"),
        ]
    )

    assert len(pending.posts) == 1
    assert pending.drain() == [
        Update.main_source(),
        Update.description(),
        Update.module("pkg/a.luau"),
    ]


def test_rename_classifies_both_ends(project):
    pending = PendingUpdates()
    watcher = ProjectWatcher(project, pending)
    (project / "pkg" / "new.luau").write_text("")

    watcher.handle_batch(
        [
            RawEvent(
                EventKind.RENAME,
                (str(project / "pkg" / "old.luau"), str(project / "pkg" / "new.luau")),
            )
        ]
    )
    assert pending.drain() == [Update.module("pkg/old.luau"), Update.module("pkg/new.luau")]


def test_undiffable_path_is_skipped_and_batch_continues(project):
    pending = PendingUpdates()
    watcher = ProjectWatcher(project, pending)

    watcher.handle_batch(
        [
            modify("relative/init.server.luau"),
            modify(project / "README.md"),
        ]
    )
    assert pending.drain() == [Update.description()]


def test_start_requires_module_directory(project):
    (project / "pkg").rmdir()
    watcher = ProjectWatcher(project, PendingUpdates())
    with pytest.raises(WatchSetupError):
        watcher.start()
    assert not watcher.is_running


class FailingObserver:
    def __init__(self):
        self.scheduled = []
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((path, recursive))

    def start(self):
        raise OSError("inotify watch limit reached")

    def stop(self):
        self.stopped = True


def test_observer_is_stopped_when_start_fails(project, monkeypatch):
    observer = FailingObserver()
    monkeypatch.setattr("fumosync.watcher.Observer", lambda: observer)
    watcher = ProjectWatcher(project, PendingUpdates())

    with pytest.raises(WatchSetupError):
        watcher.start()

    assert len(observer.scheduled) == 2
    assert observer.stopped
    assert not watcher.is_running


# ── end to end, with a controlled clock ───────────────────────────────────────


def run_pipeline(project, client, events):
    """Debounce *events* (a list of ``(time, RawEvent)``), classify and sync."""
    pending = PendingUpdates()
    watcher = ProjectWatcher(project, pending, debounce_seconds=2.0)
    driver = SyncDriver(project, client, pending)
    debouncer = Debouncer(2.0, on_batch=watcher.handle_batch)

    last = 0.0
    for at, event in events:
        debouncer.push(event, now=at)
        last = at
    batch = debouncer.flush(now=last + 2.0)
    watcher.handle_batch(batch)
    return driver.run_cycle(pending.drain())


def test_new_module_sends_only_that_module(project, fake_client):
    module = project / "pkg" / "foo.luau"
    module.write_text("return 1")

    rec = run_pipeline(
        project,
        fake_client,
        [
            (0.0, RawEvent(EventKind.CREATE, (str(module),))),
            (0.0, RawEvent(EventKind.MODIFY, (str(module),))),
            (0.01, RawEvent(EventKind.ACCESS, (str(module),))),
        ],
    )

    assert rec.success
    assert fake_client.calls == [(SCRIPT_ID, {"source": {"modules": {"foo": "return 1"}}})]


def test_publicity_change_sends_configuration_fields(project, fake_client):
    config_path = project / "fumosync.json"
    data = json.loads(config_path.read_text())
    data["isPublic"] = True
    config_path.write_text(json.dumps(data, indent=2))

    run_pipeline(project, fake_client, [(0.0, modify(config_path))])

    assert fake_client.payloads == [{"isPublic": True, "name": "project", "whitelist": []}]


def test_rapid_writes_send_final_content(project, fake_client):
    main = project / "init.server.luau"
    main.write_text("print('one')")
    first = (0.0, modify(main))
    main.write_text("print('two')")
    second = (0.5, modify(main))

    run_pipeline(project, fake_client, [first, second])

    assert fake_client.payloads == [{"source": {"main": "print('two')"}}]


def test_create_then_edit_in_one_window_sends_once(project, fake_client):
    module = project / "pkg" / "foo.luau"
    pending = PendingUpdates()
    watcher = ProjectWatcher(project, pending, debounce_seconds=2.0)
    driver = SyncDriver(project, fake_client, pending)
    debouncer = Debouncer(2.0, on_batch=watcher.handle_batch)

    module.write_text("return 1")
    debouncer.push(RawEvent(EventKind.CREATE, (str(module),)), now=0.0)
    debouncer.push(modify(module), now=0.0)
    module.write_text("return 2")
    debouncer.push(modify(module), now=1.0)

    # The driver runs after every tick, as it would when woken.
    for now in (2.0, 2.5, 3.0, 3.5):
        batch = debouncer.flush(now=now)
        if batch:
            watcher.handle_batch(batch)
        driver.run_cycle(pending.drain())

    assert fake_client.calls == [(SCRIPT_ID, {"source": {"modules": {"foo": "return 2"}}})]


# ── end to end, with the real observer ────────────────────────────────────────


def wait_for_sync(project, client, edit, debounce=0.3):
    """Run *edit* under a live watcher and return once it has settled."""
    synced = threading.Event()
    driver = SyncDriver(project, client, on_cycle_complete=lambda rec: synced.set())
    watcher = ProjectWatcher(project, driver.pending, debounce_seconds=debounce)

    driver.start()
    watcher.start()
    try:
        assert watcher.is_running
        edit()
        assert synced.wait(timeout=10)
        # Anything still in flight would land within a few more windows.
        time.sleep(debounce * 4)
    finally:
        watcher.stop()
        driver.stop(timeout=5)


def test_watcher_picks_up_new_module(project, fake_client):
    wait_for_sync(project, fake_client, lambda: (project / "pkg" / "foo.luau").write_text("return 1"))
    assert fake_client.calls == [(SCRIPT_ID, {"source": {"modules": {"foo": "return 1"}}})]


def test_watcher_sends_edit_within_window_once(project, fake_client):
    module = project / "pkg" / "foo.luau"

    def edit():
        module.write_text("return 1")
        time.sleep(0.15)
        module.write_text("return 2")

    wait_for_sync(project, fake_client, edit, debounce=0.5)
    assert fake_client.calls == [(SCRIPT_ID, {"source": {"modules": {"foo": "return 2"}}})]


def test_watch_pushes_once_then_stops(project, fake_client):
    stop = threading.Event()
    stop.set()

    started = time.monotonic()
    driver = watch(project, fake_client, debounce_seconds=0.1, stop_event=stop)

    assert time.monotonic() - started < 10
    assert not driver.is_alive()
    assert len(fake_client.calls) == 1
    assert set(fake_client.payloads[0]) == {"source", "description", "name", "whitelist", "isPublic"}


def test_watch_missing_directory(tmp_path, fake_client):
    with pytest.raises(WatchSetupError):
        watch(tmp_path / "missing", fake_client, stop_event=threading.Event())
    assert fake_client.calls == []
