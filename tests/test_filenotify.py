import os
import queue
import time

import pytest

from fluentkit.filenotify import (
    Event,
    FileState,
    NoSuchWatchError,
    Op,
    PollerClosedError,
    PollingWatcher,
    check_change,
    new_event_watcher,
    new_polling_watcher,
    new_watcher,
)

INTERVAL = 0.05


def _wait_for(events, predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    seen = []
    while time.monotonic() < deadline:
        try:
            event = events.get(timeout=0.1)
        except queue.Empty:
            continue
        seen.append(event)
        if predicate(event):
            return event
    raise AssertionError(f"no matching event, saw {seen}")


def _state(mode=0o100644, size=1, mtime_ns=1, is_dir=False):
    return FileState(mode=mode, size=size, mtime_ns=mtime_ns, is_dir=is_dir)


@pytest.mark.parametrize(
    "before, after, expected",
    [
        (None, None, Op(0)),
        (None, _state(), Op.CREATE),
        (_state(), None, Op.REMOVE),
        (_state(is_dir=True), _state(size=5), Op(0)),
        (_state(), _state(mode=0o100600), Op.CHMOD),
        (_state(), _state(size=2), Op.WRITE),
        (_state(), _state(mtime_ns=2), Op.WRITE),
        (_state(), _state(), Op(0)),
    ],
)
def test_check_change(before, after, expected):
    assert check_change(before, after) == expected


def test_file_state_from_stat(tmp_path):
    target = tmp_path / "a.txt"
    target.write_text("abc")
    state = FileState.from_stat(os.stat(target))
    assert state.size == 3
    assert state.is_dir is False
    assert FileState.from_stat(os.stat(tmp_path)).is_dir is True


def test_poller_reports_create_write_remove(tmp_path):
    with new_polling_watcher(INTERVAL) as watcher:
        watcher.add(str(tmp_path))
        target = tmp_path / "app.conf"
        path = str(target)

        target.write_text("a")
        created = _wait_for(watcher.events, lambda e: e.name == path)
        assert created == Event(path, Op.CREATE)

        target.write_text("abcdef")
        written = _wait_for(watcher.events, lambda e: e.name == path)
        assert written.op == Op.WRITE

        target.unlink()
        removed = _wait_for(watcher.events, lambda e: e.name == path)
        assert removed.op == Op.REMOVE


def test_poller_watches_single_file(tmp_path):
    target = tmp_path / "fluent.conf"
    target.write_text("x")
    with new_watcher(True, INTERVAL) as watcher:
        watcher.add(str(target))
        target.write_text("xyz")
        event = _wait_for(watcher.events, lambda e: True)
        assert event == Event(str(target), Op.WRITE)


def test_poller_rejects_missing_path(tmp_path):
    with PollingWatcher(INTERVAL) as watcher:
        with pytest.raises(FileNotFoundError):
            watcher.add(str(tmp_path / "missing"))


def test_poller_rejects_duplicate_watch(tmp_path):
    with PollingWatcher(INTERVAL) as watcher:
        watcher.add(str(tmp_path))
        with pytest.raises(ValueError):
            watcher.add(str(tmp_path))


def test_poller_remove_unknown_raises(tmp_path):
    with PollingWatcher(INTERVAL) as watcher:
        with pytest.raises(NoSuchWatchError):
            watcher.remove(str(tmp_path))


def test_poller_remove_stops_events(tmp_path):
    with PollingWatcher(INTERVAL) as watcher:
        watcher.add(str(tmp_path))
        watcher.remove(str(tmp_path))
        (tmp_path / "late.txt").write_text("late")
        time.sleep(INTERVAL * 6)
        assert watcher.events.empty()
        with pytest.raises(NoSuchWatchError):
            watcher.remove(str(tmp_path))


def test_closed_poller_rejects_use(tmp_path):
    watcher = PollingWatcher(INTERVAL)
    watcher.add(str(tmp_path))
    watcher.close()
    watcher.close()
    with pytest.raises(PollerClosedError):
        watcher.add(str(tmp_path))
    with pytest.raises(PollerClosedError):
        watcher.remove(str(tmp_path))


def test_event_watcher_reports_create(tmp_path):
    watcher = new_event_watcher()
    try:
        watcher.add(str(tmp_path))
        target = tmp_path / "new.log"
        target.write_text("hello")
        path = os.path.abspath(str(target))
        event = _wait_for(watcher.events, lambda e: e.name == path)
        assert event.op == Op.CREATE
        with pytest.raises(ValueError):
            watcher.add(str(tmp_path))
        watcher.remove(str(tmp_path))
        with pytest.raises(NoSuchWatchError):
            watcher.remove(str(tmp_path))
    finally:
        watcher.close()
    with pytest.raises(PollerClosedError):
        watcher.add(str(tmp_path))


def test_event_watcher_rejects_missing_path(tmp_path):
    watcher = new_event_watcher()
    try:
        with pytest.raises(FileNotFoundError):
            watcher.add(str(tmp_path / "absent"))
    finally:
        watcher.close()