"""Watching files and directories for changes, by events or by polling."""

from __future__ import annotations

import enum
import errno
import os
import queue
import stat
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer


class Op(enum.IntFlag):
    """Kinds of change to a watched path."""

    CREATE = 1
    WRITE = 2
    REMOVE = 4
    RENAME = 8
    CHMOD = 16


@dataclass(frozen=True)
class Event:
    """A change to one path."""

    name: str
    op: Op


class PollerClosedError(Exception):
    """Raised when a closed watcher is used."""

    def __init__(self, message: str = "poller is closed") -> None:
        super().__init__(message)


class NoSuchWatchError(KeyError):
    """Raised when removing a watch that does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"watch does not exist: {self.name}"


class FileWatcher(Protocol):
    """What both kinds of watcher offer."""

    events: queue.Queue[Event]
    errors: queue.Queue[Exception]

    def add(self, name: str) -> None: ...

    def remove(self, name: str) -> None: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class FileState:
    """The parts of a stat result that decide whether a file changed."""

    mode: int
    size: int
    mtime_ns: int
    is_dir: bool

    @classmethod
    def from_stat(cls, st: os.stat_result) -> FileState:
        return cls(st.st_mode, st.st_size, st.st_mtime_ns, stat.S_ISDIR(st.st_mode))


def check_change(before: FileState | None, after: FileState | None) -> Op:
    """Return the change between two snapshots of a path, or ``Op(0)``."""
    if before is None and after is not None:
        return Op.CREATE
    if before is not None and after is None:
        return Op.REMOVE
    if before is None or after is None:
        return Op(0)
    if before.is_dir or after.is_dir:
        return Op(0)
    if before.mode != after.mode:
        return Op.CHMOD
    if before.mtime_ns != after.mtime_ns or before.size != after.size:
        return Op.WRITE
    return Op(0)


@dataclass
class _Recording:
    info: FileState | None = None
    entries: dict[str, FileState] = field(default_factory=dict)


def _record(path: str) -> _Recording:
    """Snapshot a path; a directory's direct entries are recorded too."""
    recording = _Recording()
    try:
        recording.info = FileState.from_stat(os.stat(path))
    except FileNotFoundError:
        return recording
    if recording.info.is_dir:
        try:
            with os.scandir(path) as entries:
                for entry in entries:
                    try:
                        st = entry.stat(follow_symlinks=False)
                    except FileNotFoundError:
                        continue
                    recording.entries[entry.name] = FileState.from_stat(st)
        except FileNotFoundError:
            pass
    return recording


class _WatchedItem:
    def __init__(self, filename: str) -> None:
        self.filename = filename
        self.left = _record(filename)

    def check_for_changes(self) -> list[Event]:
        right = _record(self.filename)
        previous, self.left = self.left, right

        top = check_change(previous.info, right.info)
        if top:
            return [Event(self.filename, top)]
        if previous.info is None or not previous.info.is_dir:
            return []

        before, after = previous.entries, right.entries
        names = after if len(after) > len(before) else before
        events = []
        for name in sorted(names):
            op = check_change(before.get(name), after.get(name))
            if op:
                events.append(Event(os.path.join(self.filename, name), op))
        return events


class PollingWatcher:
    """Polls watched paths at a fixed interval; each watch runs in its own thread."""

    def __init__(self, interval: float = 1.0) -> None:
        self.interval = float(interval)
        self.events: queue.Queue[Event] = queue.Queue()
        self.errors: queue.Queue[Exception] = queue.Queue()
        self._watches: dict[str, threading.Event] = {}
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._closed = False

    def add(self, name: str) -> None:
        """Start polling ``name``, which must exist."""
        with self._lock:
            if self._closed:
                raise PollerClosedError()
            item = _WatchedItem(name)
            if item.left.info is None:
                raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), name)
            if name in self._watches:
                raise ValueError(f"watch exists: {name}")
            stop = threading.Event()
            self._watches[name] = stop
            threading.Thread(
                target=self._watch, args=(item, stop), name=f"poll:{name}", daemon=True
            ).start()

    def remove(self, name: str) -> None:
        """Stop polling ``name``."""
        with self._lock:
            if self._closed:
                raise PollerClosedError()
            stop = self._watches.pop(name, None)
            if stop is None:
                raise NoSuchWatchError(name)
            stop.set()

    def close(self) -> None:
        """Stop every watch; the watcher cannot be used afterwards."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._done.set()
            for stop in self._watches.values():
                stop.set()
            self._watches.clear()

    def __enter__(self) -> PollingWatcher:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _watch(self, item: _WatchedItem, stop: threading.Event) -> None:
        while not stop.wait(self.interval) and not self._done.is_set():
            try:
                events = item.check_for_changes()
            except OSError as exc:
                self.errors.put(exc)
                continue
            for event in events:
                self.events.put(event)


def _translate(event: FileSystemEvent) -> list[Event]:
    src = os.path.abspath(os.fsdecode(event.src_path))
    kind = event.event_type
    if kind == "created":
        return [Event(src, Op.CREATE)]
    if kind == "modified":
        return [] if event.is_directory else [Event(src, Op.WRITE)]
    if kind == "deleted":
        return [Event(src, Op.REMOVE)]
    if kind == "moved":
        dest = os.path.abspath(os.fsdecode(getattr(event, "dest_path", "") or ""))
        moved = [Event(src, Op.RENAME)]
        if dest:
            moved.append(Event(dest, Op.CREATE))
        return moved
    return []


class _Handler(FileSystemEventHandler):
    def __init__(self, events: queue.Queue[Event], directory: str, only: str | None):
        super().__init__()
        self._events = events
        self._directory = directory
        self._only = only

    def on_any_event(self, event: FileSystemEvent) -> None:
        for change in _translate(event):
            if self._only is not None and change.name != self._only:
                continue
            if self._only is None and os.path.dirname(change.name) != self._directory:
                continue
            self._events.put(change)


class EventWatcher:
    """Watches paths through the operating system's change notifications."""

    def __init__(self) -> None:
        self.events: queue.Queue[Event] = queue.Queue()
        self.errors: queue.Queue[Exception] = queue.Queue()
        self._observer = Observer()
        self._observer.daemon = True
        self._observer.start()
        self._watches: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._closed = False

    def add(self, name: str) -> None:
        """Watch ``name``; a directory's direct entries are watched too."""
        with self._lock:
            if self._closed:
                raise PollerClosedError("watcher is closed")
            if name in self._watches:
                raise ValueError(f"watch exists: {name}")
            path = os.path.abspath(name)
            if not os.path.exists(path):
                raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), name)
            if os.path.isdir(path):
                directory, only = path, None
            else:
                directory, only = os.path.dirname(path), path
            handler = _Handler(self.events, directory, only)
            self._watches[name] = self._observer.schedule(
                handler, directory, recursive=False
            )

    def remove(self, name: str) -> None:
        """Stop watching ``name``."""
        with self._lock:
            if self._closed:
                raise PollerClosedError("watcher is closed")
            watch = self._watches.pop(name, None)
            if watch is None:
                raise NoSuchWatchError(name)
            self._observer.unschedule(watch)

    def close(self) -> None:
        """Stop all watching."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._watches.clear()
        self._observer.stop()
        self._observer.join()

    def __enter__(self) -> EventWatcher:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def new_polling_watcher(interval: float) -> PollingWatcher:
    """Return a poll-based watcher."""
    return PollingWatcher(interval)


def new_event_watcher() -> EventWatcher:
    """Return a notification-based watcher; raises if none can be set up."""
    return EventWatcher()


def new_file_watcher(interval: float) -> FileWatcher:
    """Prefer a notification-based watcher and fall back to polling."""
    try:
        return new_event_watcher()
    except (OSError, RuntimeError):
        return new_polling_watcher(interval)


def new_watcher(poll: bool, interval: float) -> FileWatcher:
    """Return a polling watcher if ``poll`` is set, otherwise the best available."""
    if poll:
        return new_polling_watcher(interval)
    return new_file_watcher(interval)