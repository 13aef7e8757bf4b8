"""Keeps a fluent-bit process running and restarts it when its configuration changes."""

from __future__ import annotations

import argparse
import logging
import queue
import re
import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field

from .filenotify import Event, FileWatcher, Op, new_watcher

logger = logging.getLogger(__name__)

DEFAULT_BIN_PATH = "/fluent-bit/bin/fluent-bit"
DEFAULT_CFG_PATH = "/fluent-bit/etc/fluent-bit.conf"
DEFAULT_WATCH_DIR = "/fluent-bit/config"
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_FLB_TIMEOUT = 30.0

MAX_DELAY_TIME = 5 * 60.0
RESET_TIME = 10 * 60.0

_QUEUE_POLL = 0.1

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _parse_duration(text: str) -> float:
    """Parse a duration such as ``1s``, ``500ms`` or ``1m30s`` into seconds."""
    value = text.strip()
    sign = 1.0
    if value.startswith(("+", "-")):
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]
    if value == "0":
        return 0.0
    if not value:
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if match is None:
            raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


class _SignalReceived(Exception):
    def __init__(self, signum: int) -> None:
        super().__init__(f"received signal {signal.Signals(signum).name}")
        self.signum = signum


def is_valid_event(event: Event) -> bool:
    """Return True for the changes that should restart fluent-bit."""
    return event.op in (Op.CREATE, Op.WRITE)


def backoff_delay(restart_times: int) -> float:
    """Seconds to wait before the next restart: doubling from one, capped at five minutes."""
    if restart_times >= 64:
        return MAX_DELAY_TIME
    return min(float(2**restart_times), MAX_DELAY_TIME)


@dataclass(eq=False)
class FluentBitWatcher:
    """Starts fluent-bit, restarts it with back-off and stops it on config changes."""

    bin_path: str = DEFAULT_BIN_PATH
    config_path: str = DEFAULT_CFG_PATH
    external_plugin_path: str = ""
    exit_on_failure: bool = False
    termination_timeout: float = DEFAULT_FLB_TIMEOUT
    restart_times: int = field(default=0, init=False)
    _process: subprocess.Popen | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _timer: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _done: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _failure: BaseException | None = field(default=None, init=False, repr=False)

    def _command(self) -> list[str]:
        command = [self.bin_path, "-c", self.config_path]
        if self.external_plugin_path:
            command += ["-e", self.external_plugin_path]
        return command

    def start(self) -> None:
        """Launch fluent-bit unless it is already running."""
        with self._lock:
            if self._process is not None or self._done.is_set():
                return
            try:
                self._process = subprocess.Popen(self._command())
            except OSError as exc:
                logger.error("start Fluent bit error: %s", exc)
                self._process = None
                return
        logger.info("Fluent bit started")

    def wait(self) -> None:
        """Wait for fluent-bit to exit; raise CalledProcessError on a failed exit."""
        with self._lock:
            process = self._process
        if process is None:
            return
        started = time.monotonic()
        returncode = process.wait()
        if returncode != 0:
            logger.error("Fluent bit exited with code %d", returncode)
        with self._lock:
            if self._process is process:
                self._process = None
        if time.monotonic() - started >= RESET_TIME:
            self.restart_times = 0
        if returncode != 0:
            raise subprocess.CalledProcessError(returncode, process.args)

    def backoff(self) -> float:
        """Sleep before the next restart unless the timer is reset; return the delay."""
        delay = backoff_delay(self.restart_times)
        logger.info("backoff delay=%.3fs", delay)
        started = time.monotonic()
        if self._timer.wait(delay):
            logger.info(
                "context cancel actual=%.3fs expected=%.3fs",
                time.monotonic() - started,
                delay,
            )
            self.restart_times = 0
        else:
            logger.info(
                "backoff timer done actual=%.3fs expected=%.3fs",
                time.monotonic() - started,
                delay,
            )
            self.restart_times += 1
        return delay

    def stop(self) -> None:
        """Terminate fluent-bit, killing it if it outlives the termination timeout."""
        with self._lock:
            process = self._process
            if process is None:
                logger.info("Fluent Bit not running. No process to stop.")
                return
            try:
                process.terminate()
            except OSError as exc:
                logger.info("Error while terminating FluentBit: %s", exc)
            else:
                logger.info(
                    "Sent SIGTERM to FluentBit, waiting max %ss", self.termination_timeout
                )
            try:
                process.wait(timeout=self.termination_timeout)
            except subprocess.TimeoutExpired:
                logger.info("FluentBit failed to terminate gracefully, killing process")
                process.kill()
                process.wait()
            else:
                logger.info("FluentBit terminated successfully")

    def reset_timer(self) -> None:
        """Cut short any back-off in progress and forget earlier restarts."""
        self._timer.set()
        self.restart_times = 0

    def _interrupt(self, error: BaseException | None = None) -> None:
        if error is not None and self._failure is None:
            self._failure = error
        self._done.set()

    def _supervise(self) -> None:
        try:
            while not self._done.is_set():
                self.start()
                try:
                    self.wait()
                except subprocess.CalledProcessError as exc:
                    if self.exit_on_failure:
                        logger.error("Fluent bit exited with error; exiting watcher")
                        self._interrupt(exc)
                        return
                self._timer = threading.Event()
                if self._done.is_set():
                    break
                self.backoff()
        except Exception as exc:  # noqa: BLE001
            self._interrupt(exc)
        finally:
            self._interrupt()

    def _watch_config(self, watcher: FileWatcher) -> None:
        try:
            while not self._done.is_set():
                try:
                    error = watcher.errors.get_nowait()
                except queue.Empty:
                    pass
                else:
                    logger.error("Watcher stopped: %s", error)
                    return
                try:
                    event = watcher.events.get(timeout=_QUEUE_POLL)
                except queue.Empty:
                    continue
                if not is_valid_event(event):
                    continue
                if self._process is not None:
                    logger.info("Config file changed, stopping Fluent Bit")
                    self.stop()
                    self.reset_timer()
                    logger.info("Config file changed, stopped Fluent Bit")
        except Exception as exc:  # noqa: BLE001
            self._interrupt(exc)
        finally:
            self._interrupt()

    def run(self, watcher: FileWatcher) -> None:
        """Supervise fluent-bit and react to ``watcher`` until either side ends."""
        self._done.clear()
        self._failure = None
        workers = [
            threading.Thread(target=self._supervise, name="fluent-bit", daemon=True),
            threading.Thread(
                target=self._watch_config, args=(watcher,), name="config", daemon=True
            ),
        ]
        for worker in workers:
            worker.start()
        try:
            while not self._done.wait(_QUEUE_POLL):
                pass
        finally:
            self._done.set()
            self.stop()
            self.reset_timer()
            watcher.close()
            for worker in workers:
                worker.join()
        if self._failure is not None:
            raise self._failure


def main(argv: list[str] | None = None) -> int:
    """Run the fluent-bit watcher from the command line."""
    parser = argparse.ArgumentParser(
        description="Run fluent-bit and restart it when its configuration changes.",
        allow_abbrev=False,
    )
    parser.add_argument("-b", dest="bin_path", default=DEFAULT_BIN_PATH,
                        help="The fluent bit binary path.")
    parser.add_argument("-c", dest="config_path", default=DEFAULT_CFG_PATH,
                        help="The config file path.")
    parser.add_argument("-e", dest="external_plugin_path", default="",
                        help="Path to external plugin (shared lib).")
    parser.add_argument("--exit-on-failure", "-exit-on-failure", action="store_true",
                        help="If fluentbit exits with failure, also exit the watcher.")
    parser.add_argument("--watch-path", "-watch-path", default=DEFAULT_WATCH_DIR,
                        help="The path to watch.")
    parser.add_argument("--poll", "-poll", action="store_true",
                        help="Use poll watcher instead of inotify.")
    parser.add_argument("--poll-interval", "-poll-interval", type=_parse_duration,
                        default=DEFAULT_POLL_INTERVAL,
                        help="Poll interval if using poll watcher.")
    parser.add_argument("--flb-timeout", "-flb-timeout", type=_parse_duration,
                        default=DEFAULT_FLB_TIMEOUT,
                        help="Time to wait for fluent-bit to terminate before SIGKILL.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stdout,
        level=logging.INFO,
        format="time=%(asctime)s level=%(levelname)s msg=%(message)s",
    )

    supervisor = FluentBitWatcher(
        bin_path=args.bin_path,
        config_path=args.config_path,
        external_plugin_path=args.external_plugin_path,
        exit_on_failure=args.exit_on_failure,
        termination_timeout=args.flb_timeout,
    )

    try:
        watcher = new_watcher(args.poll, args.poll_interval)
    except (OSError, RuntimeError) as exc:
        logger.error("%s", exc)
        return 1
    try:
        watcher.add(args.watch_path)
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        watcher.close()
        return 1

    def _on_signal(signum: int, _frame: object) -> None:
        supervisor._interrupt(_SignalReceived(signum))

    previous = {
        sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        supervisor.run(watcher)
    except Exception as exc:  # noqa: BLE001
        logger.error("%s", exc)
        return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    logger.info("See you next time!")
    return 0