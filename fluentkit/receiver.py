"""A small HTTP endpoint that logs JSON batches forwarded by a log shipper."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

logger = logging.getLogger(__name__)

_FIELDS = ("log", "stream", "time")


@dataclass
class Message:
    """One forwarded log record."""

    log: str = ""
    stream: str = ""
    time: str = ""


def _lookup(item: dict[str, Any], name: str) -> Any:
    if name in item:
        return item[name]
    for key, value in item.items():
        if isinstance(key, str) and key.casefold() == name:
            return value
    return None


def _to_message(item: Any) -> Message:
    if item is None:
        return Message()
    if not isinstance(item, dict):
        raise ValueError(f"cannot decode {type(item).__name__} into a message")
    values = {}
    for name in _FIELDS:
        value = _lookup(item, name)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(f"field {name!r} must be a string")
        values[name] = value
    return Message(**values)


def parse_messages(body: bytes | str) -> list[Message]:
    """Decode a JSON array of records; raise ValueError on malformed input."""
    data = json.loads(body)
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError("expected a JSON array of messages")
    return [_to_message(item) for item in data]


def format_message(message: Message) -> str:
    """Render a record the way the receiver logs it."""
    return f"log={message.log}, stream={message.stream}, time={message.time}"


class ReceiverHandler(BaseHTTPRequestHandler):
    """Logs every record of each request body; answers with an empty 200."""

    def do_POST(self) -> None:
        try:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length > 0 else b""
            try:
                messages = parse_messages(body)
            except ValueError as exc:
                logger.info("%s", exc)
                return
            for message in messages:
                logger.info("%s", format_message(message))
        finally:
            self.send_response(200)
            self.send_header("Content-Length", "0")
            self.end_headers()

    do_GET = do_POST
    do_PUT = do_POST

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        """Send the server's access log to the debug level of the module logger."""
        logger.debug("%s - %s", self.address_string(), format % args)


def main(argv: list[str] | None = None) -> int:
    """Serve the receiver until interrupted."""
    parser = argparse.ArgumentParser(description="Log JSON records sent over HTTP.")
    parser.add_argument("--host", default="", help="Address to bind to.")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    try:
        with ThreadingHTTPServer((args.host, args.port), ReceiverHandler) as server:
            server.serve_forever()
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        logger.error("%s", exc)
        return 1
    return 0