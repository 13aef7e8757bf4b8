import json
import logging
import threading
import urllib.request
from http.server import ThreadingHTTPServer

import pytest

from fluentkit.receiver import Message, ReceiverHandler, format_message, parse_messages


@pytest.fixture
def server():
    srv = ThreadingHTTPServer(("127.0.0.1", 0), ReceiverHandler)
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    try:
        yield srv
    finally:
        srv.shutdown()
        srv.server_close()
        thread.join()


def _post(srv, body: bytes) -> int:
    host, port = srv.server_address
    request = urllib.request.Request(f"http://{host}:{port}/", data=body, method="POST")
    with urllib.request.urlopen(request) as response:
        return response.status


def test_parse_round_trip():
    records = [
        {"log": "hello", "stream": "stdout", "time": "2021-01-01T00:00:00Z"},
        {"log": "bye", "stream": "stderr", "time": "2021-01-02T00:00:00Z"},
    ]
    messages = parse_messages(json.dumps(records).encode())
    assert [vars(m) for m in messages] == records


def test_parse_missing_fields_default_to_empty():
    messages = parse_messages(b'[{"log": "only"}, null]')
    assert messages == [Message(log="only"), Message()]


def test_parse_ignores_unknown_fields_and_matches_case_insensitively():
    messages = parse_messages(b'[{"LOG": "x", "extra": 1}]')
    assert messages == [Message(log="x")]


def test_parse_null_is_empty():
    assert parse_messages(b"null") == []


@pytest.mark.parametrize("body", [b"not json", b'{"log": "x"}', b'[{"log": 5}]', b"[1]"])
def test_parse_rejects_bad_bodies(body):
    with pytest.raises(ValueError):
        parse_messages(body)


def test_format_message():
    text = format_message(Message(log="l", stream="s", time="t"))
    assert text == "log=l, stream=s, time=t"


def test_server_logs_each_record(server, caplog):
    caplog.set_level(logging.INFO, logger="fluentkit.receiver")
    records = [{"log": "first", "stream": "stdout", "time": "t1"}, {"log": "second", "stream": "stderr", "time": "t2"}]
    assert _post(server, json.dumps(records).encode()) == 200
    logged = [r.getMessage() for r in caplog.records]
    assert format_message(Message(**records[0])) in logged
    assert format_message(Message(**records[1])) in logged


def test_server_survives_bad_body(server, caplog):
    caplog.set_level(logging.INFO, logger="fluentkit.receiver")
    assert _post(server, b"garbage") == 200
    assert not any(r.getMessage().startswith("log=") for r in caplog.records)
    assert _post(server, b'[{"log": "ok"}]') == 200
    expected = format_message(Message(log="ok"))
    assert expected in [r.getMessage() for r in caplog.records]