"""Tests for the daemon websocket frame codec."""

import json

from panelwatch.stream import frames
from panelwatch.stream.events import StreamEventKind


def _frame(event, args):
    return json.dumps({"event": event, "args": args})


class TestEncode:
    def test_auth_frame(self):
        assert json.loads(frames.encode_frame(frames.AUTH, ["tok"])) == {"event": "auth", "args": ["tok"]}

    def test_backlog_request_uses_null_arg(self):
        assert json.loads(frames.encode_frame(frames.SEND_LOGS, [None])) == {"event": "send logs", "args": [None]}


class TestDecode:
    def test_auth_success_yields_connected(self):
        frame, events = frames.decode_payload(_frame("auth success", []))
        assert frame.is_auth_success
        assert [e.kind for e in events] == [StreamEventKind.CONNECTED]

    def test_console_lines_keep_order(self):
        lines = ["one", "two", "three"]
        _, events = frames.decode_payload(_frame("console output", lines))
        assert [e.kind for e in events] == [StreamEventKind.CONSOLE_OUTPUT] * 3
        assert [e.data for e in events] == lines

    def test_bare_string_args(self):
        _, events = frames.decode_payload(json.dumps({"event": "console output", "args": "solo"}))
        assert [e.data for e in events] == ["solo"]

    def test_console_event_exposes_styled_runs(self):
        _, events = frames.decode_payload(_frame("console output", ["\x1b[31mERROR\x1b[0m ok"]))
        assert [run.text for run in events[0].styled] == ["ERROR", " ok"]

    def test_install_output(self):
        _, events = frames.decode_payload(_frame("install output", ["pulling image"]))
        assert events[0].kind is StreamEventKind.INSTALL_OUTPUT

    def test_stats_passes_raw_json(self):
        raw = json.dumps({"cpu_absolute": 3.2})
        _, events = frames.decode_payload(_frame("stats", [raw]))
        assert events[0].kind is StreamEventKind.STATS
        assert events[0].data == raw

    def test_stats_as_object_is_reencoded(self):
        _, events = frames.decode_payload(_frame("stats", [{"cpu_absolute": 3.2}]))
        assert json.loads(events[0].data) == {"cpu_absolute": 3.2}

    def test_status(self):
        _, events = frames.decode_payload(_frame("status", ["starting"]))
        assert events[0].kind is StreamEventKind.STATUS
        assert events[0].data == "starting"

    def test_jwt_error_maps_to_daemon_error(self):
        _, events = frames.decode_payload(_frame("jwt error", ["expired"]))
        assert events[0].kind is StreamEventKind.DAEMON_ERROR

    def test_unknown_event_is_dropped(self):
        frame, events = frames.decode_payload(_frame("token expiring", []))
        assert frame is not None
        assert events == []

    def test_bytes_payload(self):
        _, events = frames.decode_payload(_frame("status", ["running"]).encode("utf-8"))
        assert events[0].data == "running"

    def test_invalid_utf8_is_dropped(self):
        assert frames.decode_payload(b"\xff\xfe") == (None, [])


class TestMalformed:
    def test_garbage_is_dropped(self):
        assert frames.decode_payload("not json at all") == (None, [])

    def test_error_text_surfaces_as_console_line(self):
        frame, events = frames.decode_payload("Authentication error: token invalid")
        assert frame is None
        assert events[0].kind is StreamEventKind.CONSOLE_OUTPUT
        assert events[0].data == "Authentication error: token invalid"

    def test_jwt_marker_is_case_insensitive(self):
        _, events = frames.decode_payload("JWT rejected")
        assert len(events) == 1

    def test_non_object_json(self):
        assert frames.parse_frame("[1, 2]") is None

    def test_missing_event_name(self):
        assert frames.parse_frame(json.dumps({"args": []})) is None

    def test_non_list_args(self):
        assert frames.parse_frame(json.dumps({"event": "stats", "args": 5})) is None
