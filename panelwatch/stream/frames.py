"""Wire codec for the daemon websocket.

Every frame is a UTF-8 JSON object ``{"event": <str>, "args": <list>}``.
"""

import json
from typing import Any, Optional, Union

from .events import StreamEvent, StreamEventKind

# Outbound event names
AUTH = "auth"
SEND_COMMAND = "send"
SET_STATE = "set state"
SEND_LOGS = "send logs"

# Inbound event names
AUTH_SUCCESS = "auth success"
CONSOLE_OUTPUT = "console output"
STATS = "stats"
STATUS = "status"
INSTALL_OUTPUT = "install output"
DAEMON_ERROR = "daemon error"
JWT_ERROR = "jwt error"

_DIAGNOSTIC_MARKERS = ("error", "jwt")

_SINGLE_ARG_EVENTS = {
    STATS: StreamEventKind.STATS,
    STATUS: StreamEventKind.STATUS,
    DAEMON_ERROR: StreamEventKind.DAEMON_ERROR,
    JWT_ERROR: StreamEventKind.DAEMON_ERROR,
}


class InboundFrame:
    """A frame whose envelope decoded. ``event`` is the raw event name."""

    __slots__ = ("event", "args")

    def __init__(self, event: str, args: list):
        self.event = event
        self.args = args

    @property
    def is_auth_success(self) -> bool:
        return self.event == AUTH_SUCCESS


def encode_frame(event: str, args: list[Any]) -> str:
    return json.dumps({"event": event, "args": args})


def decode_text(payload: Union[str, bytes]) -> Optional[str]:
    """Return the frame text, or None when ``payload`` is not valid UTF-8."""
    if isinstance(payload, bytes):
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError:
            return None
    return payload


def parse_frame(text: str) -> Optional[InboundFrame]:
    """Parse the envelope; None for anything that does not match the shape.

    ``args`` may be a list or a single bare string (seen on some daemon
    versions for console output); a bare string is normalised to one item.
    """
    try:
        obj = json.loads(text)
    except ValueError:
        return None
    if not isinstance(obj, dict):
        return None
    event = obj.get("event")
    if not isinstance(event, str):
        return None
    args = obj.get("args", [])
    if isinstance(args, str):
        args = [args]
    elif args is None:
        args = []
    elif not isinstance(args, list):
        return None
    return InboundFrame(event, args)


def frame_events(frame: InboundFrame) -> list[StreamEvent]:
    """Map a parsed frame to zero or more typed events.

    ``auth success`` yields CONNECTED. Console and install output emit one
    event per string argument, in order. Unknown events yield nothing.
    """
    if frame.is_auth_success:
        return [StreamEvent.connected()]

    if frame.event == CONSOLE_OUTPUT:
        return [StreamEvent(StreamEventKind.CONSOLE_OUTPUT, line) for line in frame.args if isinstance(line, str)]

    if frame.event == INSTALL_OUTPUT:
        return [StreamEvent(StreamEventKind.INSTALL_OUTPUT, line) for line in frame.args if isinstance(line, str)]

    kind = _SINGLE_ARG_EVENTS.get(frame.event)
    if kind is None:
        return []
    first = frame.args[0] if frame.args else ""
    if not isinstance(first, str):
        # stats occasionally arrive as an already-decoded object
        first = json.dumps(first) if isinstance(first, dict) else str(first)
    return [StreamEvent(kind, first)]


def diagnostic_event(text: str) -> Optional[StreamEvent]:
    """Surface an undecodable frame that looks like an auth/token failure."""
    lowered = text.lower()
    if any(marker in lowered for marker in _DIAGNOSTIC_MARKERS):
        return StreamEvent(StreamEventKind.CONSOLE_OUTPUT, text)
    return None


def decode_payload(payload: Union[str, bytes]) -> tuple[Optional[InboundFrame], list[StreamEvent]]:
    """Full inbound path: bytes/text → (frame, events).

    Malformed frames return ``(None, [])`` unless the diagnostic fallback
    applies, in which case the raw text comes back as a console line.
    """
    text = decode_text(payload)
    if text is None:
        return None, []
    frame = parse_frame(text)
    if frame is None:
        fallback = diagnostic_event(text)
        return None, [fallback] if fallback else []
    return frame, frame_events(frame)
