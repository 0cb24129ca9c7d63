"""Daemon websocket protocol: frame codec, typed events and the client."""

from .client import ConnectionState, StreamProtocolClient
from .events import PowerSignal, StreamEvent, StreamEventKind

__all__ = [
    "ConnectionState",
    "PowerSignal",
    "StreamEvent",
    "StreamEventKind",
    "StreamProtocolClient",
]
