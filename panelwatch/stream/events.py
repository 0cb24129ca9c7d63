"""Typed events produced by the stream protocol client."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..utils.ansi import StyledRun, decode


class StreamEventKind(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONSOLE_OUTPUT = "console_output"
    STATS = "stats"
    STATUS = "status"
    INSTALL_OUTPUT = "install_output"
    DAEMON_ERROR = "daemon_error"


@dataclass(frozen=True)
class StreamEvent:
    """One decoded event. ``data`` carries the line, raw stats JSON or state."""

    kind: StreamEventKind
    data: Optional[str] = None

    @property
    def styled(self) -> list[StyledRun]:
        """ANSI-decoded runs of ``data`` for console-like events."""
        return decode(self.data or "")

    @classmethod
    def connected(cls) -> "StreamEvent":
        return cls(StreamEventKind.CONNECTED)

    @classmethod
    def disconnected(cls) -> "StreamEvent":
        return cls(StreamEventKind.DISCONNECTED)


class PowerSignal(str, Enum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    KILL = "kill"
