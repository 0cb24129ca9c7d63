"""Exception hierarchy for the telemetry pipeline."""

from typing import Any, Optional


class PanelwatchError(Exception):
    """Base class for errors raised by panelwatch."""

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StreamConnectError(PanelwatchError):
    """The websocket could not be established (bad endpoint, rejected token)."""


class StatsParseError(PanelwatchError):
    """A ``stats`` payload could not be turned into a snapshot."""


class SnapshotStoreError(PanelwatchError):
    """Storage-layer failure on append, query or prune."""


class AlertStoreError(PanelwatchError):
    """Alert rules or settings could not be loaded or saved."""
