"""panelwatch: live telemetry and alerting for game-server daemons."""

__version__ = "0.1.0"
