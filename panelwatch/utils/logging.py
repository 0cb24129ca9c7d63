"""structlog setup: one processor chain rendered by stdlib handlers.

structlog events and plain ``logging`` records (aiohttp, sqlalchemy) go
through the same ``ProcessorFormatter``, so the console stream and the
rotating file agree on shape.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

LOG_FILE_NAME = "panelwatch.log"

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
]


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _file_handler(log_dir: str, max_bytes: int, backup_count: int) -> logging.Handler | None:
    try:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            directory / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    except OSError:
        return None


def setup_logging(
    debug: bool = False,
    log_dir: str = "logs",
    log_max_bytes: int = 10_000_000,
    log_backup_count: int = 5,
    stream=None,
) -> None:
    """Configure structured logging for the telemetry pipeline.

    ``stream`` (stdout by default) gets coloured console lines in debug mode
    and JSON otherwise; the rotating file under ``log_dir`` is always JSON.
    An unwritable directory leaves ``stream`` as the only sink.
    """
    level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.dev.set_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    json_renderer = structlog.processors.JSONRenderer()
    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(_formatter(structlog.dev.ConsoleRenderer() if debug else json_renderer))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(console)
    root.setLevel(level)

    file_handler = _file_handler(log_dir, log_max_bytes, log_backup_count)
    if file_handler is None:
        get_logger("utils.logging").warning("log_file_unavailable", log_dir=log_dir)
        return
    file_handler.setFormatter(_formatter(json_renderer))
    root.addHandler(file_handler)


def bind_entity(entity_id: str) -> None:
    """Attach ``entity_id`` to every log event emitted from this context."""
    structlog.contextvars.bind_contextvars(entity_id=entity_id)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)
