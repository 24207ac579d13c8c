"""Structured logging for discsync.

Events always go to stderr unless ``console`` is off.  With a log directory,
``discsync.log`` receives every event in human form and ``sync.log`` receives
only the ``discsync.sync`` loggers as JSON lines, so a run can be replayed
from one file.  Files rotate at 10 MB, keeping 5 backups.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

_ROTATE_BYTES = 10 * 1024 * 1024
_ROTATE_KEEP = 5
_SYNC_LOGGER = "discsync.sync"
_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")

_pre_chain: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _formatter(renderer: structlog.types.Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_pre_chain)


def _file_handler(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=_ROTATE_BYTES, backupCount=_ROTATE_KEEP, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def _log_uncaught(exc_type, exc_value, exc_tb) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    logging.getLogger("discsync").critical("uncaught_exception", exc_info=(exc_type, exc_value, exc_tb))


def setup_logging(log_level: str = "info", log_dir: Path | None = None, *, console: bool = True) -> None:
    """Route structlog through stdlib logging.

    *log_level* is a level name such as ``"debug"``; unknown names mean INFO.
    *log_dir* enables the two rotating files.  Tests pass ``console=False``.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[*_pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    human = _formatter(structlog.dev.ConsoleRenderer(colors=False))

    handlers: list[logging.Handler] = []
    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(human)
        handlers.append(stream)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(_file_handler(log_dir / "discsync.log", human))
        sync_file = _file_handler(log_dir / "sync.log", _formatter(structlog.processors.JSONRenderer()))
        sync_file.addFilter(logging.Filter(_SYNC_LOGGER))
        handlers.append(sync_file)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    sys.excepthook = _log_uncaught
