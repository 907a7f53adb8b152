"""
Logging setup for studio-sync.

Every module logs through one of the named ``studiosync.*`` loggers below.
With ``STUDIOSYNC_ENV=production`` each logger writes JSON lines to its own
rotating file under ``STUDIOSYNC_LOG_DIR``; otherwise records go to stderr in
a short human-readable form.
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional


LOGGER_PREFIX = "studiosync"

#: Short logger name -> what logs through it.
LOGGERS = {
    "store": "entity store loads, merges and restores",
    "reconciler": "optimistic applies, commits, rollbacks, stale discards",
    "controller": "gestures and user notifications",
    "scheduler": "task completion decisions and crew lookups",
    "gateway": "sync gateway requests and failures",
    "cli": "command line operations",
}
LOGGER_NAMES = tuple(LOGGERS)

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra_fields`` are merged in at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", {}))
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """``[2026-01-12 10:30:45] INFO - studiosync.reconciler - Committed reorder on evt_boda``"""

    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


def _level(name: Optional[str]) -> int:
    name = name or os.environ.get("STUDIOSYNC_LOG_LEVEL", "INFO")
    return getattr(logging, name.upper(), logging.INFO)


def _log_dir() -> Optional[Path]:
    """Directory for rotating JSON logs, or None outside production."""
    if os.environ.get("STUDIOSYNC_ENV", "development").lower() != "production":
        return None
    log_dir = Path(os.environ.get("STUDIOSYNC_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _handler_for(logger_name: str, log_dir: Optional[Path]) -> logging.Handler:
    if log_dir is None:
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ConsoleFormatter())
        return handler

    handler = logging.handlers.RotatingFileHandler(
        log_dir / f"{logger_name}.log",
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8"
    )
    handler.setFormatter(JSONFormatter())
    return handler


def configure_logging(level: Optional[str] = None) -> Dict[str, logging.Logger]:
    """
    Configure every studio-sync logger.

    Args:
        level: Level name; defaults to STUDIOSYNC_LOG_LEVEL, then INFO

    Returns:
        Short logger name -> configured Logger
    """
    log_level = _level(level)
    log_dir = _log_dir()

    loggers = {}
    for logger_name in LOGGER_NAMES:
        logger = logging.getLogger(f"{LOGGER_PREFIX}.{logger_name}")
        logger.setLevel(log_level)
        logger.propagate = False
        logger.handlers.clear()

        handler = _handler_for(logger_name, log_dir)
        handler.setLevel(log_level)
        logger.addHandler(handler)
        loggers[logger_name] = logger

    return loggers


_loggers: Optional[Dict[str, logging.Logger]] = None


def get_logger(name: str) -> logging.Logger:
    """
    Logger for one of ``LOGGER_NAMES``, configuring logging on first use.

    Raises:
        ValueError: If logger name is not recognized
    """
    global _loggers

    if _loggers is None:
        _loggers = configure_logging()

    if name not in _loggers:
        raise ValueError(
            f"Unknown logger name: {name}. "
            f"Valid names: {', '.join(_loggers.keys())}"
        )

    return _loggers[name]


def init_logging(level: Optional[str] = None) -> Dict[str, logging.Logger]:
    """Reconfigure logging, e.g. once the CLI has read its config."""
    global _loggers
    _loggers = configure_logging(level)
    return _loggers
