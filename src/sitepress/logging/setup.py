"""Logging setup helpers."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "sitepress"
LOG_FILENAME = f"{LOGGER_NAME}.log"
LOG_FORMAT = "%(asctime)s %(process)08x %(thread)08x %(levelname).1s %(module)s %(message)s"
MAX_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 5
_LEVEL_ALIASES = {"WARN": "WARNING"}


def configure_logging(
    log_path: Path | None = None,
    level: str = "INFO",
    mirror_to_console: bool = True,
) -> logging.Logger:
    """(Re)configure the `sitepress` logger: rotating file, plus rich output on stderr."""

    numeric_level = _normalize_level(level)
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = False
    logger.setLevel(numeric_level)

    logger.addHandler(_file_handler(_resolve_log_path(log_path), numeric_level))
    if mirror_to_console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setLevel(numeric_level)
        logger.addHandler(console_handler)
    return logger


def _file_handler(path: Path, level: int) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _normalize_level(level: str) -> int:
    """Convert log level strings to logging constants."""

    candidate = level.strip().upper()
    numeric = logging.getLevelName(_LEVEL_ALIASES.get(candidate, candidate))
    if not isinstance(numeric, int):
        raise ValueError(f"Unsupported log level: {level!r}")
    return numeric


def _resolve_log_path(log_path: Path | None) -> Path:
    """A directory (or suffix-less path) gets `sitepress.log` inside it."""

    if log_path is None:
        return Path.cwd() / LOG_FILENAME
    candidate = log_path if log_path.is_absolute() else Path.cwd() / log_path
    if candidate.is_dir() or not candidate.suffix:
        return candidate / LOG_FILENAME
    return candidate


class RunLoggerAdapter(logging.LoggerAdapter):
    """Prefix every record with the run identifier."""

    def process(self, msg, kwargs):
        return f"[run {self.extra['run_id']}] {msg}", kwargs


def run_logger(logger: logging.Logger, run_id: str) -> RunLoggerAdapter:
    """Return a logger that tags messages with `run_id`."""

    return RunLoggerAdapter(logger, {"run_id": run_id})
