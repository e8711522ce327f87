"""Unified logger for the whole project."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 10
_FORMATTER = logging.Formatter(
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _normalize_level(raw: str) -> int:
    candidate = str(raw or "INFO").strip().upper()
    return {
        "CRITICAL": logging.CRITICAL,
        "ERROR": logging.ERROR,
        "WARNING": logging.WARNING,
        "INFO": logging.INFO,
        "DEBUG": logging.DEBUG,
    }.get(candidate, logging.INFO)


def _attach_file_handler(target: logging.Logger, log_file: str) -> None:
    path = Path(log_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating_handler = RotatingFileHandler(
            path,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError:
        # 日志目录不可写时仅使用 stderr
        target.warning("log file unavailable path=%s, falling back to stderr", path)
        return
    rotating_handler.setLevel(target.level)
    rotating_handler.setFormatter(_FORMATTER)
    target.addHandler(rotating_handler)


def _build_logger() -> logging.Logger:
    configured_logger = logging.getLogger("bridgegate")
    if configured_logger.handlers:
        return configured_logger

    resolved_level = logging.INFO
    configured_logger.setLevel(resolved_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(resolved_level)
    stream_handler.setFormatter(_FORMATTER)
    configured_logger.addHandler(stream_handler)

    configured_logger.propagate = False
    return configured_logger


logger = _build_logger()


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under bridgegate namespace."""

    return logger.getChild(name)


def set_level(raw: str) -> None:
    """Re-level the project logger and its handlers (used by the CLI)."""

    resolved_level = _normalize_level(raw)
    logger.setLevel(resolved_level)
    for handler in logger.handlers:
        handler.setLevel(resolved_level)


def configure(level: str, log_file: str = "") -> None:
    """Apply the configured level and optional rotating log file (called once by the CLI)."""

    set_level(level)
    path = (log_file or "").strip()
    if not path:
        return
    if any(isinstance(handler, RotatingFileHandler) for handler in logger.handlers):
        return
    _attach_file_handler(logger, path)
