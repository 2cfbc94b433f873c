"""Centralized logging configuration for the render gateway."""

from __future__ import annotations

import logging
from logging import Logger
from pathlib import Path
from typing import Iterable, Tuple


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# httpx and httpcore log every outbound request at INFO/DEBUG; the gateway
# emits its own BACKEND_CALL events instead.
_NOISY_LOGGERS: Tuple[str, ...] = ("httpx", "httpcore")


def resolve_log_level(name: str | int | None, default: int = logging.INFO) -> int:
    """Return the numeric logging level for *name* (``"debug"``, ``"INFO"``...)."""

    if name is None:
        return default
    if isinstance(name, int):
        return name
    candidate = logging.getLevelName(name.strip().upper())
    return candidate if isinstance(candidate, int) else default


def configure_logging(level: int = logging.INFO, *, handlers: Iterable[logging.Handler] | None = None) -> Logger:
    """Configure the root logger and quieten third-party HTTP client loggers."""

    logger = logging.getLogger()
    logger.setLevel(level)

    if handlers is None:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        logger.addHandler(stream_handler)
    else:
        for handler in handlers:
            logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logger


def get_log_file_path(storage_root: Path) -> Path:
    """Return the default path for the gateway log file."""

    return storage_root / "render_gateway.log"


__all__ = ["configure_logging", "get_log_file_path", "resolve_log_level", "DEFAULT_LOG_FORMAT"]
