"""Logger configuration for Mode Control."""
from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .version import __version__, DEV_MODE_ENV_VAR, is_dev_build

LOGGER_NAME = "mode_control"
LOG_TAG = "ModeControl"
LOG_LEVEL_ENV_VAR = "MODE_CONTROL_LOG_LEVEL"
LOG_FILE_NAME = "mode-control.log"
LOG_MAX_BYTES = 512 * 1024
LOG_BACKUP_COUNT = 3
DEFAULT_LOG_LEVEL = logging.INFO

_LEVEL_NAME_MAP = {
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": logging.DEBUG,
}


def _coerce_level(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        token = raw.strip().upper()
        if not token:
            return None
        if token.isdigit():
            return int(token)
        return _LEVEL_NAME_MAP.get(token)
    return None


def resolve_log_level(configured: Any = None) -> int:
    """Pick the effective level: environment, then settings, then the build default.

    Dev builds never log above DEBUG.
    """
    candidates = (
        _coerce_level(os.environ.get(LOG_LEVEL_ENV_VAR)),
        _coerce_level(configured),
    )
    level = next((value for value in candidates if value is not None and value != logging.NOTSET), DEFAULT_LOG_LEVEL)
    if is_dev_build() and level > logging.DEBUG:
        return logging.DEBUG
    return level


def _formatter() -> logging.Formatter:
    return logging.Formatter(f"[%(asctime)s] [{LOG_TAG}] %(levelname)s %(message)s", "%H:%M:%S")


def build_rotating_file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter(f"%(asctime)s [{LOG_TAG}] %(levelname)s %(name)s: %(message)s")
    )
    return handler


def configure_logging(
    *,
    level: Any = None,
    log_dir: Optional[Path] = None,
    stream: Any = None,
) -> logging.Logger:
    """Configure the package logger once; later calls only adjust the level and file handler."""
    logger = logging.getLogger(LOGGER_NAME)
    effective = resolve_log_level(level)
    logger.setLevel(effective)
    if not any(getattr(handler, "_mode_control_stream", False) for handler in logger.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler._mode_control_stream = True  # type: ignore[attr-defined]
        handler.setFormatter(_formatter())
        logger.addHandler(handler)
    existing_file = [handler for handler in logger.handlers if getattr(handler, "_mode_control_file", False)]
    if log_dir is not None and not existing_file:
        try:
            file_handler = build_rotating_file_handler(log_dir)
        except OSError as exc:
            logger.warning("File logging disabled; could not open %s: %s", log_dir / LOG_FILE_NAME, exc)
        else:
            file_handler._mode_control_file = True  # type: ignore[attr-defined]
            logger.addHandler(file_handler)
    elif log_dir is None:
        for handler in existing_file:
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = False
    if is_dev_build():
        logger.debug(
            "Running Mode Control dev build (%s); override via %s=0 to force release behaviour.",
            __version__,
            DEV_MODE_ENV_VAR,
        )
    return logger
