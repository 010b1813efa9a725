"""Logging setup for the sync engine."""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.settings import LOGGING

SYNC_LOGGER_NAME = "assistant.sync"


def ensure_sync_logger(path: Optional[Path] = None) -> logging.Logger:
    """Attach the rotating file handler to the sync logger once."""

    logger = logging.getLogger(SYNC_LOGGER_NAME)
    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        log_path = Path(path or LOGGING.path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_path,
            maxBytes=LOGGING.max_bytes,
            backupCount=LOGGING.backup_count,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, LOGGING.level, logging.INFO))
    return logger


def get_logger(component: str) -> logging.Logger:
    return logging.getLogger(f"{SYNC_LOGGER_NAME}.{component}")


__all__ = ["SYNC_LOGGER_NAME", "ensure_sync_logger", "get_logger"]
