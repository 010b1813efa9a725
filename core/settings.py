"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "ProjectAssistant"


DATA_DIR = get_default_data_dir(APP_NAME)
STORAGE_DIR = DATA_DIR / "storage"
LOG_DIR = DATA_DIR / "logs"

DB_PATH = DATA_DIR / "app.db"
QUEUE_FILE_PATH = STORAGE_DIR / "offline_queue.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class RetrySettings:
    max_retries: int = 3
    initial_delay_sec: float = 1.0
    max_delay_sec: float = 10.0
    jitter_sec: float = 0.2


RETRY = RetrySettings()


@dataclass(frozen=True)
class QueueSettings:
    storage_key: str = "offline_queue"
    dead_letter_threshold: int = 3
    file_path: Path = QUEUE_FILE_PATH


QUEUE = QueueSettings()


@dataclass(frozen=True)
class ConnectivitySettings:
    probe_host: str = "1.1.1.1"
    probe_port: int = 53
    probe_timeout_sec: float = 3.0
    poll_interval_sec: float = 15.0


CONNECTIVITY = ConnectivitySettings()


@dataclass(frozen=True)
class BackendSettings:
    base_url: str = field(default_factory=lambda: os.environ.get("ASSISTANT_BACKEND_URL", ""))
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("ASSISTANT_BACKEND_KEY"))
    timeout_sec: float = 10.0


BACKEND = BackendSettings()


@dataclass(frozen=True)
class LoggingSettings:
    path: Path = SYNC_LOG_PATH
    max_bytes: int = 1_000_000
    backup_count: int = 3
    level: str = "INFO"


LOGGING = LoggingSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "STORAGE_DIR",
    "LOG_DIR",
    "DB_PATH",
    "QUEUE_FILE_PATH",
    "SYNC_LOG_PATH",
    "RETRY",
    "QUEUE",
    "CONNECTIVITY",
    "BACKEND",
    "LOGGING",
    "get_default_data_dir",
]
