"""Key/value persistence services used by the offline queue.

Both stores hold opaque serialized blobs under string keys. Writes are durable
once ``set`` returns: the SQLite store commits, the file store replaces the
target file atomically.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol

from sqlmodel import Session

from core.log import get_logger
from datetime_utils import utc_now
from models.kv_entry import KeyValueEntry
from storage.db import get_session


logger = get_logger("storage")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class SqliteKeyValueStore:
    """One ``KeyValueEntry`` row per key."""

    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            row = session.get(KeyValueEntry, key)
            return row.value if row else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as session:
            row = session.get(KeyValueEntry, key)
            if row is None:
                row = KeyValueEntry(key=key, value=value, updated_at=utc_now())
            else:
                row.value = value
                row.updated_at = utc_now()
            session.add(row)
            session.commit()


class JsonFileKeyValueStore:
    """All keys in a single JSON object on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Store file %s is corrupt, treating it as empty: %s", self.path, exc)
            return {}
        if isinstance(data, dict):
            return data
        logger.warning("Store file %s does not hold a JSON object, treating it as empty", self.path)
        return {}

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                fh.write(json.dumps(data, ensure_ascii=False))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError:
                    pass


__all__ = ["JsonFileKeyValueStore", "KeyValueStore", "SqliteKeyValueStore"]
