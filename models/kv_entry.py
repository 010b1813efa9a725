"""SQLModel table backing the key/value persistence service."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


class KeyValueEntry(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["KeyValueEntry"]
