from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _normalize_fraction(s: str) -> str:
    """Pad or trim fractional seconds to 6 digits."""

    digits = s[:6]
    if len(digits) < 6:
        digits = digits + "0" * (6 - len(digits))
    return digits


def parse_rfc3339(s: Optional[str]) -> Optional[datetime]:
    """Parse a RFC3339 string and return a timezone-aware UTC datetime."""

    if not s:
        return None

    value = s.strip()
    if not value:
        return None

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    if "." in value:
        head, tail = value.split(".", 1)
        tz_sign = "+"
        tz_suffix = "00:00"
        if "+" in tail:
            frac, tz_suffix = tail.split("+", 1)
            tz_sign = "+"
        elif "-" in tail:
            frac, tz_suffix = tail.split("-", 1)
            tz_sign = "-"
        else:
            frac = tail
        frac = _normalize_fraction(frac)
        value = f"{head}.{frac}{tz_sign}{tz_suffix}"
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None

    return ensure_utc(dt)


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339 in UTC, keeping milliseconds."""

    value = ensure_utc(dt)
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_epoch_ms(value: Union[int, float]) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000.0, tz=UTC)


def coerce_timestamp(value: object) -> Optional[datetime]:
    """Accept RFC3339 strings, epoch milliseconds or datetimes."""

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return from_epoch_ms(value)
    if isinstance(value, str):
        return parse_rfc3339(value)
    return None


__all__ = [
    "UTC",
    "coerce_timestamp",
    "ensure_utc",
    "from_epoch_ms",
    "parse_rfc3339",
    "to_rfc3339_utc",
    "utc_now",
]
