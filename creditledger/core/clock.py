from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    # naive UTC, matching the DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime) -> datetime:
    """Interpret a stored naive UTC timestamp on the process's local clock."""
    return value.replace(tzinfo=timezone.utc).astimezone()
