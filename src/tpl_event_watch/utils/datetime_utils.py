from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from dateutil import parser


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime_utc(value: Any) -> datetime | None:
    if value is None:
        return None

    if isinstance(value, datetime):
        return to_utc(value)

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            return to_utc(parser.parse(value))
        except (ValueError, TypeError, OverflowError):
            return None

    return None


def format_timestamp(value: datetime) -> str:
    """Serialize a timestamp for storage.

    Always UTC with microseconds so stored values compare correctly as text.
    """
    return to_utc(value).isoformat(timespec="microseconds")


def format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")
