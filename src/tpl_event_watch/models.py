from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any


@dataclass(slots=True)
class VendorAttribute:
    name: str
    value: str


@dataclass(slots=True)
class FeedItem:
    title: str | None
    link: str | None
    description: str | None = None
    content_encoded: str | None = None
    attributes: list[VendorAttribute] = field(default_factory=list)

    def record_data(self) -> dict[str, Any] | None:
        if not self.attributes:
            return None
        return {
            "attributes": [
                {"name": attribute.name, "value": attribute.value}
                for attribute in self.attributes
            ]
        }


@dataclass(slots=True)
class EventOccurrence:
    start: datetime
    end_time: time | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> EventOccurrence:
        end_raw = payload.get("end_time")
        return cls(
            start=datetime.fromisoformat(payload["start"]),
            end_time=time.fromisoformat(end_raw) if end_raw else None,
        )


@dataclass(slots=True)
class PersistedEvent:
    title: str
    feed_name: str
    link: str
    description: str | None
    content_encoded: str | None
    record_data: dict[str, Any] | None
    occurrences: list[EventOccurrence]
    first_seen: datetime
    last_seen: datetime
    is_active: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "feed_name": self.feed_name,
            "link": self.link,
            "description": self.description,
            "event_dates": [occurrence.to_dict() for occurrence in self.occurrences],
            "record_data": self.record_data,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "is_active": self.is_active,
        }


@dataclass(slots=True)
class ReconcileResult:
    feed_name: str
    new_titles: list[str] = field(default_factory=list)
    removed_titles: list[str] = field(default_factory=list)
    kept_titles: list[str] = field(default_factory=list)
    skipped: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.new_titles or self.removed_titles)


@dataclass(slots=True)
class ErrorDetails:
    message: str
    timestamp: str
    environment: str
    status_code: int | None = None
    status_text: str | None = None
    url: str | None = None
    ip: str | None = None
