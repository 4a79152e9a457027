"""Recover event dates and times from the vendor attribute block of an item.

The library feed repeats ``p_event_date`` once per occurrence and may give
start and end times either per occurrence (same position) or once for all
dates. Attributes are first bucketed by role, then combined.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Iterable

from dateutil import parser

from tpl_event_watch.models import EventOccurrence, VendorAttribute

logger = logging.getLogger(__name__)

DATE_ATTRIBUTES = frozenset({"p_event_date"})
START_TIME_ATTRIBUTES = frozenset({"p_event_time", "p_event_start_time", "p_start_time"})
END_TIME_ATTRIBUTES = frozenset({"p_event_end_time", "p_end_time"})

_MIDNIGHT = datetime(2000, 1, 1)


@dataclass(slots=True)
class EventSchedule:
    dates: list[str] = field(default_factory=list)
    start_times: list[str] = field(default_factory=list)
    end_times: list[str] = field(default_factory=list)

    def start_time_for(self, index: int) -> str | None:
        return _value_for(self.start_times, index)

    def end_time_for(self, index: int) -> str | None:
        if index < len(self.end_times):
            return self.end_times[index]
        if len(self.end_times) == 1:
            return self.end_times[0]
        return None


def normalize_attributes(attributes: Iterable[VendorAttribute]) -> EventSchedule:
    schedule = EventSchedule()
    for attribute in attributes:
        name = attribute.name.strip().lower()
        value = attribute.value.strip()
        if not value:
            continue
        if name in DATE_ATTRIBUTES:
            schedule.dates.append(value)
        elif name in START_TIME_ATTRIBUTES:
            schedule.start_times.append(value)
        elif name in END_TIME_ATTRIBUTES:
            schedule.end_times.append(value)
    return schedule


def extract_occurrences(attributes: Iterable[VendorAttribute]) -> list[EventOccurrence]:
    schedule = normalize_attributes(attributes)

    occurrences: list[EventOccurrence] = []
    for index, date_value in enumerate(schedule.dates):
        start_value = schedule.start_time_for(index)
        try:
            start = _combine(date_value, None)
        except (ValueError, OverflowError):
            logger.warning("Skipping unparseable event date %r", date_value)
            continue

        if start_value is not None:
            try:
                start = _combine(date_value, start_value)
            except (ValueError, OverflowError):
                logger.warning(
                    "Ignoring unparseable event start time %r for %r", start_value, date_value
                )

        end_value = schedule.end_time_for(index)
        occurrences.append(EventOccurrence(start=start, end_time=_parse_time(end_value)))

    occurrences.sort(key=lambda occurrence: occurrence.start)
    return occurrences


def _value_for(values: list[str], index: int) -> str | None:
    if index < len(values):
        return values[index]
    if values:
        return values[0]
    return None


def _combine(date_value: str, time_value: str | None) -> datetime:
    day = parser.parse(date_value, default=_MIDNIGHT, ignoretz=True)
    if time_value is None:
        return day
    return parser.parse(
        time_value,
        default=day.replace(second=0, microsecond=0),
        ignoretz=True,
    )


def _parse_time(value: str | None) -> time | None:
    if value is None:
        return None
    try:
        return parser.parse(value, default=_MIDNIGHT, ignoretz=True).time()
    except (ValueError, OverflowError):
        logger.warning("Ignoring unparseable event end time %r", value)
        return None
