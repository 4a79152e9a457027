from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any

import feedparser

from tpl_event_watch.models import FeedItem, VendorAttribute

logger = logging.getLogger(__name__)

_MULTISPACE = re.compile(r"\s+")


@dataclass(slots=True)
class _Record:
    link: str | None = None
    title: str | None = None
    attributes: list[VendorAttribute] = field(default_factory=list)


def parse_feed_page(content: bytes) -> list[FeedItem] | None:
    """Parse one RSS page into items.

    Returns None when the body has no recognisable feed structure, and an
    empty list when the channel is present but holds no items. Individual
    items keep whatever fields they have; identity checks happen later.
    """
    if not content or not content.strip():
        return None

    parsed = feedparser.parse(content)
    if getattr(parsed, "bozo", False):
        logger.warning("Feed parsing bozo exception: %s", parsed.get("bozo_exception"))

    entries = parsed.get("entries") or []
    if not parsed.get("version") and not entries:
        return None

    records = _extract_records(content)
    if records is not None and len(records) != len(entries):
        logger.warning(
            "Found %d vendor records for %d items; matching them by link and title",
            len(records),
            len(entries),
        )

    items: list[FeedItem] = []
    for index, entry in enumerate(entries):
        item = _entry_to_item(entry)
        if records is not None:
            item.attributes = _match_record(records, item, index, len(entries))
        items.append(item)
    return items


def _match_record(
    records: list[_Record], item: FeedItem, index: int, entry_count: int
) -> list[VendorAttribute]:
    """Find the vendor attributes of one item, by link, then title, then position."""
    if item.link:
        for record in records:
            if record.link == item.link:
                return record.attributes
    if item.title:
        for record in records:
            if record.title == item.title:
                return record.attributes
    if len(records) == entry_count:
        return records[index].attributes
    return []


def _entry_to_item(entry: Any) -> FeedItem:
    title = _normalize_whitespace(str(entry.get("title") or "")) or None
    link = str(entry.get("link") or "").strip() or None
    description = entry.get("description") or entry.get("summary") or None

    content_encoded = None
    content = entry.get("content")
    if isinstance(content, list) and content:
        content_encoded = content[0].get("value") or None

    return FeedItem(
        title=title,
        link=link,
        description=description,
        content_encoded=content_encoded,
    )


def _extract_records(content: bytes) -> list[_Record] | None:
    """Collect the link, title and vendor attributes of every <item>."""
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        logger.warning("Could not read vendor records from feed: %s", exc)
        return None

    records: list[_Record] = []
    for item in root.iter():
        if _local_name(item.tag) != "item":
            continue
        record = _Record()
        for child in item:
            child_name = _local_name(child.tag)
            if child_name == "record":
                record.attributes.extend(_record_attributes(child))
            elif child_name == "link":
                record.link = "".join(child.itertext()).strip() or None
            elif child_name == "title":
                record.title = _normalize_whitespace("".join(child.itertext())) or None
        records.append(record)
    return records


def _record_attributes(record: ET.Element) -> list[VendorAttribute]:
    attributes: list[VendorAttribute] = []
    for element in record.iter():
        if _local_name(element.tag) != "attr":
            continue

        name = element.get("name")
        value = None
        for child in element:
            child_name = _local_name(child.tag)
            if child_name == "name" and not name:
                name = "".join(child.itertext())
            elif child_name == "value":
                value = "".join(child.itertext())
        if value is None:
            value = element.text or ""

        name = (name or "").strip()
        if name:
            attributes.append(VendorAttribute(name=name, value=value.strip()))
    return attributes


def _local_name(tag: Any) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _normalize_whitespace(value: str) -> str:
    return _MULTISPACE.sub(" ", value).strip()
