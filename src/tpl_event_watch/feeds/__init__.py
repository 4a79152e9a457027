"""Feed fetching, parsing, pagination and event date extraction."""

from .event_dates import EventSchedule, extract_occurrences, normalize_attributes
from .fetcher import FeedFetchError, FeedFetcher, HttpFeedFetcher
from .paginator import page_url, paginate
from .parser import parse_feed_page

__all__ = [
    "EventSchedule",
    "FeedFetchError",
    "FeedFetcher",
    "HttpFeedFetcher",
    "extract_occurrences",
    "normalize_attributes",
    "page_url",
    "paginate",
    "parse_feed_page",
]
