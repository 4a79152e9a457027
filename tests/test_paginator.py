from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from tpl_event_watch.feeds.fetcher import FeedFetchError, FeedFetcher
from tpl_event_watch.feeds.paginator import page_url, paginate

BASE_URL = "https://www.torontopubliclibrary.ca/rss.jsp?N=37867+33162+37846&Ns=p_pub_date_sort"


def _page(start: int, count: int) -> bytes:
    items = "".join(
        f"<item><title>Event {start + index}</title>"
        f"<link>https://example.test/event/{start + index}</link></item>"
        for index in range(count)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<rss version="2.0"><channel><title>Feed</title>{items}</channel></rss>'
    ).encode("utf-8")


def _offset(url: str) -> int:
    return int(parse_qs(urlsplit(url).query)["No"][0])


class PagedFetcher(FeedFetcher):
    def __init__(self, page_sizes: list[int]) -> None:
        self.page_sizes = page_sizes
        self.calls: list[str] = []

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        index = len(self.calls) - 1
        size = self.page_sizes[index] if index < len(self.page_sizes) else 0
        return _page(_offset(url), size)


class EndlessFetcher(FeedFetcher):
    def __init__(self) -> None:
        self.offsets: list[int] = []

    def fetch(self, url: str) -> bytes:
        offset = _offset(url)
        self.offsets.append(offset)
        return _page(offset, 10)


class FailingAfterFetcher(FeedFetcher):
    def __init__(self, good_pages: int) -> None:
        self.good_pages = good_pages
        self.calls = 0

    def fetch(self, url: str) -> bytes:
        self.calls += 1
        if self.calls > self.good_pages:
            raise FeedFetchError("HTTP 503 Service Unavailable", status_code=503, url=url)
        return _page(_offset(url), 10)


class StaticFetcher(FeedFetcher):
    def __init__(self, body: bytes) -> None:
        self.body = body
        self.calls = 0

    def fetch(self, url: str) -> bytes:
        self.calls += 1
        return self.body


def test_page_url_sets_offset_and_page_size_and_keeps_query() -> None:
    url = page_url(BASE_URL, 20, 10)
    query = parse_qs(urlsplit(url).query)

    assert query["No"] == ["20"]
    assert query["Nrpp"] == ["10"]
    assert query["N"] == ["37867 33162 37846"]
    assert query["Ns"] == ["p_pub_date_sort"]
    assert "N=37867+33162+37846" in url


def test_page_url_replaces_existing_offset() -> None:
    url = page_url(f"{BASE_URL}&No=50", 0, 10)

    assert parse_qs(urlsplit(url).query)["No"] == ["0"]


def test_short_page_ends_pagination() -> None:
    fetcher = PagedFetcher([10, 10, 7])

    items = paginate(fetcher, BASE_URL)

    assert len(items) == 27
    assert len(fetcher.calls) == 3
    assert [_offset(url) for url in fetcher.calls] == [0, 10, 20]
    assert items[0].title == "Event 0"
    assert items[-1].title == "Event 26"


def test_empty_page_ends_pagination() -> None:
    fetcher = PagedFetcher([10, 0])

    items = paginate(fetcher, BASE_URL)

    assert len(items) == 10
    assert len(fetcher.calls) == 2


def test_empty_body_ends_pagination() -> None:
    fetcher = StaticFetcher(b"")

    assert paginate(fetcher, BASE_URL) == []
    assert fetcher.calls == 1


def test_missing_item_structure_ends_pagination() -> None:
    fetcher = StaticFetcher(b"<html><body>maintenance</body></html>")

    assert paginate(fetcher, BASE_URL) == []
    assert fetcher.calls == 1


def test_feed_that_never_shrinks_stops_at_safety_ceiling(caplog) -> None:
    fetcher = EndlessFetcher()

    items = paginate(fetcher, BASE_URL, page_size=10, max_offset=1000)

    assert fetcher.offsets[-1] == 1000
    assert len(fetcher.offsets) == 101
    assert len(items) == 1010
    assert "Stopped paging" in caplog.text


def test_fetch_failure_mid_pagination_keeps_accumulated_items() -> None:
    fetcher = FailingAfterFetcher(good_pages=2)

    items = paginate(fetcher, BASE_URL)

    assert len(items) == 20
    assert fetcher.calls == 3


def test_fetch_failure_on_first_page_is_raised() -> None:
    fetcher = FailingAfterFetcher(good_pages=0)

    with pytest.raises(FeedFetchError) as excinfo:
        paginate(fetcher, BASE_URL)

    assert excinfo.value.status_code == 503
    assert fetcher.calls == 1
