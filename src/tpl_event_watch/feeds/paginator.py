from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from tpl_event_watch.models import FeedItem

from .fetcher import FeedFetcher, FeedFetchError
from .parser import parse_feed_page

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
DEFAULT_MAX_OFFSET = 1000

_OFFSET_PARAM = "No"
_PAGE_SIZE_PARAM = "Nrpp"


def page_url(url: str, offset: int, page_size: int) -> str:
    parsed = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key not in {_OFFSET_PARAM, _PAGE_SIZE_PARAM}
    ]
    query.append((_OFFSET_PARAM, str(offset)))
    query.append((_PAGE_SIZE_PARAM, str(page_size)))
    return urlunsplit(
        (parsed.scheme, parsed.netloc, parsed.path, urlencode(query), parsed.fragment)
    )


def paginate(
    fetcher: FeedFetcher,
    url: str,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_offset: int = DEFAULT_MAX_OFFSET,
) -> list[FeedItem]:
    """Fetch every page of a feed and return the concatenated items.

    A failing page ends pagination and keeps what was already collected.
    A fetch error on the first page is raised instead, so a feed that could
    not be reached is never mistaken for a feed with no events.
    """
    items: list[FeedItem] = []
    offset = 0

    while True:
        if offset > max_offset:
            logger.warning(
                "Stopped paging %s at offset %d; feed never returned a short page",
                url,
                offset - page_size,
            )
            break

        target = page_url(url, offset, page_size)
        try:
            content = fetcher.fetch(target)
            if not content:
                logger.info("Empty response at offset %d for %s", offset, url)
                break

            page = parse_feed_page(content)
        except Exception as exc:  # noqa: BLE001
            # Nothing fetched yet: let the caller keep this feed's stored state
            if isinstance(exc, FeedFetchError) and not items:
                raise
            logger.warning(
                "Page at offset %d failed for %s; keeping %d items: %s",
                offset,
                url,
                len(items),
                exc,
            )
            break

        if page is None:
            logger.info("No item list at offset %d for %s", offset, url)
            break
        if not page:
            break

        items.extend(page)
        logger.debug("Fetched %d items at offset %d for %s", len(page), offset, url)
        if len(page) < page_size:
            break

        offset += page_size

    return items
