from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import requests

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; tpl-event-watch/0.1)",
    "Accept": "application/rss+xml,application/xml,application/xhtml+xml,text/html",
}


class FeedFetchError(RuntimeError):
    """Raised when a feed URL cannot be fetched."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        status_text: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text
        self.url = url


class FeedFetcher(ABC):
    @abstractmethod
    def fetch(self, url: str) -> bytes:
        """Return the raw feed body, or raise FeedFetchError."""


class HttpFeedFetcher(FeedFetcher):
    def __init__(self, timeout_seconds: int = 30) -> None:
        self.timeout_seconds = timeout_seconds

    def fetch(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self.timeout_seconds, headers=_HEADERS)
        except requests.RequestException as exc:
            raise FeedFetchError(f"Failed to fetch RSS feed: {exc}", url=url) from exc

        if response.status_code >= 400:
            raise FeedFetchError(
                f"Failed to fetch RSS feed: HTTP {response.status_code} {response.reason}",
                status_code=response.status_code,
                status_text=response.reason,
                url=url,
            )

        logger.debug("Fetched %d bytes from %s", len(response.content), url)
        return response.content
