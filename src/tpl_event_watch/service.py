from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tpl_event_watch.config import FeedSettings
from tpl_event_watch.feeds import FeedFetcher, paginate
from tpl_event_watch.feeds.paginator import DEFAULT_MAX_OFFSET, DEFAULT_PAGE_SIZE
from tpl_event_watch.models import PersistedEvent, ReconcileResult
from tpl_event_watch.notifiers import Notifier, build_subject, render_events_html
from tpl_event_watch.pruner import prune
from tpl_event_watch.reconciler import reconcile
from tpl_event_watch.store import Store

logger = logging.getLogger(__name__)

NOTIFY_CHANGES = "changes"
NOTIFY_FIRST_RUN = "first_run"


class RunFailedError(RuntimeError):
    """Raised when no enabled feed could be reconciled."""


@dataclass(slots=True)
class RunSummary:
    results: dict[str, ReconcileResult] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    notification: str | None = None

    @property
    def new_titles(self) -> dict[str, list[str]]:
        return {name: result.new_titles for name, result in self.results.items()}

    @property
    def removed_titles(self) -> dict[str, list[str]]:
        return {name: result.removed_titles for name, result in self.results.items()}

    @property
    def has_changes(self) -> bool:
        return any(result.has_changes for result in self.results.values())

    @property
    def ok(self) -> bool:
        return not self.errors


class EventWatchService:
    """One polling pass: prune, reconcile every enabled feed, then notify.

    Feeds are processed one after another. A feed that fails is logged and
    left out of this run; the others still go ahead. At most one
    notification is sent per run.
    """

    def __init__(
        self,
        *,
        feeds: list[FeedSettings],
        fetcher: FeedFetcher,
        store: Store,
        notifier: Notifier,
        retention_days: int = 30,
        subject_prefix: str = "TPL",
        include_branch_name: bool = True,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_offset: int = DEFAULT_MAX_OFFSET,
    ) -> None:
        self.feeds = [feed for feed in feeds if feed.enabled]
        self.fetcher = fetcher
        self.store = store
        self.notifier = notifier
        self.retention_days = retention_days
        self.subject_prefix = subject_prefix
        self.include_branch_name = include_branch_name
        self.page_size = page_size
        self.max_offset = max_offset

    def run(self) -> RunSummary:
        summary = RunSummary()
        prune(self.store, self.retention_days)

        last_error: Exception | None = None
        for feed in self.feeds:
            try:
                items = paginate(
                    self.fetcher,
                    feed.url,
                    page_size=self.page_size,
                    max_offset=self.max_offset,
                )
                logger.info("Feed %s returned %d items", feed.name, len(items))
                summary.results[feed.name] = reconcile(self.store, feed.name, items)
            except Exception as exc:  # noqa: BLE001
                message = f"feed {feed.name} failed: {exc}"
                logger.exception(message)
                summary.errors.append(message)
                last_error = exc

        if self.feeds and not summary.results:
            raise RunFailedError(f"All {len(self.feeds)} enabled feeds failed") from last_error

        events = self.store.list_active_events(feed.name for feed in self.feeds)
        summary.notification = self._decide_notification(summary, events)

        if summary.notification == NOTIFY_FIRST_RUN:
            logger.info("First run detected - sending initial email with all %d events", len(events))
            self.notifier.send(
                build_subject(self.subject_prefix),
                render_events_html(events),
            )
        elif summary.notification == NOTIFY_CHANGES:
            changed_feeds = [
                name for name, result in summary.results.items() if result.has_changes
            ]
            logger.info(
                "Changes detected - new: %d, removed: %d",
                sum(len(titles) for titles in summary.new_titles.values()),
                sum(len(titles) for titles in summary.removed_titles.values()),
            )
            self.notifier.send(
                build_subject(
                    self.subject_prefix,
                    changed_feeds=changed_feeds,
                    include_branch_name=self.include_branch_name,
                ),
                render_events_html(
                    events,
                    new_titles=summary.new_titles,
                    removed_titles=summary.removed_titles,
                ),
            )
        else:
            logger.info("No changes detected")

        return summary

    def _decide_notification(
        self, summary: RunSummary, events: list[PersistedEvent]
    ) -> str | None:
        if not summary.has_changes:
            return None

        new_keys = {
            (name, title)
            for name, titles in summary.new_titles.items()
            for title in titles
        }
        nothing_removed = not any(summary.removed_titles.values())
        # Storage was empty before this run when everything active is new
        if nothing_removed and all((event.feed_name, event.title) in new_keys for event in events):
            return NOTIFY_FIRST_RUN
        return NOTIFY_CHANGES
