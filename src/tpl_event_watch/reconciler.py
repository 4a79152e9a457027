from __future__ import annotations

import logging
from typing import Iterable

from tpl_event_watch.feeds.event_dates import extract_occurrences
from tpl_event_watch.models import FeedItem, ReconcileResult
from tpl_event_watch.store import Store

logger = logging.getLogger(__name__)


def reconcile(store: Store, feed_name: str, items: Iterable[FeedItem]) -> ReconcileResult:
    """Bring stored state for one feed in line with its current items.

    Runs as one transaction: every identifiable item is upserted and marked
    active, and every previously active title missing from this pass is
    marked inactive. Any error rolls the whole feed back.

    If a pass contains the same title twice, the later item's data is kept.
    """
    result = ReconcileResult(feed_name=feed_name)

    with store.transaction() as transaction:
        baseline = transaction.active_titles(feed_name)
        processed: set[str] = set()

        for item in items:
            if not item.title or not item.link:
                logger.warning(
                    "Skipping item with missing title or link in %s: title=%r link=%r",
                    feed_name,
                    item.title,
                    item.link,
                )
                result.skipped += 1
                continue

            if item.title not in processed:
                if item.title in baseline:
                    result.kept_titles.append(item.title)
                else:
                    result.new_titles.append(item.title)
            processed.add(item.title)

            transaction.upsert_event(
                title=item.title,
                feed_name=feed_name,
                link=item.link,
                description=item.description,
                content_encoded=item.content_encoded,
                record_data=item.record_data(),
                occurrences=extract_occurrences(item.attributes),
            )

        result.removed_titles = sorted(baseline - processed)
        transaction.deactivate(feed_name, result.removed_titles)

    logger.info(
        "Reconciled %s: new=%d removed=%d kept=%d skipped=%d",
        feed_name,
        len(result.new_titles),
        len(result.removed_titles),
        len(result.kept_titles),
        result.skipped,
    )
    return result
