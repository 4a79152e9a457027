from __future__ import annotations

import logging

from tpl_event_watch.store import Store

logger = logging.getLogger(__name__)


def prune(store: Store, retention_days: int) -> int:
    """Delete long-inactive events. Failures are logged, never raised."""
    try:
        deleted = store.prune_inactive(retention_days)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Pruning inactive events failed: %s", exc)
        return 0

    if deleted:
        logger.info(
            "Pruned %d inactive events not seen for %d days", deleted, retention_days
        )
    return deleted
