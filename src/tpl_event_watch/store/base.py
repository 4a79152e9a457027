from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Iterable

from tpl_event_watch.models import EventOccurrence, PersistedEvent


class StoreTransaction(ABC):
    """Operations available inside one reconciliation transaction."""

    @abstractmethod
    def active_titles(self, feed_name: str) -> set[str]:
        """Return titles currently flagged active for a feed."""

    @abstractmethod
    def upsert_event(
        self,
        *,
        title: str,
        feed_name: str,
        link: str,
        description: str | None,
        content_encoded: str | None,
        record_data: dict[str, Any] | None,
        occurrences: list[EventOccurrence],
    ) -> None:
        """Insert or refresh an event and mark it active."""

    @abstractmethod
    def deactivate(self, feed_name: str, titles: Iterable[str]) -> None:
        """Flag events as no longer present in their feed."""


class Store(ABC):
    @abstractmethod
    def init_db(self) -> None:
        """Create any required schema."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager[StoreTransaction]:
        """Open a transaction that commits on exit and rolls back on error."""

    @abstractmethod
    def prune_inactive(self, retention_days: int) -> int:
        """Delete inactive events not seen for retention_days; return the count."""

    @abstractmethod
    def list_active_events(self, feed_names: Iterable[str] | None = None) -> list[PersistedEvent]:
        """Return active events, soonest occurrence first."""

    @abstractmethod
    def get_event(self, title: str, feed_name: str) -> PersistedEvent | None:
        """Return one stored event, active or not."""
