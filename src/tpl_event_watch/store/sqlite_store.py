from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from tpl_event_watch.models import EventOccurrence, PersistedEvent
from tpl_event_watch.utils.datetime_utils import format_timestamp, parse_datetime_utc, utc_now

from .base import Store, StoreTransaction

_EVENT_COLUMNS = """
    title, feed_name, link, description, content_encoded, record_data,
    event_dates, first_seen, last_seen, is_active
"""


class SQLiteStore(Store):
    """Event state in a single SQLite table.

    With ``global_titles`` the title alone identifies an event, which is how
    single-feed deployments were keyed before feeds carried names.
    """

    def __init__(
        self,
        db_path: str,
        *,
        global_titles: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db_path = Path(db_path)
        self.global_titles = global_titles
        self.clock = clock

    def init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        key_columns = "title" if self.global_titles else "title, feed_name"
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    feed_name TEXT NOT NULL,
                    link TEXT NOT NULL,
                    description TEXT NULL,
                    content_encoded TEXT NULL,
                    record_data TEXT NULL,
                    event_dates TEXT NOT NULL DEFAULT '[]',
                    first_occurrence TEXT NULL,
                    first_seen TEXT NOT NULL,
                    last_seen TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            connection.execute(
                f"""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_events_key
                ON events ({key_columns})
                """
            )
            connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_active ON events (is_active)"
            )
            connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_last_seen ON events (last_seen)"
            )
            connection.commit()

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        with self._connect() as connection:
            connection.execute("BEGIN IMMEDIATE")
            try:
                yield _SQLiteTransaction(
                    connection,
                    global_titles=self.global_titles,
                    now=format_timestamp(self.clock()),
                )
            except BaseException:
                connection.rollback()
                raise
            connection.commit()

    def prune_inactive(self, retention_days: int) -> int:
        cutoff = format_timestamp(self.clock() - timedelta(days=retention_days))
        with self._connect() as connection:
            cursor = connection.execute(
                "DELETE FROM events WHERE is_active = 0 AND last_seen < ?",
                (cutoff,),
            )
            connection.commit()
            return cursor.rowcount

    def list_active_events(self, feed_names: Iterable[str] | None = None) -> list[PersistedEvent]:
        query = f"SELECT {_EVENT_COLUMNS} FROM events WHERE is_active = 1"
        params: list[Any] = []
        if feed_names is not None:
            names = list(feed_names)
            if not names:
                return []
            query += f" AND feed_name IN ({', '.join('?' for _ in names)})"
            params.extend(names)
        # Undated events sort by when they were last seen
        query += """
            ORDER BY COALESCE(first_occurrence, substr(last_seen, 1, 19)) ASC,
                     feed_name ASC,
                     title ASC
        """

        with self._connect() as connection:
            rows = connection.execute(query, params).fetchall()
        return [_row_to_event(row) for row in rows]

    def get_event(self, title: str, feed_name: str) -> PersistedEvent | None:
        with self._connect() as connection:
            row = connection.execute(
                f"SELECT {_EVENT_COLUMNS} FROM events WHERE title = ? AND feed_name = ?",
                (title, feed_name),
            ).fetchone()

        if row is None:
            return None
        return _row_to_event(row)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        connection = sqlite3.connect(self.db_path)
        connection.row_factory = sqlite3.Row
        try:
            yield connection
        finally:
            connection.close()


class _SQLiteTransaction(StoreTransaction):
    def __init__(self, connection: sqlite3.Connection, *, global_titles: bool, now: str) -> None:
        self.connection = connection
        self.global_titles = global_titles
        self.now = now

    def active_titles(self, feed_name: str) -> set[str]:
        if self.global_titles:
            rows = self.connection.execute(
                "SELECT title FROM events WHERE is_active = 1"
            ).fetchall()
        else:
            rows = self.connection.execute(
                "SELECT title FROM events WHERE is_active = 1 AND feed_name = ?",
                (feed_name,),
            ).fetchall()
        return {row["title"] for row in rows}

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
        conflict_target = "title" if self.global_titles else "title, feed_name"
        first_occurrence = (
            occurrences[0].start.isoformat(timespec="seconds") if occurrences else None
        )
        self.connection.execute(
            f"""
            INSERT INTO events (
                title,
                feed_name,
                link,
                description,
                content_encoded,
                record_data,
                event_dates,
                first_occurrence,
                first_seen,
                last_seen,
                is_active,
                created_at,
                updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT({conflict_target}) DO UPDATE SET
                feed_name = excluded.feed_name,
                link = excluded.link,
                description = excluded.description,
                content_encoded = excluded.content_encoded,
                record_data = excluded.record_data,
                event_dates = excluded.event_dates,
                first_occurrence = excluded.first_occurrence,
                last_seen = excluded.last_seen,
                is_active = 1,
                updated_at = excluded.updated_at
            """,
            (
                title,
                feed_name,
                link,
                description,
                content_encoded,
                json.dumps(record_data) if record_data is not None else None,
                json.dumps([occurrence.to_dict() for occurrence in occurrences]),
                first_occurrence,
                self.now,
                self.now,
                self.now,
                self.now,
            ),
        )

    def deactivate(self, feed_name: str, titles: Iterable[str]) -> None:
        if self.global_titles:
            self.connection.executemany(
                "UPDATE events SET is_active = 0, updated_at = ? WHERE title = ?",
                [(self.now, title) for title in titles],
            )
        else:
            self.connection.executemany(
                """
                UPDATE events SET is_active = 0, updated_at = ?
                WHERE title = ? AND feed_name = ?
                """,
                [(self.now, title, feed_name) for title in titles],
            )


def _row_to_event(row: sqlite3.Row) -> PersistedEvent:
    record_raw = row["record_data"]
    return PersistedEvent(
        title=row["title"],
        feed_name=row["feed_name"],
        link=row["link"],
        description=row["description"],
        content_encoded=row["content_encoded"],
        record_data=json.loads(record_raw) if record_raw else None,
        occurrences=[
            EventOccurrence.from_dict(payload) for payload in json.loads(row["event_dates"] or "[]")
        ],
        first_seen=parse_datetime_utc(row["first_seen"]) or utc_now(),
        last_seen=parse_datetime_utc(row["last_seen"]) or utc_now(),
        is_active=bool(row["is_active"]),
    )
