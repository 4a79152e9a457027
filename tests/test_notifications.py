from __future__ import annotations

from datetime import datetime, time, timezone

import pytest
import requests

from tpl_event_watch.diagnostics import build_error_details, detect_environment
from tpl_event_watch.feeds.fetcher import FeedFetchError
from tpl_event_watch.models import ErrorDetails, EventOccurrence, PersistedEvent
from tpl_event_watch.notifiers.email_notifier import build_message
from tpl_event_watch.notifiers.render import (
    build_error_subject,
    build_subject,
    format_occurrence,
    render_error_html,
    render_events_html,
)

TODAY = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)


def _event(**overrides: object) -> PersistedEvent:
    base = PersistedEvent(
        title="Story Time",
        feed_name="Parkdale Branch",
        link="https://example.test/story-time",
        description="Songs & stories",
        content_encoded=None,
        record_data=None,
        occurrences=[EventOccurrence(start=datetime(2026, 2, 3, 10, 30), end_time=time(11, 15))],
        first_seen=TODAY,
        last_seen=TODAY,
        is_active=True,
    )
    for key, value in overrides.items():
        setattr(base, key, value)
    return base


class _Response:
    def __init__(self, text: str, status_code: int = 200) -> None:
        self.text = text
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


def test_subject_includes_changed_branch_names_when_enabled() -> None:
    assert build_subject("TPL", today=TODAY) == "TPL New Items - 2026-02-01"
    assert (
        build_subject(
            "TPL",
            changed_feeds=["Parkdale Branch", "Annette Street", "Parkdale Branch"],
            include_branch_name=True,
            today=TODAY,
        )
        == "TPL New Items - 2026-02-01 (Annette Street, Parkdale Branch)"
    )
    assert (
        build_subject("TPL", changed_feeds=["Parkdale Branch"], today=TODAY)
        == "TPL New Items - 2026-02-01"
    )


def test_format_occurrence_variants() -> None:
    assert (
        format_occurrence(EventOccurrence(datetime(2026, 2, 3, 10, 30), time(11, 15)))
        == "Tuesday, February 3, 2026, 10:30 AM – 11:15 AM"
    )
    assert (
        format_occurrence(EventOccurrence(datetime(2026, 2, 3, 18, 0)))
        == "Tuesday, February 3, 2026, 6:00 PM"
    )
    assert format_occurrence(EventOccurrence(datetime(2026, 2, 3))) == "Tuesday, February 3, 2026"


def test_listing_without_changes_has_no_summary_sections() -> None:
    body = render_events_html([_event()], heading_date=TODAY)

    assert "New Events" not in body
    assert "<hr/>" not in body
    assert "Toronto Public Library - New Items (2026-02-01)" in body
    assert "📅 Tuesday, February 3, 2026, 10:30 AM – 11:15 AM" in body
    assert "Songs &amp; stories" in body
    assert 'class="new-badge"' not in body


def test_listing_with_changes_groups_by_feed_and_badges_new_events() -> None:
    body = render_events_html(
        [_event(), _event(title="Chess <Night>", link="https://example.test/chess", occurrences=[])],
        new_titles={"Parkdale Branch": ["Chess <Night>"], "Annette Street": []},
        removed_titles={"Parkdale Branch": ["Book Club"]},
    )

    summary, _, listing = body.partition("<hr/>")
    assert "🆕 New Events:" in summary
    assert "<h4>Parkdale Branch</h4><ul><li>Chess &lt;Night&gt;</li></ul>" in summary
    assert "Annette Street" not in summary
    assert "🗑️ Removed Events:" in summary
    assert "<li>Book Club</li>" in summary
    assert listing.count('class="new-badge"') == 1


def test_content_body_is_rendered_verbatim() -> None:
    body = render_events_html([_event(content_encoded="<p><img src='x.png'/>Fun</p>")])

    assert "<p><img src='x.png'/>Fun</p>" in body


def test_error_report_includes_http_context_and_hints() -> None:
    details = ErrorDetails(
        message="Failed to fetch RSS feed: HTTP 503 Service Unavailable",
        timestamp="2026-02-01T12:00:00+00:00",
        environment="GitHub Actions",
        status_code=503,
        status_text="Service Unavailable",
        url="https://example.test/rss",
        ip="203.0.113.7",
    )

    body = render_error_html(details)

    assert "503 Service Unavailable" in body
    assert "203.0.113.7" in body
    assert "server-side error" in body
    assert build_error_subject("TPL", details, today=TODAY) == (
        "🚨 TPL Error [GitHub Actions] - 2026-02-01"
    )


def test_build_message_carries_html_alternative() -> None:
    message = build_message("me@example.test", "you@example.test", "Subject", "<p>Hi</p>")

    assert message["To"] == "you@example.test"
    assert message["Subject"] == "Subject"
    html_part = message.get_body(preferencelist=("html",))
    assert html_part is not None
    assert "<p>Hi</p>" in html_part.get_content()


@pytest.mark.parametrize(
    ("environ", "expected"),
    [
        ({"GITHUB_ACTIONS": "true"}, "GitHub Actions"),
        ({"FLY_APP_NAME": "tpl-event-watch"}, "Fly.io"),
        ({"APP_ENV": "production"}, "Fly.io"),
        ({"APP_ENV": "test"}, "Local Development"),
        ({}, "Local Development"),
    ],
)
def test_detect_environment(environ: dict[str, str], expected: str) -> None:
    assert detect_environment(environ) == expected


def test_error_details_follow_exception_chain(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "requests.get", lambda *args, **kwargs: _Response("198.51.100.4\n")
    )
    fetch_error = FeedFetchError(
        "Failed to fetch RSS feed: HTTP 403 Forbidden",
        status_code=403,
        status_text="Forbidden",
        url="https://example.test/rss",
    )
    try:
        raise RuntimeError("All 1 enabled feeds failed") from fetch_error
    except RuntimeError as exc:
        details = build_error_details(exc, environ={"GITHUB_ACTIONS": "true"})

    assert details.message == "All 1 enabled feeds failed"
    assert details.status_code == 403
    assert details.status_text == "Forbidden"
    assert details.url == "https://example.test/rss"
    assert details.environment == "GitHub Actions"
    assert details.ip == "198.51.100.4"


def test_public_ip_failure_leaves_ip_empty(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*args, **kwargs):
        raise requests.ConnectionError("no route")

    monkeypatch.setattr("requests.get", _fail)

    details = build_error_details(ValueError("bad"), environ={})

    assert details.ip is None
    assert details.status_code is None
