from __future__ import annotations

import html
from datetime import datetime
from typing import Iterable, Mapping

from tpl_event_watch.models import ErrorDetails, EventOccurrence, PersistedEvent
from tpl_event_watch.utils.datetime_utils import format_date, utc_now

_PAGE_STYLE = """
    body { font-family: Arial, sans-serif; margin: 20px; }
    .item { margin-bottom: 20px; padding: 15px; border-bottom: 1px solid #eee; clear: both; }
    .item img { float: left; margin-right: 15px; margin-bottom: 10px; max-width: 150px; }
    .item h3 { color: #2B4C7E; margin-top: 0; }
    .branch-tag { color: #666; font-size: 12px; margin-left: 8px; }
    .event-date { background: #e8f4f8; padding: 4px 8px; border-radius: 4px; margin: 4px 0; color: #2B4C7E; }
    .new-badge { background-color: #4CAF50; color: white; padding: 2px 6px; border-radius: 3px; margin-left: 8px; }
    .clearfix::after { content: ''; clear: both; display: table; }
"""

_ERROR_STYLE = """
    body { font-family: Arial, sans-serif; margin: 20px; background-color: #f5f5f5; }
    .error-container { background-color: white; padding: 20px; border-radius: 8px; max-width: 800px; }
    .error-header { color: #d32f2f; border-bottom: 2px solid #d32f2f; padding-bottom: 10px; }
    .error-details { background-color: #fff3e0; padding: 15px; border-left: 4px solid #ff9800; }
    .detail-label { font-weight: bold; min-width: 120px; color: #333; }
    .detail-value { color: #666; font-family: monospace; }
"""


def build_subject(
    prefix: str,
    *,
    changed_feeds: Iterable[str] = (),
    include_branch_name: bool = False,
    today: datetime | None = None,
) -> str:
    subject = f"{prefix} New Items - {format_date(today or utc_now())}"
    branches = sorted(set(changed_feeds))
    if include_branch_name and branches:
        subject = f"{subject} ({', '.join(branches)})"
    return subject


def build_error_subject(prefix: str, details: ErrorDetails, today: datetime | None = None) -> str:
    return f"🚨 {prefix} Error [{details.environment}] - {format_date(today or utc_now())}"


def format_occurrence(occurrence: EventOccurrence) -> str:
    start = occurrence.start
    text = f"{start:%A, %B} {start.day}, {start.year}"
    if start.hour or start.minute or occurrence.end_time is not None:
        text = f"{text}, {_format_clock(start.hour, start.minute)}"
    if occurrence.end_time is not None:
        end = occurrence.end_time
        text = f"{text} – {_format_clock(end.hour, end.minute)}"
    return text


def render_events_html(
    events: list[PersistedEvent],
    *,
    new_titles: Mapping[str, list[str]] | None = None,
    removed_titles: Mapping[str, list[str]] | None = None,
    heading_date: datetime | None = None,
) -> str:
    """Render the email body: change summary (if any), then every active event.

    ``new_titles`` and ``removed_titles`` map feed name to titles.
    """
    new_titles = new_titles or {}
    removed_titles = removed_titles or {}

    sections: list[str] = []
    if any(new_titles.values()):
        sections.append(_render_title_groups("🆕 New Events:", new_titles))
    if any(removed_titles.values()):
        sections.append(_render_title_groups("🗑️ Removed Events:", removed_titles))
    if sections:
        sections.append("<hr/>")

    new_keys = {
        (feed_name, title) for feed_name, titles in new_titles.items() for title in titles
    }
    sections.extend(_render_event(event, (event.feed_name, event.title) in new_keys) for event in events)

    date_text = format_date(heading_date or utc_now())
    body = "\n".join(sections)
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        f"<style>{_PAGE_STYLE}</style>\n"
        "</head>\n<body>\n"
        f"<h2>Toronto Public Library - New Items ({date_text})</h2>\n"
        f"<div class='results'>\n{body}\n</div>\n"
        "</body>\n</html>"
    )


def render_error_html(details: ErrorDetails) -> str:
    rows = [("Environment", details.environment), ("Timestamp", details.timestamp)]
    if details.ip:
        rows.append(("Public IP", details.ip))
    if details.url:
        rows.append(("Target URL", details.url))
    if details.status_code:
        rows.append(("HTTP Status", f"{details.status_code} {details.status_text or ''}".strip()))
    rows.append(("Error Message", details.message))

    detail_rows = "\n".join(
        f'<div class="detail-row"><span class="detail-label">{label}:</span> '
        f'<span class="detail-value">{html.escape(value)}</span></div>'
        for label, value in rows
    )

    steps = []
    if details.url:
        escaped_url = html.escape(details.url)
        steps.append(
            f'Check if the feed URL is still accessible: <a href="{escaped_url}">{escaped_url}</a>'
        )
    steps.append(
        f"Verify network connectivity from the {html.escape(details.environment)} environment"
    )
    steps.append("Check database connectivity and credentials")
    if details.status_code and details.status_code >= 500:
        steps.append("This appears to be a server-side error. The issue may resolve automatically.")
    elif details.status_code and details.status_code >= 400:
        steps.append(
            "This appears to be a client-side error. The URL or request format may need updating."
        )
    steps.append("Monitor subsequent runs to see if this is a persistent issue")
    step_items = "".join(f"<li>{step}</li>" for step in steps)

    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        f"<style>{_ERROR_STYLE}</style>\n"
        "</head>\n<body>\n"
        '<div class="error-container">\n'
        '<h2 class="error-header">🚨 TPL Event Watch Error Report</h2>\n'
        f'<div class="error-details">\n{detail_rows}\n</div>\n'
        f"<p><strong>Next Steps:</strong></p>\n<ul>{step_items}</ul>\n"
        "</div>\n</body>\n</html>"
    )


def _render_title_groups(heading: str, groups: Mapping[str, list[str]]) -> str:
    parts = [f"<h3>{heading}</h3>"]
    for feed_name in sorted(groups):
        titles = groups[feed_name]
        if not titles:
            continue
        items = "".join(f"<li>{html.escape(title)}</li>" for title in titles)
        parts.append(f"<h4>{html.escape(feed_name)}</h4><ul>{items}</ul>")
    return "".join(parts)


def _render_event(event: PersistedEvent, is_new: bool) -> str:
    badge = '<span class="new-badge">New</span>' if is_new else ""
    dates = "".join(
        f'<div class="event-date">📅 {format_occurrence(occurrence)}</div>'
        for occurrence in event.occurrences
    )
    return (
        '<div class="item">'
        f'<h3><a href="{html.escape(event.link)}">{html.escape(event.title)}</a>'
        f'<span class="branch-tag">{html.escape(event.feed_name)}</span>{badge}</h3>'
        f"{dates}"
        f"{event.content_encoded or html.escape(event.description or '')}"
        '<div class="clearfix"></div>'
        "</div>"
    )


def _format_clock(hour: int, minute: int) -> str:
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:{minute:02d} {suffix}"
