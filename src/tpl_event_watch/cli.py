from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from tpl_event_watch.config import AppConfig, ConfigError, load_config
from tpl_event_watch.diagnostics import build_error_details
from tpl_event_watch.feeds import HttpFeedFetcher
from tpl_event_watch.logging_config import setup_logging
from tpl_event_watch.models import ErrorDetails
from tpl_event_watch.notifiers import EmailNotifier, Notifier, render_error_html
from tpl_event_watch.service import EventWatchService
from tpl_event_watch.store import SQLiteStore

logger = logging.getLogger(__name__)


class _ConsoleNotifier(Notifier):
    def send(self, subject: str, html_body: str) -> None:
        print(f"[DRY RUN] WOULD EMAIL: {subject}")
        print(html_body)
        print("")

    def send_error(self, details: ErrorDetails) -> None:
        print(f"[DRY RUN] WOULD EMAIL ERROR REPORT [{details.environment}]")
        print(render_error_html(details))
        print("")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tpl-event-watch",
        description="Poll library event feeds and email what changed.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to config YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        help="Override config log level (e.g. INFO, DEBUG)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", help="Reconcile all enabled feeds and email changes")
    subparsers.add_parser(
        "dry-run",
        help="Reconcile all enabled feeds and print the email instead of sending it",
    )
    subparsers.add_parser("init-db", help="Initialize SQLite schema")
    subparsers.add_parser("list-active", help="Print active events as JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = load_config(args.config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    log_level = args.log_level or app_config.log_level
    setup_logging(log_level)

    store = _build_store(app_config)

    if args.command == "init-db":
        store.init_db()
        logger.info("Initialized SQLite database at %s", app_config.database.path)
        return 0

    if args.command == "list-active":
        store.init_db()
        events = store.list_active_events(feed.name for feed in app_config.enabled_feeds)
        print(json.dumps([event.to_dict() for event in events], indent=2, ensure_ascii=False))
        return 0

    if args.command == "dry-run":
        notifier: Notifier = _ConsoleNotifier()
    else:
        email_notifier = _build_email_notifier(app_config)
        if email_notifier is None:
            return 2
        notifier = email_notifier

    service = EventWatchService(
        feeds=app_config.feeds,
        fetcher=HttpFeedFetcher(timeout_seconds=app_config.fetch.timeout_seconds),
        store=store,
        notifier=notifier,
        retention_days=app_config.database.prune_inactive_after_days,
        subject_prefix=app_config.email.subject_prefix,
        include_branch_name=app_config.email.include_branch_name,
        page_size=app_config.fetch.page_size,
        max_offset=app_config.fetch.max_offset,
    )

    try:
        store.init_db()
        summary = service.run()
    except Exception as exc:  # noqa: BLE001
        logger.exception("Run failed: %s", exc)
        _report_failure(notifier, exc)
        return 1

    logger.info(
        "Run complete | feeds=%d new=%d removed=%d notification=%s errors=%d",
        len(summary.results),
        sum(len(titles) for titles in summary.new_titles.values()),
        sum(len(titles) for titles in summary.removed_titles.values()),
        summary.notification or "none",
        len(summary.errors),
    )
    return 0 if summary.ok else 1


def _build_store(app_config: AppConfig) -> SQLiteStore:
    return SQLiteStore(
        app_config.database.path,
        global_titles=app_config.database.global_titles,
    )


def _build_email_notifier(app_config: AppConfig) -> EmailNotifier | None:
    settings = app_config.email
    username = os.getenv(settings.user_env_var, "").strip()
    password = os.getenv(settings.password_env_var, "").strip()
    if not username or not password:
        logger.error(
            "%s and %s environment variables must be set",
            settings.user_env_var,
            settings.password_env_var,
        )
        return None

    recipient = os.getenv(settings.to_env_var, "").strip() or username
    return EmailNotifier(
        username=username,
        password=password,
        recipient=recipient,
        subject_prefix=settings.subject_prefix,
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
    )


def _report_failure(notifier: Notifier, exc: Exception) -> None:
    details = build_error_details(exc)
    try:
        notifier.send_error(details)
    except Exception as send_exc:  # noqa: BLE001
        logger.exception("Failed to send error report: %s", send_exc)


if __name__ == "__main__":
    raise SystemExit(main())
