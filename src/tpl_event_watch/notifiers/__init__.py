"""Notifier implementations."""

from .base import Notifier
from .email_notifier import EmailNotifier
from .render import build_subject, render_error_html, render_events_html

__all__ = [
    "EmailNotifier",
    "Notifier",
    "build_subject",
    "render_error_html",
    "render_events_html",
]
