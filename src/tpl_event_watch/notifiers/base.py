from __future__ import annotations

from abc import ABC, abstractmethod

from tpl_event_watch.models import ErrorDetails


class Notifier(ABC):
    @abstractmethod
    def send(self, subject: str, html_body: str) -> None:
        """Deliver a rendered change summary or event listing."""

    @abstractmethod
    def send_error(self, details: ErrorDetails) -> None:
        """Deliver a run failure report."""
