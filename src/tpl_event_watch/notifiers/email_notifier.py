from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from tpl_event_watch.models import ErrorDetails

from .base import Notifier
from .render import build_error_subject, render_error_html

logger = logging.getLogger(__name__)


class EmailNotifier(Notifier):
    def __init__(
        self,
        *,
        username: str,
        password: str,
        recipient: str,
        subject_prefix: str = "TPL",
        smtp_host: str = "smtp.gmail.com",
        smtp_port: int = 465,
        timeout_seconds: int = 30,
    ) -> None:
        self.username = username
        self.password = password
        self.recipient = recipient
        self.subject_prefix = subject_prefix
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.timeout_seconds = timeout_seconds

    def send(self, subject: str, html_body: str) -> None:
        self._deliver(build_message(self.username, self.recipient, subject, html_body))

    def send_error(self, details: ErrorDetails) -> None:
        subject = build_error_subject(self.subject_prefix, details)
        self._deliver(
            build_message(self.username, self.recipient, subject, render_error_html(details))
        )

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP_SSL(
            self.smtp_host, self.smtp_port, timeout=self.timeout_seconds
        ) as client:
            client.login(self.username, self.password)
            client.send_message(message)
        logger.info("Sent email %r to %s", message["Subject"], self.recipient)


def build_message(sender: str, recipient: str, subject: str, html_body: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(html_body, subtype="html")
    return message
