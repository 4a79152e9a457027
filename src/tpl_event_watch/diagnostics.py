from __future__ import annotations

import logging
import os
from typing import Mapping

import requests

from tpl_event_watch.models import ErrorDetails
from tpl_event_watch.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

PUBLIC_IP_URL = "https://ifconfig.me/ip"


def detect_environment(environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    if env.get("GITHUB_ACTIONS"):
        return "GitHub Actions"
    if env.get("FLY_APP_NAME") or env.get("APP_ENV") == "production":
        return "Fly.io"
    return "Local Development"


def fetch_public_ip(timeout_seconds: int = 10) -> str | None:
    try:
        response = requests.get(
            PUBLIC_IP_URL,
            timeout=timeout_seconds,
            headers={"User-Agent": "tpl-event-watch/0.1"},
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch public IP: %s", exc)
        return None
    return response.text.strip() or None


def build_error_details(
    exc: BaseException,
    *,
    environ: Mapping[str, str] | None = None,
    lookup_ip: bool = True,
) -> ErrorDetails:
    """Describe a failed run for the error email.

    HTTP context is taken from the exception or anything it was raised from.
    """
    details = ErrorDetails(
        message=str(exc) or type(exc).__name__,
        timestamp=utc_now().isoformat(),
        environment=detect_environment(environ),
    )

    current: BaseException | None = exc
    while current is not None:
        status_code = getattr(current, "status_code", None)
        url = getattr(current, "url", None)
        if status_code is not None or url is not None:
            details.status_code = status_code
            details.status_text = getattr(current, "status_text", None)
            details.url = url
            break
        current = current.__cause__

    if lookup_ip:
        details.ip = fetch_public_ip()
    return details
