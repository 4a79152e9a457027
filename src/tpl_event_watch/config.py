from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


class ConfigError(ValueError):
    """Raised when configuration is invalid."""


@dataclass(slots=True)
class FeedSettings:
    name: str
    url: str
    enabled: bool = True


@dataclass(slots=True)
class EmailSettings:
    subject_prefix: str = "TPL"
    include_branch_name: bool = True
    user_env_var: str = "EMAIL_USER"
    password_env_var: str = "EMAIL_PASS"
    to_env_var: str = "EMAIL_TO"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465


@dataclass(slots=True)
class DatabaseSettings:
    path: str = "data/events.sqlite"
    prune_inactive_after_days: int = 30
    global_titles: bool = False


@dataclass(slots=True)
class FetchSettings:
    timeout_seconds: int = 30
    page_size: int = 10
    max_offset: int = 1000


@dataclass(slots=True)
class AppConfig:
    feeds: list[FeedSettings]
    email: EmailSettings = field(default_factory=EmailSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    fetch: FetchSettings = field(default_factory=FetchSettings)
    log_level: str = "INFO"

    @property
    def enabled_feeds(self) -> list[FeedSettings]:
        return [feed for feed in self.feeds if feed.enabled]


def _as_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value

    if isinstance(value, int) and value in {0, 1}:
        return bool(value)

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "on"}:
            return True
        if normalized in {"false", "0", "no", "off"}:
            return False

    raise ConfigError(f"{field_name} must be a boolean")


def _as_int(value: Any, *, field_name: str, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc

    if minimum is not None and parsed < minimum:
        raise ConfigError(f"{field_name} must be >= {minimum}")
    return parsed


def _as_str(value: Any, default: str) -> str:
    if value is None:
        return default
    return str(value).strip() or default


def _as_mapping(parsed: dict[str, Any], key: str) -> dict[str, Any]:
    raw = parsed.get(key, {}) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{key} must be a mapping")
    return raw


def _resolve_relative_path(config_path: Path, raw_path: str) -> str:
    candidate = Path(raw_path).expanduser()
    if candidate.is_absolute():
        return str(candidate)
    return str((config_path.parent / candidate).resolve())


def _parse_feeds(raw_feeds: Any) -> list[FeedSettings]:
    if not isinstance(raw_feeds, list) or not raw_feeds:
        raise ConfigError("Config must define at least one feed")

    feeds: list[FeedSettings] = []
    seen_names: set[str] = set()
    for index, feed in enumerate(raw_feeds, start=1):
        if not isinstance(feed, dict):
            raise ConfigError(f"Feed entry #{index} must be a mapping")

        name = str(feed.get("name", "")).strip()
        url = str(feed.get("url", "")).strip()
        if not name or not url:
            raise ConfigError(f"Feed entry #{index} missing one of: name, url")
        if not url.startswith(("http://", "https://")):
            raise ConfigError(f"Feed entry #{index} url must be http(s): {url}")
        if name in seen_names:
            raise ConfigError(f"Duplicate feed name: {name}")
        seen_names.add(name)

        feeds.append(
            FeedSettings(
                name=name,
                url=url,
                enabled=_as_bool(
                    feed.get("enabled", True),
                    field_name=f"feeds[{index}].enabled",
                ),
            )
        )

    if not any(feed.enabled for feed in feeds):
        raise ConfigError("At least one feed must be enabled")
    return feeds


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        parsed = yaml.safe_load(handle) or {}

    if not isinstance(parsed, dict):
        raise ConfigError("Config root must be a mapping")

    feeds = _parse_feeds(parsed.get("feeds"))

    raw_email = _as_mapping(parsed, "email")
    email_settings = EmailSettings(
        subject_prefix=_as_str(raw_email.get("subject_prefix"), "TPL"),
        include_branch_name=_as_bool(
            raw_email.get("include_branch_name", True),
            field_name="email.include_branch_name",
        ),
        user_env_var=_as_str(raw_email.get("user_env_var"), "EMAIL_USER"),
        password_env_var=_as_str(raw_email.get("password_env_var"), "EMAIL_PASS"),
        to_env_var=_as_str(raw_email.get("to_env_var"), "EMAIL_TO"),
        smtp_host=_as_str(raw_email.get("smtp_host"), "smtp.gmail.com"),
        smtp_port=_as_int(
            raw_email.get("smtp_port", 465),
            field_name="email.smtp_port",
            minimum=1,
        ),
    )

    raw_database = _as_mapping(parsed, "database")
    database_path = _as_str(raw_database.get("path"), "data/events.sqlite")
    database_settings = DatabaseSettings(
        path=_resolve_relative_path(config_path, database_path),
        prune_inactive_after_days=_as_int(
            raw_database.get("prune_inactive_after_days", 30),
            field_name="database.prune_inactive_after_days",
            minimum=1,
        ),
        global_titles=_as_bool(
            raw_database.get("global_titles", False),
            field_name="database.global_titles",
        ),
    )
    if database_settings.global_titles and sum(feed.enabled for feed in feeds) > 1:
        raise ConfigError("database.global_titles only supports a single feed")

    raw_fetch = _as_mapping(parsed, "fetch")
    fetch_settings = FetchSettings(
        timeout_seconds=_as_int(
            raw_fetch.get("timeout_seconds", 30),
            field_name="fetch.timeout_seconds",
            minimum=1,
        ),
        page_size=_as_int(
            raw_fetch.get("page_size", 10),
            field_name="fetch.page_size",
            minimum=1,
        ),
        max_offset=_as_int(
            raw_fetch.get("max_offset", 1000),
            field_name="fetch.max_offset",
            minimum=0,
        ),
    )

    return AppConfig(
        feeds=feeds,
        email=email_settings,
        database=database_settings,
        fetch=fetch_settings,
        log_level=str(parsed.get("log_level", "INFO")).upper(),
    )
