from __future__ import annotations

import json
from pathlib import Path

import pytest

from tpl_event_watch.cli import main

_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Toronto Public Library</title>
    <item>
      <title>Story Time</title>
      <link>https://example.test/story-time</link>
      <record><attributes>
        <attr name="p_event_date">2026-02-03</attr>
        <attr name="p_event_time">10:30 AM</attr>
      </attributes></record>
    </item>
  </channel>
</rss>
"""


class _DummyResponse:
    def __init__(self, content: bytes, status_code: int = 200) -> None:
        self.content = content
        self.text = content.decode("utf-8")
        self.status_code = status_code
        self.reason = "OK"

    def raise_for_status(self) -> None:
        return None


@pytest.fixture(autouse=True)
def _keep_pytest_log_handlers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("tpl_event_watch.cli.setup_logging", lambda level: None)


def _config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        """
feeds:
  - name: Parkdale Branch
    url: https://example.test/rss.jsp?N=1
database:
  path: data/events.sqlite
""",
        encoding="utf-8",
    )
    return path


def _fake_get(url: str, *args, **kwargs) -> _DummyResponse:
    if "ifconfig" in url:
        return _DummyResponse(b"203.0.113.9")
    return _DummyResponse(_FEED)


def test_config_error_exits_with_2(tmp_path, capsys) -> None:
    assert main(["-c", str(tmp_path / "missing.yaml"), "run"]) == 2
    assert "Config error" in capsys.readouterr().err


def test_run_without_credentials_exits_with_2(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("EMAIL_USER", raising=False)
    monkeypatch.delenv("EMAIL_PASS", raising=False)

    assert main(["-c", str(_config(tmp_path)), "run"]) == 2


def test_dry_run_prints_first_run_email_and_persists_state(
    tmp_path, monkeypatch: pytest.MonkeyPatch, capsys
) -> None:
    monkeypatch.setattr("requests.get", _fake_get)
    config_path = _config(tmp_path)

    assert main(["-c", str(config_path), "dry-run"]) == 0
    out = capsys.readouterr().out
    assert "[DRY RUN] WOULD EMAIL: TPL New Items - " in out
    assert "Story Time" in out

    assert main(["-c", str(config_path), "dry-run"]) == 0
    assert "WOULD EMAIL" not in capsys.readouterr().out

    assert main(["-c", str(config_path), "list-active"]) == 0
    events = json.loads(capsys.readouterr().out)
    assert [event["title"] for event in events] == ["Story Time"]
    assert events[0]["event_dates"] == [{"start": "2026-02-03T10:30:00", "end_time": None}]
    assert (tmp_path / "data/events.sqlite").exists()


def test_run_failure_sends_error_report_and_exits_with_1(
    tmp_path, monkeypatch: pytest.MonkeyPatch, capsys
) -> None:
    monkeypatch.setattr("requests.get", _fake_get)

    def _explode(self):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr("tpl_event_watch.cli.EventWatchService.run", _explode)

    assert main(["-c", str(_config(tmp_path)), "dry-run"]) == 1
    out = capsys.readouterr().out
    assert "[DRY RUN] WOULD EMAIL ERROR REPORT [" in out
    assert "database unavailable" in out
    assert "203.0.113.9" in out
