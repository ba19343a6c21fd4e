"""CLI behavior for config, feed management and engine commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

pytest.importorskip("typer")

from typer.testing import CliRunner

from rss_amplifier import __version__
from rss_amplifier.config import FetchConfig
from rss_amplifier.feeds.base import FetchResult
from rss_amplifier.feeds.ids import feed_id_for_url
from rss_amplifier.models import FeedDocument, FeedItem

from rss_amplifier.cli import app

runner = CliRunner()

URL = "https://a.example/feed.xml"


class StaticFetcher:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail

    @classmethod
    def from_config(cls, config: FetchConfig) -> StaticFetcher:
        return cls()

    def fetch(self, url: str, *, mock_content: str | bytes | None = None) -> FetchResult:
        if self.fail:
            return FetchResult(success=False, error="HTTP 500: Internal Server Error")
        return FetchResult(
            success=True,
            feed=FeedDocument(url=url, title="Example", items=(FeedItem(title="one", link=url),)),
        )


def _write_config(tmp_path: Path, extra: str = "") -> Path:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        f'[app]\ndata_dir = "{(tmp_path / "data").as_posix()}"\n\n'
        "[scheduler]\nretry_delay_ms = 0\n\n" + extra,
        encoding="utf-8",
    )
    return config_path


def test_cli_help_lists_command_groups() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("config", "feeds", "fetch", "status", "stats", "run", "--version", "--debug"):
        assert name in result.output


def test_cli_version_flag_prints_package_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_init_and_show_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"

    init_result = runner.invoke(app, ["config", "init", "--path", str(config_path)])
    assert init_result.exit_code == 0
    assert config_path.exists()

    show_result = runner.invoke(app, ["config", "show", "--path", str(config_path), "--json"])
    assert show_result.exit_code == 0
    payload = json.loads(show_result.output)
    assert payload["path"] == str(config_path)
    assert payload["config"]["scheduler"]["default_interval"] == "*/30 * * * *"


def test_config_show_reports_actionable_error_for_missing_path(tmp_path: Path) -> None:
    result = runner.invoke(app, ["config", "show", "--path", str(tmp_path / "missing.toml")])
    assert result.exit_code == 2
    assert "Config show failed:" in result.output
    assert "Run `rssamp config init" in result.output


def test_config_init_reports_force_hint_when_file_exists(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("existing", encoding="utf-8")
    result = runner.invoke(app, ["config", "init", "--path", str(config_path)])
    assert result.exit_code == 2
    assert "Config init failed:" in result.output
    assert "--force" in result.output


def test_feeds_lifecycle(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    feed_id = feed_id_for_url(URL)

    added = runner.invoke(
        app, ["feeds", "add", URL, "--interval", "*/5 * * * *", "--title", "A", "--path", config_path]
    )
    assert added.exit_code == 0, added.output
    assert f"Scheduled {feed_id}" in added.output

    listed = runner.invoke(app, ["feeds", "list", "--json", "--path", config_path])
    assert listed.exit_code == 0
    records = json.loads(listed.output)
    assert [(record["id"], record["url"], record["title"]) for record in records] == [(feed_id, URL, "A")]

    updated = runner.invoke(app, ["feeds", "update", feed_id, "0 * * * *", "--path", config_path])
    assert updated.exit_code == 0
    assert f"Rescheduled {feed_id}" in updated.output

    disabled = runner.invoke(app, ["feeds", "disable", feed_id, "--path", config_path])
    assert disabled.exit_code == 0
    plain = runner.invoke(app, ["feeds", "list", "--path", config_path])
    assert "[off] interval='0 * * * *'" in plain.output

    enabled = runner.invoke(app, ["feeds", "enable", feed_id, "--path", config_path])
    assert enabled.exit_code == 0

    removed = runner.invoke(app, ["feeds", "remove", feed_id, "--path", config_path])
    assert removed.exit_code == 0
    again = runner.invoke(app, ["feeds", "remove", feed_id, "--path", config_path])
    assert again.exit_code == 2
    assert "Feeds remove failed: Scheduled feed not found" in again.output


def test_feeds_add_rejects_invalid_cron(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    result = runner.invoke(app, ["feeds", "add", URL, "--interval", "61 * * * *", "--path", config_path])
    assert result.exit_code == 2
    assert "Feeds add failed: Invalid cron expression" in result.output


def test_feeds_update_unknown_feed(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    result = runner.invoke(app, ["feeds", "update", "missing", "*/10 * * * *", "--path", config_path])
    assert result.exit_code == 2
    assert "Scheduled feed not found" in result.output


def test_global_path_is_used_when_command_omits_it(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    runner.invoke(app, ["--path", config_path, "feeds", "add", URL])
    listed = runner.invoke(app, ["--path", config_path, "feeds", "list", "--json"])
    assert [record["url"] for record in json.loads(listed.output)] == [URL]


def test_feeds_sync_registers_configured_feeds(tmp_path: Path) -> None:
    config_path = str(
        _write_config(
            tmp_path,
            '[[feeds]]\nurl = "https://a.example/feed.xml"\ntitle = "A"\n\n'
            '[[feeds]]\nurl = "https://b.example/rss"\ninterval = "0 */6 * * *"\nenabled = false\n',
        )
    )
    result = runner.invoke(app, ["feeds", "sync", "--path", config_path])
    assert result.exit_code == 0
    assert "Synced 2 of 2" in result.output

    listed = json.loads(runner.invoke(app, ["feeds", "list", "--json", "--path", config_path]).output)
    by_url = {record["url"]: record for record in listed}
    assert by_url["https://a.example/feed.xml"]["interval"] == "*/30 * * * *"
    assert by_url["https://b.example/rss"]["enabled"] is False


def test_feeds_import_opml(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    opml_path = tmp_path / "subs.opml"
    opml_path.write_text(
        "<opml version='2.0'><body><outline text='Tech'>"
        "<outline text='A' xmlUrl='https://a.example/feed.xml'/>"
        "<outline text='B' xmlUrl='https://b.example/rss'/>"
        "</outline><outline text='Bad' xmlUrl='gopher://old'/></body></opml>",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["feeds", "import-opml", str(opml_path), "--path", config_path])

    assert result.exit_code == 0, result.output
    assert "Imported 2 feed(s)" in result.output
    assert "1 skipped" in result.output
    listed = json.loads(runner.invoke(app, ["feeds", "list", "--json", "--path", config_path]).output)
    assert {record["category"] for record in listed} == {"Tech"}


def test_feeds_import_opml_missing_file(tmp_path: Path) -> None:
    result = runner.invoke(app, ["feeds", "import-opml", str(tmp_path / "nope.opml")])
    assert result.exit_code == 2
    assert "Feeds import-opml failed:" in result.output


def test_fetch_updates_stats(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("rss_amplifier.cli.HttpFeedFetcher", StaticFetcher)
    config_path = str(_write_config(tmp_path))
    runner.invoke(app, ["feeds", "add", URL, "--path", config_path])

    result = runner.invoke(app, ["fetch", URL, "--path", config_path])
    assert result.exit_code == 0, result.output
    assert "Fetched 'Example' with 1 item(s) on attempt 1." in result.output

    stats = runner.invoke(app, ["stats", "--json", "--path", config_path])
    payload = json.loads(stats.output)
    assert payload["successfulUpdates"] == 1
    assert payload["totalFeeds"] == 1

    reset = runner.invoke(app, ["stats", "--json", "--reset", "--path", config_path])
    assert json.loads(reset.output)["successfulUpdates"] == 0


def test_fetch_failure_exits_with_code_two(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    result = runner.invoke(app, ["fetch", "ftp://a.example/feed", "--attempts", "1", "--path", config_path])
    assert result.exit_code == 2
    assert "Fetch failed: Invalid URL: URL must use HTTP or HTTPS protocol" in result.output


def test_status_json_reports_counts(tmp_path: Path) -> None:
    config_path = str(_write_config(tmp_path))
    runner.invoke(app, ["feeds", "add", URL, "--path", config_path])

    result = runner.invoke(app, ["status", "--json", "--path", config_path])

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["scheduled_feeds"] == 1
    assert payload["active_jobs"] == 0
    assert payload["is_running"] is False
    assert payload["stats"]["totalFeeds"] == 1


def test_run_starts_engine_until_budget(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("rss_amplifier.cli.HttpFeedFetcher", StaticFetcher)
    observed: dict[str, object] = {}

    def fake_block_until(max_runtime_seconds: int | None) -> bool:
        observed["budget"] = max_runtime_seconds
        return False

    monkeypatch.setattr("rss_amplifier.cli._block_until", fake_block_until)
    config_path = str(_write_config(tmp_path, '[[feeds]]\nurl = "https://a.example/feed.xml"\n'))

    result = runner.invoke(app, ["run", "--max-runtime-seconds", "5", "--path", config_path])

    assert result.exit_code == 0, result.output
    assert "Scheduler running with 1 job(s) for 1 feed(s)." in result.output
    assert "Scheduler stopped (runtime budget)." in result.output
    assert observed["budget"] == 5


def test_run_debug_writes_event_log(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("rss_amplifier.cli.HttpFeedFetcher", StaticFetcher)
    monkeypatch.setattr("rss_amplifier.cli._block_until", lambda max_runtime_seconds: True)
    config_path = str(_write_config(tmp_path))

    result = runner.invoke(app, ["--debug", "run", "--no-sync", "--path", config_path])

    assert result.exit_code == 0, result.output
    assert "Scheduler stopped (interrupt)." in result.output
    events_path = tmp_path / "data" / "logs" / "debug-events.jsonl"
    lines = events_path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["event_type"] for line in lines] == ["scheduler_state", "scheduler_state"]
