"""Config init/show defaults and validation behavior."""

from __future__ import annotations

from pathlib import Path

import pytest

from rss_amplifier.config import (
    DEFAULT_INTERVAL,
    default_config,
    default_config_toml,
    init_default_config,
    load_runtime_config,
    load_runtime_config_or_default,
    resolve_config_path,
    resolve_data_dir,
)
from rss_amplifier.errors import ConfigError


def test_resolve_config_path_uses_explicit_path() -> None:
    path = resolve_config_path("~/tmp/rss-amplifier-test.toml")
    assert str(path).endswith("rss-amplifier-test.toml")


def test_resolve_config_path_uses_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    env_path = tmp_path / "env-config.toml"
    monkeypatch.setenv("RSS_AMPLIFIER_CONFIG", str(env_path))
    assert resolve_config_path() == env_path


def test_init_default_config_writes_template(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    written = init_default_config(config_path)
    assert written == config_path
    assert default_config_toml().strip() in config_path.read_text(encoding="utf-8")


def test_init_default_config_requires_force_for_overwrite(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("existing", encoding="utf-8")
    with pytest.raises(ConfigError, match="--force"):
        init_default_config(config_path)
    init_default_config(config_path, force=True)
    assert "[scheduler]" in config_path.read_text(encoding="utf-8")


def test_load_runtime_config_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Run `rssamp config init"):
        load_runtime_config(tmp_path / "missing.toml")


def test_load_runtime_config_or_default_falls_back_when_missing(tmp_path: Path) -> None:
    assert load_runtime_config_or_default(tmp_path / "missing.toml") == default_config()


def test_default_template_round_trips_to_defaults(tmp_path: Path) -> None:
    config_path = init_default_config(tmp_path / "config.toml")
    config = load_runtime_config(config_path)

    assert config.scheduler == default_config().scheduler
    assert config.fetch == default_config().fetch
    assert config.scheduler.default_interval == DEFAULT_INTERVAL
    assert len(config.feeds) == 1
    assert config.feeds[0].interval == "*/15 * * * *"


def test_load_runtime_config_parses_feeds(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
[app]
data_dir = "~/rss-data"

[scheduler]
retry_attempts = 5
retry_delay_ms = 0
timezone = "Europe/Berlin"

[[feeds]]
url = "https://a.example/feed.xml"
title = "A"

[[feeds]]
url = "https://b.example/rss"
interval = "0 */6 * * *"
enabled = false
""",
        encoding="utf-8",
    )

    config = load_runtime_config(config_path)

    assert config.scheduler.retry_attempts == 5
    assert config.scheduler.retry_delay_ms == 0
    assert config.scheduler.timezone == "Europe/Berlin"
    assert [feed.url for feed in config.feeds] == ["https://a.example/feed.xml", "https://b.example/rss"]
    assert config.feeds[0].interval is None
    assert config.feeds[1].enabled is False
    assert resolve_data_dir(config) == Path("~/rss-data").expanduser()


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("[scheduler]\ndefault_interval = \"61 * * * *\"\n", "scheduler.default_interval"),
        ("[scheduler]\nmax_concurrent = 0\n", "scheduler.max_concurrent"),
        ("[scheduler]\nretry_attempts = true\n", "scheduler.retry_attempts"),
        ("[scheduler]\nretry_delay_ms = -1\n", "scheduler.retry_delay_ms"),
        ("[scheduler]\ntimezone = \"Mars/Olympus\"\n", "scheduler.timezone"),
        ("[fetch]\ntimeout_seconds = 0\n", "fetch.timeout_seconds"),
        ("[app]\ndebug = \"yes\"\n", "app.debug"),
        ("[[feeds]]\nurl = \"ftp://a.example/feed\"\n", "feeds\\[0\\].url"),
        ("[[feeds]]\nurl = \"https://a.example/feed\"\ninterval = \"bad\"\n", "feeds\\[0\\].interval"),
        ("[[feeds]]\ntitle = \"no url\"\n", "feeds\\[0\\].url"),
        ("feeds = \"nope\"\n", "\\[feeds\\]"),
    ],
)
def test_load_runtime_config_rejects_invalid_values(tmp_path: Path, body: str, message: str) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_runtime_config(config_path)


def test_load_runtime_config_reports_invalid_toml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[scheduler\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid TOML"):
        load_runtime_config(config_path)
