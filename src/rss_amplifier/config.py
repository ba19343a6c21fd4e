"""Shared configuration contracts and validation helpers for rss-amplifier."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from platformdirs import user_config_dir, user_data_dir

from .errors import ConfigError

APP_NAME = "rss-amplifier"
CONFIG_ENV_VAR = "RSS_AMPLIFIER_CONFIG"
DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_INTERVAL = "*/30 * * * *"
DEFAULT_USER_AGENT = "RSS-Amplifier/1.0"

DEFAULT_CONFIG_TEMPLATE = """[app]
# data_dir = "~/.local/share/rss-amplifier"
debug = false

[scheduler]
default_interval = "*/30 * * * *"
max_concurrent = 5
retry_attempts = 3
retry_delay_ms = 5000
timezone = "UTC"

[fetch]
timeout_seconds = 10
user_agent = "RSS-Amplifier/1.0"
max_items = 100

[[feeds]]
url = "https://hnrss.org/frontpage"
title = "Hacker News"
interval = "*/15 * * * *"
enabled = true
"""


@dataclass(frozen=True)
class AppConfig:
    data_dir: str | None = None
    debug: bool = False


@dataclass(frozen=True)
class SchedulerConfig:
    default_interval: str = DEFAULT_INTERVAL
    max_concurrent: int = 5
    retry_attempts: int = 3
    retry_delay_ms: int = 5_000
    timezone: str = "UTC"


@dataclass(frozen=True)
class FetchConfig:
    timeout_seconds: int = 10
    user_agent: str = DEFAULT_USER_AGENT
    max_items: int = 100


@dataclass(frozen=True)
class FeedSourceConfig:
    url: str
    title: str = ""
    interval: str | None = None
    enabled: bool = True


@dataclass(frozen=True)
class RuntimeConfig:
    app: AppConfig = field(default_factory=AppConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    feeds: tuple[FeedSourceConfig, ...] = ()


def default_config() -> RuntimeConfig:
    return RuntimeConfig()


def default_config_toml() -> str:
    return DEFAULT_CONFIG_TEMPLATE


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    if config_path:
        return Path(config_path).expanduser()

    env_value = os.getenv(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()

    config_dir = Path(user_config_dir(APP_NAME, appauthor=False))
    return config_dir / DEFAULT_CONFIG_FILENAME


def default_data_dir() -> Path:
    return Path(user_data_dir(APP_NAME, appauthor=False))


def resolve_data_dir(config: RuntimeConfig) -> Path:
    """Return the directory holding scheduler and feed state files."""
    if config.app.data_dir:
        return Path(config.app.data_dir).expanduser()
    return default_data_dir()


def init_default_config(config_path: str | Path | None = None, force: bool = False) -> Path:
    path = resolve_config_path(config_path)
    if path.exists() and path.is_dir():
        raise ConfigError(
            f"Config path '{path}' is a directory; expected a TOML file path (for example '{path / DEFAULT_CONFIG_FILENAME}')."
        )
    if path.exists() and not force:
        raise ConfigError(
            f"Config file already exists at '{path}'. Re-run with --force to overwrite."
        )

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default_config_toml(), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Could not write config file at '{path}': {exc}. "
            "Check path permissions or choose a writable location with `--path`."
        ) from exc
    return path


def load_runtime_config(config_path: str | Path | None = None) -> RuntimeConfig:
    path = resolve_config_path(config_path)
    if not path.exists():
        raise ConfigError(
            f"Config file not found at '{path}'. Run `rssamp config init --path \"{path}\"` to generate defaults."
        )
    if path.is_dir():
        raise ConfigError(
            f"Config path '{path}' is a directory; pass a file path ending in '{DEFAULT_CONFIG_FILENAME}'."
        )

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"Could not read config file '{path}': {exc}. "
            "Check file permissions and that the path points to a readable TOML file."
        ) from exc
    raw = _load_toml(text, path)
    return _parse_runtime_config(raw)


def load_runtime_config_or_default(config_path: str | Path | None = None) -> RuntimeConfig:
    """Load config when the file exists, otherwise fall back to built-in defaults."""
    path = resolve_config_path(config_path)
    if not path.exists():
        return default_config()
    return load_runtime_config(path)


def config_to_dict(config: RuntimeConfig) -> dict[str, Any]:
    return asdict(config)


def _load_toml(text: str, path: Path) -> dict[str, Any]:
    try:
        import tomllib  # Python 3.11+
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Config file '{path}' contains invalid TOML: {exc}. "
            "Fix the syntax or regenerate defaults with `rssamp config init --force`."
        ) from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must parse to a TOML table.")
    return data


def _parse_runtime_config(data: dict[str, Any]) -> RuntimeConfig:
    from .feeds.validation import validate_feed_url
    from .scheduler.cron import validate_cron_expression

    app_raw = _expect_table(data, "app", default={})
    scheduler_raw = _expect_table(data, "scheduler", default={})
    fetch_raw = _expect_table(data, "fetch", default={})
    feeds_raw = data.get("feeds", [])

    if not isinstance(feeds_raw, list):
        raise ConfigError("Invalid [feeds]: expected an array of tables (`[[feeds]]`).")

    data_dir = app_raw.get("data_dir")
    if data_dir is not None and (not isinstance(data_dir, str) or not data_dir.strip()):
        raise ConfigError("Invalid value for 'app.data_dir': expected non-empty string.")
    app_config = AppConfig(
        data_dir=data_dir,
        debug=_expect_bool(app_raw, "app.debug", default=False),
    )

    default_interval = _expect_non_empty_string(
        scheduler_raw, "scheduler.default_interval", DEFAULT_INTERVAL
    )
    _expect_cron(default_interval, "scheduler.default_interval", validate_cron_expression)
    timezone_name = _expect_non_empty_string(scheduler_raw, "scheduler.timezone", "UTC")
    try:
        ZoneInfo(timezone_name)
    except ZoneInfoNotFoundError as exc:
        raise ConfigError(
            f"Invalid value for 'scheduler.timezone': '{timezone_name}'. "
            "Use an IANA timezone like 'UTC' or 'America/New_York'."
        ) from exc

    scheduler_config = SchedulerConfig(
        default_interval=default_interval,
        max_concurrent=_expect_positive_int(scheduler_raw, "scheduler.max_concurrent", default=5),
        retry_attempts=_expect_positive_int(scheduler_raw, "scheduler.retry_attempts", default=3),
        retry_delay_ms=_expect_non_negative_int(scheduler_raw, "scheduler.retry_delay_ms", default=5_000),
        timezone=timezone_name,
    )

    fetch_config = FetchConfig(
        timeout_seconds=_expect_positive_int(fetch_raw, "fetch.timeout_seconds", default=10),
        user_agent=_expect_non_empty_string(fetch_raw, "fetch.user_agent", DEFAULT_USER_AGENT),
        max_items=_expect_positive_int(fetch_raw, "fetch.max_items", default=100),
    )

    parsed_feeds: list[FeedSourceConfig] = []
    for index, feed in enumerate(feeds_raw):
        if not isinstance(feed, dict):
            raise ConfigError(f"feeds[{index}] must be a table, got {type(feed).__name__}.")

        url = _expect_non_empty_string(feed, f"feeds[{index}].url", default=None)
        url_check = validate_feed_url(url)
        if not url_check.valid:
            raise ConfigError(
                f"Invalid value for 'feeds[{index}].url': {', '.join(url_check.errors)}."
            )
        interval = feed.get("interval")
        if interval is not None:
            interval = _expect_non_empty_string(feed, f"feeds[{index}].interval", default=None)
            _expect_cron(interval, f"feeds[{index}].interval", validate_cron_expression)
        title = feed.get("title", "")
        if not isinstance(title, str):
            raise ConfigError(f"Invalid value for 'feeds[{index}].title': expected string.")

        parsed_feeds.append(
            FeedSourceConfig(
                url=url,
                title=title,
                interval=interval,
                enabled=_expect_bool(feed, f"feeds[{index}].enabled", default=True),
            )
        )

    return RuntimeConfig(
        app=app_config,
        scheduler=scheduler_config,
        fetch=fetch_config,
        feeds=tuple(parsed_feeds),
    )


def _expect_table(data: dict[str, Any], key: str, default: dict[str, Any]) -> dict[str, Any]:
    value = data.get(key, default)
    if not isinstance(value, dict):
        raise ConfigError(f"Invalid [{key}] table: expected table, got {type(value).__name__}.")
    return value


def _expect_non_empty_string(
    data: dict[str, Any], key: str, default: str | None
) -> str:
    if key.split(".")[-1] in data:
        value = data[key.split(".")[-1]]
    else:
        if default is None:
            raise ConfigError(f"Missing required value '{key}'.")
        value = default

    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Invalid value for '{key}': expected non-empty string.")
    return value


def _expect_positive_int(data: dict[str, Any], key: str, default: int) -> int:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"Invalid value for '{key}': expected positive integer.")
    return value


def _expect_non_negative_int(data: dict[str, Any], key: str, default: int) -> int:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"Invalid value for '{key}': expected integer >= 0.")
    return value


def _expect_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    field = key.split(".")[-1]
    value = data.get(field, default)
    if not isinstance(value, bool):
        raise ConfigError(f"Invalid value for '{key}': expected boolean true/false.")
    return value


def _expect_cron(expression: str, key: str, validate: Any) -> None:
    result = validate(expression)
    if not result.valid:
        raise ConfigError(
            f"Invalid value for '{key}': {'; '.join(result.errors)}."
        )
