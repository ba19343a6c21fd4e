"""Typer CLI for rss-amplifier feed scheduling."""

from __future__ import annotations

import json
from pathlib import Path
import time as time_module
from typing import Any

import typer

from . import __version__
from .config import (
    RuntimeConfig,
    config_to_dict,
    init_default_config,
    load_runtime_config,
    load_runtime_config_or_default,
    resolve_config_path,
    resolve_data_dir,
)
from .diagnostics.events import JsonlEventLogger
from .errors import ConfigError, DiagnosticsError, FeedError, PersistenceError, SchedulerError
from .feeds.fetcher import HttpFeedFetcher
from .feeds.opml import import_opml
from .feeds.store import JsonFeedStore
from .logging import configure_logging, get_logger
from .scheduler.engine import FeedScheduler, SchedulerStatus
from .scheduler.store import engine_stats_to_dict, schedule_record_to_dict

app = typer.Typer(help="Periodic RSS/Atom feed refresh scheduler.")

config_app = typer.Typer(help="Config commands.")
feeds_app = typer.Typer(help="Scheduled feed management commands.")

app.add_typer(config_app, name="config")
app.add_typer(feeds_app, name="feeds")

logger = get_logger(__name__)

_PATH_HELP = "Optional config TOML path (defaults to platform config dir)."


@config_app.command("init")
def config_init(
    ctx: typer.Context,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config file."),
) -> None:
    try:
        written_path = init_default_config(_resolve_path(path, ctx), force=force)
    except ConfigError as exc:
        typer.secho(f"Config init failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    typer.echo(f"Wrote default config to {written_path}")


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render resolved config as JSON."),
) -> None:
    config_path = _resolve_path(path, ctx)
    resolved_path = resolve_config_path(config_path)
    try:
        config = load_runtime_config(config_path)
    except ConfigError as exc:
        typer.secho(f"Config show failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    payload = {
        "path": str(resolved_path),
        "data_dir": str(resolve_data_dir(config)),
        "config": config_to_dict(config),
    }
    if as_json:
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    typer.echo(f"Resolved config path: {payload['path']}")
    typer.echo(f"Data dir: {payload['data_dir']}")
    typer.echo(f"Default interval: {config.scheduler.default_interval}")
    typer.echo(f"Timezone: {config.scheduler.timezone}")
    typer.echo(f"Configured feeds: {len(config.feeds)}")


@feeds_app.command("add")
def feeds_add(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="RSS/Atom feed URL (http or https)."),
    interval: str | None = typer.Option(
        None, "--interval", help="5-field cron expression (defaults to scheduler.default_interval)."
    ),
    title: str | None = typer.Option(None, "--title", help="Display title for the feed."),
    disabled: bool = typer.Option(False, "--disabled", help="Register the feed without scheduling it."),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    scheduler = _open_scheduler(ctx, path, "Feeds add")
    try:
        result = scheduler.add_feed(url, interval=interval, title=title, enabled=not disabled)
    finally:
        scheduler.close()

    if not result.success:
        typer.secho(f"Feeds add failed: {result.error}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2)
    next_run = result.next_run.isoformat() if result.next_run else "none"
    typer.echo(f"Scheduled {result.feed_id} next_run={next_run}")


@feeds_app.command("remove")
def feeds_remove(
    ctx: typer.Context,
    feed_id: str = typer.Argument(..., help="Scheduled feed id."),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    scheduler = _open_scheduler(ctx, path, "Feeds remove")
    try:
        result = scheduler.remove_feed(feed_id)
    finally:
        scheduler.close()

    if not result.success:
        typer.secho(f"Feeds remove failed: {result.error}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2)
    typer.echo(f"Removed {feed_id}")


@feeds_app.command("list")
def feeds_list(
    ctx: typer.Context,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render scheduled feeds as JSON."),
) -> None:
    scheduler = _open_scheduler(ctx, path, "Feeds list")
    try:
        records = scheduler.list_scheduled_feeds()
    finally:
        scheduler.close()

    if as_json:
        typer.echo(
            json.dumps([schedule_record_to_dict(record) for record in records], indent=2, sort_keys=True)
        )
        return

    if not records:
        typer.echo("No scheduled feeds.")
        return
    for record in records:
        marker = "on" if record.enabled else "off"
        typer.echo(
            f"- {record.feed_id} [{marker}] interval='{record.interval}' "
            f"next={record.next_run.isoformat()} failures={record.failure_count} {record.url}"
        )


@feeds_app.command("update")
def feeds_update(
    ctx: typer.Context,
    feed_id: str = typer.Argument(..., help="Scheduled feed id."),
    interval: str = typer.Argument(..., help="New 5-field cron expression."),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    scheduler = _open_scheduler(ctx, path, "Feeds update")
    try:
        result = scheduler.update_feed_schedule(feed_id, interval)
    finally:
        scheduler.close()

    if not result.success:
        typer.secho(f"Feeds update failed: {result.error}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2)
    next_run = result.next_run.isoformat() if result.next_run else "none"
    typer.echo(f"Rescheduled {feed_id} next_run={next_run}")


@feeds_app.command("enable")
def feeds_enable(
    ctx: typer.Context,
    feed_id: str = typer.Argument(..., help="Scheduled feed id."),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    _set_enabled(ctx, path, feed_id, enabled=True)


@feeds_app.command("disable")
def feeds_disable(
    ctx: typer.Context,
    feed_id: str = typer.Argument(..., help="Scheduled feed id."),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    _set_enabled(ctx, path, feed_id, enabled=False)


@feeds_app.command("sync")
def feeds_sync(
    ctx: typer.Context,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    config_path = _resolve_path(path, ctx)
    try:
        config = load_runtime_config(config_path)
        scheduler = _build_scheduler(config, debug=_resolve_debug(ctx))
    except (ConfigError, SchedulerError, PersistenceError, DiagnosticsError) as exc:
        typer.secho(f"Feeds sync failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    try:
        failures = _sync_configured_feeds(scheduler, config)
    finally:
        scheduler.close()

    typer.echo(f"Synced {len(config.feeds) - len(failures)} of {len(config.feeds)} configured feed(s).")
    for url, error in failures:
        typer.secho(f"- {url}: {error}", err=True, fg=typer.colors.YELLOW)
    if failures:
        raise typer.Exit(2)


@feeds_app.command("import-opml")
def feeds_import_opml(
    ctx: typer.Context,
    opml_path: Path = typer.Argument(..., help="OPML subscription list to import."),
    interval: str | None = typer.Option(
        None, "--interval", help="Cron expression for every imported feed."
    ),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
) -> None:
    try:
        imported = import_opml(opml_path)
    except FeedError as exc:
        typer.secho(f"Feeds import-opml failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    scheduler = _open_scheduler(ctx, path, "Feeds import-opml")
    added = 0
    failed: list[tuple[str, str]] = []
    try:
        for feed in imported.feeds:
            extra: dict[str, Any] = {}
            if feed.category:
                extra["category"] = feed.category
            if feed.html_url:
                extra["html_url"] = feed.html_url
            result = scheduler.add_feed(feed.url, interval=interval, title=feed.title or None, **extra)
            if result.success:
                added += 1
            else:
                failed.append((feed.url, result.error or "unknown error"))
    finally:
        scheduler.close()

    typer.echo(
        f"Imported {added} feed(s) from {opml_path} "
        f"({len(failed)} failed, {len(imported.skipped)} skipped)."
    )
    for url, error in failed:
        typer.secho(f"- {url}: {error}", err=True, fg=typer.colors.YELLOW)


@app.command("fetch")
def fetch(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Feed URL to refresh now."),
    attempts: int | None = typer.Option(None, "--attempts", min=1, help="Override retry attempts."),
    delay_ms: int | None = typer.Option(None, "--delay-ms", min=0, help="Override retry delay in ms."),
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render fetch result as JSON."),
) -> None:
    scheduler = _open_scheduler(ctx, path, "Fetch")
    try:
        result = scheduler.fetch_and_update_feed(url, retry_attempts=attempts, retry_delay_ms=delay_ms)
    finally:
        scheduler.close()

    if as_json:
        typer.echo(
            json.dumps(
                {
                    "url": result.url,
                    "success": result.success,
                    "title": result.feed.title if result.feed else None,
                    "items_added": result.items_added,
                    "attempt": result.attempt,
                    "attempts": result.attempts,
                    "error": result.error,
                },
                indent=2,
                sort_keys=True,
            )
        )
    elif result.success:
        title = result.feed.title if result.feed else ""
        typer.echo(f"Fetched '{title}' with {result.items_added} item(s) on attempt {result.attempt}.")

    if not result.success:
        typer.secho(
            f"Fetch failed: {result.error} (after {result.attempts} attempt(s))",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(2)


@app.command("status")
def status(
    ctx: typer.Context,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    as_json: bool = typer.Option(False, "--json", help="Render scheduler status as JSON."),
) -> None:
    scheduler = _open_scheduler(ctx, path, "Status")
    try:
        current = scheduler.get_status()
    finally:
        scheduler.close()

    if as_json:
        typer.echo(json.dumps(_status_payload(current), indent=2, sort_keys=True))
        return

    typer.echo(f"Scheduled feeds: {current.scheduled_feeds}")
    typer.echo(f"Active jobs: {current.active_jobs}")
    typer.echo(f"Running: {current.is_running} Paused: {current.is_paused}")
    last_update = current.last_update.isoformat() if current.last_update else "never"
    typer.echo(f"Last update: {last_update}")


@app.command("stats")
def stats(
    ctx: typer.Context,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    reset: bool = typer.Option(False, "--reset", help="Zero the update counters."),
    as_json: bool = typer.Option(False, "--json", help="Render update stats as JSON."),
) -> None:
    scheduler = _open_scheduler(ctx, path, "Stats")
    try:
        current = scheduler.reset_stats() if reset else scheduler.get_update_stats()
    finally:
        scheduler.close()

    payload = engine_stats_to_dict(current)
    if as_json:
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return
    typer.echo(f"Total feeds: {current.total_feeds}")
    typer.echo(f"Successful updates: {current.successful_updates}")
    typer.echo(f"Failed updates: {current.failed_updates}")
    typer.echo(f"Last update: {payload['lastUpdateTime'] or 'never'}")


@app.command("run")
def run(
    ctx: typer.Context,
    path: str | None = typer.Option(None, "--path", help=_PATH_HELP),
    max_runtime_seconds: int | None = typer.Option(
        None,
        "--max-runtime-seconds",
        min=1,
        help="Stop after this many seconds (default: run until interrupted).",
    ),
    sync: bool = typer.Option(True, "--sync/--no-sync", help="Register configured [[feeds]] before starting."),
) -> None:
    config_path = _resolve_path(path, ctx)
    try:
        config = load_runtime_config_or_default(config_path)
        scheduler = _build_scheduler(config, debug=_resolve_debug(ctx))
    except (ConfigError, SchedulerError, PersistenceError, DiagnosticsError) as exc:
        typer.secho(f"Run failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc

    try:
        if sync:
            for url, error in _sync_configured_feeds(scheduler, config):
                logger.warning("Skipping configured feed %s: %s", url, error)
        scheduler.start()
        current = scheduler.get_status()
        typer.echo(
            f"Scheduler running with {current.active_jobs} job(s) for {current.scheduled_feeds} feed(s)."
        )
        interrupted = _block_until(max_runtime_seconds)
    finally:
        scheduler.close()

    stopped_by = "interrupt" if interrupted else "runtime budget"
    typer.echo(f"Scheduler stopped ({stopped_by}).")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show rss-amplifier version and exit."),
    path: str | None = typer.Option(
        None, "--path", help="Config TOML path used by commands when they omit --path."
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging and event log."),
) -> None:
    ctx.obj = {"path": path, "debug": debug}
    if version:
        typer.echo(__version__)
        raise typer.Exit()
    configure_logging(debug)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _build_scheduler(config: RuntimeConfig, *, debug: bool) -> FeedScheduler:
    data_dir = resolve_data_dir(config)
    debug = debug or config.app.debug
    event_logger = JsonlEventLogger(data_dir / "logs" / "debug-events.jsonl") if debug else None
    return FeedScheduler(
        config.scheduler,
        data_dir=data_dir / "scheduler",
        feed_store=JsonFeedStore(data_dir / "feeds", max_items=config.fetch.max_items),
        fetcher=HttpFeedFetcher.from_config(config.fetch),
        event_logger=event_logger,
    )


def _open_scheduler(ctx: typer.Context, path: str | None, action: str) -> FeedScheduler:
    try:
        config = load_runtime_config_or_default(_resolve_path(path, ctx))
        return _build_scheduler(config, debug=_resolve_debug(ctx))
    except (ConfigError, SchedulerError, PersistenceError, DiagnosticsError) as exc:
        typer.secho(f"{action} failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2) from exc


def _set_enabled(ctx: typer.Context, path: str | None, feed_id: str, *, enabled: bool) -> None:
    action = "Feeds enable" if enabled else "Feeds disable"
    scheduler = _open_scheduler(ctx, path, action)
    try:
        result = scheduler.set_feed_enabled(feed_id, enabled)
    finally:
        scheduler.close()

    if not result.success:
        typer.secho(f"{action} failed: {result.error}", err=True, fg=typer.colors.RED)
        raise typer.Exit(2)
    typer.echo(f"{'Enabled' if enabled else 'Disabled'} {feed_id}")


def _sync_configured_feeds(scheduler: FeedScheduler, config: RuntimeConfig) -> list[tuple[str, str]]:
    failures: list[tuple[str, str]] = []
    for feed in config.feeds:
        result = scheduler.add_feed(
            feed.url,
            interval=feed.interval,
            title=feed.title or None,
            enabled=feed.enabled,
        )
        if not result.success:
            failures.append((feed.url, result.error or "unknown error"))
    return failures


def _block_until(max_runtime_seconds: int | None) -> bool:
    """Sleep until the runtime budget elapses; True when interrupted first."""
    deadline = None if max_runtime_seconds is None else time_module.monotonic() + max_runtime_seconds
    try:
        while deadline is None or time_module.monotonic() < deadline:
            remaining = 1.0 if deadline is None else deadline - time_module.monotonic()
            time_module.sleep(max(0.0, min(1.0, remaining)))
    except KeyboardInterrupt:
        return True
    return False


def _status_payload(current: SchedulerStatus) -> dict[str, object]:
    return {
        "scheduled_feeds": current.scheduled_feeds,
        "active_jobs": current.active_jobs,
        "is_running": current.is_running,
        "is_paused": current.is_paused,
        "last_update": current.last_update.isoformat() if current.last_update else None,
        "stats": engine_stats_to_dict(current.stats),
    }


def _resolve_path(command_path: str | None, ctx: typer.Context | None) -> str | None:
    if command_path:
        return command_path
    if ctx is None or not isinstance(ctx.obj, dict):
        return None
    configured = ctx.obj.get("path")
    if isinstance(configured, str) and configured:
        return configured
    return None


def _resolve_debug(ctx: typer.Context | None) -> bool:
    if ctx is None or not isinstance(ctx.obj, dict):
        return False
    return bool(ctx.obj.get("debug", False))
