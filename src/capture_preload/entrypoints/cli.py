# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""CLI entrypoint for capture-preload.

Usage:
    capture-preload stats
    capture-preload invalidate session_42:
    capture-preload preload session_42 --user user_7 --analyze
"""

import asyncio
import json
from pathlib import Path
from typing import Any, NoReturn

import typer

from capture_preload import __version__
from capture_preload.adapters.config.logging import configure_logging, get_logger
from capture_preload.adapters.config.settings import Settings, get_settings
from capture_preload.adapters.outbound.json_file_store import JsonFileStore
from capture_preload.adapters.outbound.rest_session_client import (
    RestSessionClient,
    screenshot_items,
)
from capture_preload.application.dependent_action import DependentActionRunner
from capture_preload.application.incremental_fetcher import IncrementalFetcher
from capture_preload.application.list_loader import ItemListLoader
from capture_preload.application.tiered_cache import TieredCache
from capture_preload.application.viewer_session import ViewerSession
from capture_preload.domain.errors import CapturePreloadError
from capture_preload.domain.value_objects import EventKind, Item, PreloadEvent

app = typer.Typer(
    name="capture-preload",
    help="Progressive loading and tiered caching for captured work sessions",
    add_completion=False,
)

# Upper bound on list pages scanned when looking a session up
_MAX_LOOKUP_PAGES = 50


def build_cache(settings: Settings) -> TieredCache:
    """TieredCache wired to the configured durable tier."""
    durable = None
    if settings.cache.durable_enabled:
        durable = JsonFileStore(
            Path(settings.cache.cache_dir),
            max_bytes=settings.cache.max_durable_bytes,
        )
    return TieredCache(
        durable=durable,
        ttl_seconds=settings.cache.ttl_seconds,
        stale_sweep_seconds=settings.cache.stale_sweep_seconds,
    )


def build_client(settings: Settings) -> RestSessionClient:
    return RestSessionClient(
        settings.client.base_url,
        api_token=settings.client.api_token.get_secret_value(),
        timeout=settings.preload.request_timeout_seconds,
    )


def _setup(log_level: str | None) -> tuple[Settings, TieredCache]:
    settings = get_settings()
    configure_logging(
        log_level or settings.logging.level,
        json_output=settings.logging.json_output,
    )
    return settings, build_cache(settings)


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1)


async def find_session(loader: ItemListLoader, user_id: str, session_id: str) -> Item | None:
    """Scan the user's session list, newest first, for ``session_id``."""
    sessions = await loader.load(user_id)
    for _ in range(_MAX_LOOKUP_PAGES):
        for session in sessions:
            if session.id == session_id:
                return session
        page = await loader.load_more(user_id, sessions)
        if not page.has_more and len(page.items) == len(sessions):
            return None
        sessions = page.items
    return None


async def run_preload(
    settings: Settings,
    cache: TieredCache,
    client: RestSessionClient,
    user_id: str,
    session_id: str,
    analyze: bool,
) -> dict[str, Any]:
    """Load one session's screenshots in order, then optionally analyze it."""
    fetcher = IncrementalFetcher(client, cache=cache, page_size=settings.preload.page_size)
    loader = ItemListLoader(fetcher, cache)
    try:
        session = await find_session(loader, user_id, session_id)
    finally:
        await loader.drain()
    if session is None:
        raise CapturePreloadError(f"session {session_id!r} not found for user {user_id!r}")

    items = screenshot_items(session)

    def report(event: PreloadEvent) -> None:
        if event.kind in (EventKind.ITEM_LOADED, EventKind.ITEM_FAILED):
            status = "ok" if event.kind is EventKind.ITEM_LOADED else "failed"
            typer.echo(f"[{event.loaded_count}/{event.total}] screenshot {event.index} {status}")

    runner = DependentActionRunner(client, cache=cache)
    async with ViewerSession(session_id, client, runner, cache=cache) as viewer:
        state = await viewer.open(items, listener=report)
        summary: dict[str, Any] = {
            "session_id": session_id,
            "status": state.status.value,
            "loaded": state.loaded_count,
            "total": state.total,
            "failed": sorted(state.failed_indices),
        }
        if analyze:
            summary["analysis"] = await viewer.analyze()
    return summary


@app.command()
def preload(
    session_id: str = typer.Argument(..., help="Session whose screenshots to load"),
    user_id: str = typer.Option(..., "--user", "-u", help="Owner of the session"),
    analyze: bool = typer.Option(
        False,
        "--analyze",
        help="Run session analysis once every screenshot is loaded",
    ),
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level (default: from settings)"),
) -> None:
    """Fetch a session's screenshots sequentially, reporting progress.

    Example:
        $ capture-preload preload 65f0c2 --user user_7
        $ capture-preload preload 65f0c2 --user user_7 --analyze
    """
    try:
        settings, cache = _setup(log_level)
    except CapturePreloadError as e:
        _fail(e)
    logger = get_logger(__name__)

    async def main() -> dict[str, Any]:
        async with build_client(settings) as client:
            return await run_preload(settings, cache, client, user_id, session_id, analyze)

    try:
        summary = asyncio.run(main())
    except CapturePreloadError as e:
        logger.error("preload_failed", session_id=session_id, error=str(e))
        _fail(e)
    typer.echo(json.dumps(summary, indent=2, default=str))


@app.command()
def purge(
    max_age: float = typer.Option(
        None,
        "--max-age",
        help="Remove entries older than this many seconds (default: the TTL)",
    ),
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level (default: from settings)"),
) -> None:
    """Sweep expired entries from the durable cache."""
    try:
        _, cache = _setup(log_level)
        removed = cache.purge_expired(max_age)
    except CapturePreloadError as e:
        _fail(e)
    typer.echo(f"Purged {removed} entries")


@app.command()
def invalidate(
    prefix: str = typer.Argument(..., help="Key prefix, e.g. 'session_42:'"),
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level (default: from settings)"),
) -> None:
    """Remove every cached key starting with PREFIX."""
    try:
        _, cache = _setup(log_level)
        removed = cache.invalidate(prefix)
    except CapturePreloadError as e:
        _fail(e)
    typer.echo(f"Invalidated {removed} entries")


@app.command()
def stats(
    log_level: str = typer.Option(None, "--log-level", "-l", help="Log level (default: from settings)"),
) -> None:
    """Show cache tier sizes and configuration."""
    try:
        settings, cache = _setup(log_level)
    except CapturePreloadError as e:
        _fail(e)
    info = cache.describe()
    info["cache_dir"] = settings.cache.cache_dir if settings.cache.durable_enabled else None
    typer.echo(json.dumps(info, indent=2))


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"capture-preload v{__version__}")


if __name__ == "__main__":
    app()
