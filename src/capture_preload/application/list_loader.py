# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""ItemListLoader: cache-first list loading with background refresh.

A cached list is handed back immediately and refreshed in the background;
without a cached list the first page is fetched in the foreground. At most
one fetch per parent runs at a time through a given loader.
"""

import asyncio
from collections.abc import Callable, Sequence

import structlog

from capture_preload.application.incremental_fetcher import IncrementalFetcher
from capture_preload.application.tiered_cache import TieredCache
from capture_preload.domain.errors import TransportError
from capture_preload.domain.value_objects import Item, Page, namespace

logger = structlog.get_logger(__name__)

ItemsListener = Callable[[list[Item]], None]


class ItemListLoader:
    """Stale-while-revalidate loading of a parent's item list.

    Dependencies (injected):
      - fetcher: IncrementalFetcher (writes merged lists to the cache)
      - cache: the same TieredCache the fetcher writes to
    """

    def __init__(self, fetcher: IncrementalFetcher, cache: TieredCache) -> None:
        self._fetcher = fetcher
        self._cache = cache
        self._refreshing: dict[str, asyncio.Task[list[Item] | None]] = {}

    async def load(
        self,
        parent_id: str,
        force_refresh: bool = False,
        on_cached: ItemsListener | None = None,
        on_fresh: ItemsListener | None = None,
    ) -> list[Item]:
        """Return the list for ``parent_id``, from cache when possible.

        Args:
            parent_id: Entity owning the items.
            force_refresh: Skip the cache and fetch the first page.
            on_cached: Called with the cached list on a cache hit.
            on_fresh: Called with the list once fresh data has arrived.

        Returns:
            The cached list (refresh continues in the background), or the
            freshly fetched first page.

        Raises:
            TransportError: If a foreground fetch fails.
        """
        if not force_refresh:
            cached = self._fetcher.cached_items(parent_id)
            if cached:
                logger.debug("list_cache_hit", parent_id=parent_id, items=len(cached))
                if on_cached is not None:
                    on_cached(cached)
                self.refresh_in_background(parent_id, cached, on_fresh)
                return cached

        await self.settle(parent_id)
        items = await self._fetcher.refresh(parent_id, existing=[])
        if on_fresh is not None:
            on_fresh(items)
        return items

    def refresh_in_background(
        self,
        parent_id: str,
        existing: Sequence[Item],
        on_fresh: ItemsListener | None = None,
    ) -> "asyncio.Task[list[Item] | None]":
        """Start an incremental refresh unless one is already running for the parent."""
        task = self._refreshing.get(parent_id)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(
            self._refresh(parent_id, list(existing), on_fresh),
            name=f"refresh-{parent_id}",
        )
        self._refreshing[parent_id] = task
        task.add_done_callback(lambda done: self._release(parent_id, done))
        return task

    async def load_more(self, parent_id: str, existing: Sequence[Item]) -> Page:
        """Fetch the next older page and append it.

        Raises:
            TransportError: If the fetch fails.
        """
        await self.settle(parent_id)
        return await self._fetcher.fetch_older(parent_id, existing)

    def invalidate(self, parent_id: str) -> int:
        """Drop everything cached for ``parent_id`` (call after a mutation)."""
        return self._cache.invalidate(namespace(parent_id))

    async def settle(self, parent_id: str) -> None:
        """Wait for a running background refresh of ``parent_id``, if any."""
        task = self._refreshing.get(parent_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every running background refresh."""
        if self._refreshing:
            await asyncio.gather(*self._refreshing.values(), return_exceptions=True)

    async def _refresh(
        self,
        parent_id: str,
        existing: list[Item],
        on_fresh: ItemsListener | None,
    ) -> list[Item] | None:
        try:
            items = await self._fetcher.refresh(parent_id, existing)
        except TransportError as e:
            logger.warning("background_refresh_failed", parent_id=parent_id, error=str(e))
            return None
        if on_fresh is not None:
            on_fresh(items)
        return items

    def _release(self, parent_id: str, task: "asyncio.Task[list[Item] | None]") -> None:
        if self._refreshing.get(parent_id) is task:
            del self._refreshing[parent_id]
