# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for ItemListLoader (stale-while-revalidate list loading)."""

import pytest

from capture_preload.application.incremental_fetcher import IncrementalFetcher
from capture_preload.application.list_loader import ItemListLoader
from capture_preload.application.tiered_cache import TieredCache
from capture_preload.domain.errors import TransportError
from capture_preload.domain.value_objects import Item, items_key, result_key
from fakes import FakeItemSource, ids_of, make_items

pytestmark = pytest.mark.unit

USER = "user_7"


def make_loader(source: FakeItemSource, cache: TieredCache) -> ItemListLoader:
    return ItemListLoader(IncrementalFetcher(source, cache=cache), cache)


class TestLoad:
    @pytest.mark.asyncio
    async def test_cold_load_fetches_first_page(self, item_source: FakeItemSource, cache: TieredCache) -> None:
        item_source.items = make_items(6, 5, 4, 3, 2)
        loader = make_loader(item_source, cache)
        fresh: list[list[Item]] = []

        items = await loader.load(USER, on_fresh=fresh.append)

        assert ids_of(items) == ["6", "5", "4", "3"]
        assert len(fresh) == 1
        assert item_source.calls == [("fetch_page", USER, 4, 0)]

    @pytest.mark.asyncio
    async def test_cached_list_returned_then_refreshed(self, item_source: FakeItemSource, cache: TieredCache) -> None:
        cache.set(items_key(USER), [item.to_dict() for item in make_items(5, 4, 3)])
        item_source.items = make_items(7, 6, 5, 4, 3)
        loader = make_loader(item_source, cache)
        cached: list[list[Item]] = []
        fresh: list[list[Item]] = []

        items = await loader.load(USER, on_cached=cached.append, on_fresh=fresh.append)

        assert ids_of(items) == ["5", "4", "3"]
        assert ids_of(cached[0]) == ["5", "4", "3"]

        await loader.drain()

        assert ids_of(fresh[0]) == ["7", "6", "5", "4", "3"]
        assert item_source.calls[0][0] == "fetch_since"
        assert ids_of(await loader.load(USER)) == ["7", "6", "5", "4", "3"]
        await loader.drain()

    @pytest.mark.asyncio
    async def test_background_failure_keeps_cached_list(self, item_source: FakeItemSource, cache: TieredCache) -> None:
        cache.set(items_key(USER), [item.to_dict() for item in make_items(5, 4)])
        item_source.error = TransportError("offline")
        loader = make_loader(item_source, cache)
        fresh: list[list[Item]] = []

        items = await loader.load(USER, on_fresh=fresh.append)
        await loader.drain()

        assert ids_of(items) == ["5", "4"]
        assert fresh == []
        assert cache.get(items_key(USER)) is not None

    @pytest.mark.asyncio
    async def test_cold_load_failure_raises(self, item_source: FakeItemSource, cache: TieredCache) -> None:
        item_source.error = TransportError("offline")
        loader = make_loader(item_source, cache)

        with pytest.raises(TransportError):
            await loader.load(USER)

    @pytest.mark.asyncio
    async def test_force_refresh_skips_cache(self, item_source: FakeItemSource, cache: TieredCache) -> None:
        cache.set(items_key(USER), [item.to_dict() for item in make_items(1)])
        item_source.items = make_items(9, 8)
        loader = make_loader(item_source, cache)

        items = await loader.load(USER, force_refresh=True)

        assert ids_of(items) == ["9", "8"]
        assert item_source.calls == [("fetch_page", USER, 4, 0)]

    @pytest.mark.asyncio
    async def test_single_refresh_per_parent(self, item_source: FakeItemSource, cache: TieredCache) -> None:
        existing = make_items(5)
        loader = make_loader(item_source, cache)

        first = loader.refresh_in_background(USER, existing)
        second = loader.refresh_in_background(USER, existing)
        await loader.drain()

        assert first is second
        assert len(item_source.calls) == 1


class TestPagingAndInvalidation:
    @pytest.mark.asyncio
    async def test_load_more(self, item_source: FakeItemSource, cache: TieredCache) -> None:
        item_source.items = make_items(8, 7, 6, 5, 4, 3)
        loader = make_loader(item_source, cache)
        items = await loader.load(USER)

        page = await loader.load_more(USER, items)

        assert ids_of(page.items) == ["8", "7", "6", "5", "4", "3"]
        assert not page.has_more

    @pytest.mark.asyncio
    async def test_invalidate_drops_namespace(self, item_source: FakeItemSource, cache: TieredCache) -> None:
        item_source.items = make_items(2, 1)
        loader = make_loader(item_source, cache)
        await loader.load(USER)
        cache.set(result_key(USER), {"summary": "x"})
        cache.set("user_70:items", [])

        assert loader.invalidate(USER) == 2
        assert cache.get("user_70:items") is not None
