# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""IncrementalFetcher: fetch only what is new and merge it into the cached list.

Architecture layer: application service.
Talks to the item source through ItemSourcePort only.
"""

from collections.abc import Awaitable, Sequence
from typing import TypeVar

import structlog

from capture_preload.application.tiered_cache import TieredCache
from capture_preload.domain.errors import InvalidRequestError, TransportError
from capture_preload.domain.services import (
    MergeResult,
    append_older,
    merge_newer,
    newest_timestamp,
)
from capture_preload.domain.value_objects import Item, Page, items_key
from capture_preload.ports.outbound import ItemSourcePort

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 4

T = TypeVar("T")


class IncrementalFetcher:
    """Keeps a newest-first item list current with as few requests as possible.

    An empty list is filled with a full first-page fetch; a non-empty list is
    extended with items created since its newest item. Merges are idempotent
    and never drop or reorder items already present.

    Dependencies (injected):
      - source: ItemSourcePort (fetch_page / fetch_since)
      - cache: TieredCache holding the merged list under items_key(parent_id)

    The caller must not run two refreshes for the same parent concurrently.
    """

    def __init__(
        self,
        source: ItemSourcePort,
        cache: TieredCache | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise InvalidRequestError(f"page_size must be >= 1, got {page_size}")
        self._source = source
        self._cache = cache
        self.page_size = page_size

    def cached_items(self, parent_id: str) -> list[Item] | None:
        """Decode the cached list for ``parent_id``, or None if not cached."""
        if self._cache is None:
            return None
        key = items_key(parent_id)
        entry = self._cache.get(key)
        if entry is None:
            return None
        try:
            return [Item.from_dict(record) for record in entry.payload]
        except (KeyError, TypeError, ValueError, InvalidRequestError) as e:
            logger.warning("cached_items_invalid", parent_id=parent_id, error=str(e))
            self._cache.delete(key)
            return None

    async def refresh(self, parent_id: str, existing: Sequence[Item] | None = None) -> list[Item]:
        """Bring the list for ``parent_id`` up to date.

        Args:
            parent_id: Entity owning the items.
            existing: Current newest-first list; defaults to the cached list.

        Returns:
            Merged list, re-indexed by position.

        Raises:
            TransportError: If the fetch fails. The cached list is unchanged.
        """
        if existing is None:
            existing = self.cached_items(parent_id) or []

        cursor = newest_timestamp(existing)
        if cursor is None:
            fetched = await self._guard(
                "fetch_page", parent_id, self._source.fetch_page(parent_id, self.page_size, 0)
            )
        else:
            fetched = await self._guard(
                "fetch_since", parent_id, self._source.fetch_since(parent_id, cursor)
            )

        result = merge_newer(existing, fetched)
        self._store(parent_id, result)
        logger.info(
            "items_refreshed",
            parent_id=parent_id,
            mode="full" if cursor is None else "incremental",
            added=result.added,
            refreshed=result.refreshed,
            dropped=result.dropped,
            total=len(result.items),
        )
        return result.items

    async def fetch_older(self, parent_id: str, existing: Sequence[Item]) -> Page:
        """Append the next older page after ``existing``.

        Returns:
            Page with the combined list and whether more pages may exist.

        Raises:
            TransportError: If the fetch fails. The cached list is unchanged.
        """
        fetched = await self._guard(
            "fetch_page",
            parent_id,
            self._source.fetch_page(parent_id, self.page_size, len(existing)),
        )
        result = append_older(existing, fetched)
        self._store(parent_id, result)
        logger.debug(
            "older_page_fetched",
            parent_id=parent_id,
            offset=len(existing),
            added=result.added,
        )
        return Page(items=result.items, has_more=len(fetched) >= self.page_size)

    def _store(self, parent_id: str, result: MergeResult) -> None:
        if self._cache is not None:
            self._cache.set(items_key(parent_id), [item.to_dict() for item in result.items])

    @staticmethod
    async def _guard(operation: str, parent_id: str, request: Awaitable[T]) -> T:
        try:
            return await request
        except TransportError:
            logger.warning("fetch_failed", operation=operation, parent_id=parent_id)
            raise
        except (OSError, TimeoutError) as e:
            logger.warning("fetch_failed", operation=operation, parent_id=parent_id, error=str(e))
            raise TransportError(
                f"{operation} failed for {parent_id}: {e}",
                operation=operation,
                parent_id=parent_id,
            ) from e
