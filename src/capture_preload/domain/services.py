# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain services: merge rules for incremental and paginated fetches.

Pure functions over item lists. Lists are newest-first; merging never
drops or reorders items that were already present.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from capture_preload.domain.value_objects import Item


@dataclass(frozen=True)
class MergeResult:
    """Outcome of merging fetched items into an existing list.

    Attributes:
        items: Merged list, re-indexed by position.
        added: Number of previously unknown items that were inserted.
        refreshed: Number of existing items replaced by their fetched copy.
        dropped: Number of unknown fetched items rejected as not newer.
    """

    items: list[Item]
    added: int
    refreshed: int
    dropped: int = 0


def newest_timestamp(items: Iterable[Item]) -> datetime | None:
    """Creation time of the newest item, or None for an empty list."""
    return max((item.created_at for item in items), default=None)


def reindex(items: Iterable[Item]) -> list[Item]:
    """Renumber items so that ``index`` equals list position."""
    return [item if item.index == i else item.with_index(i) for i, item in enumerate(items)]


def _unique(items: Iterable[Item]) -> list[Item]:
    seen: set[str] = set()
    unique: list[Item] = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique


def merge_newer(existing: Sequence[Item], fetched: Sequence[Item]) -> MergeResult:
    """Merge items fetched since the newest existing item.

    Unknown fetched items are prepended in the order the source returned
    them. A fetched copy of an already-present item replaces it in place,
    so every pre-existing item keeps its relative position. Unknown items
    strictly older than the newest existing item are rejected: they belong
    to a later page, not to the head of the list.

    Example:
        >>> merged = merge_newer(existing=[i5, i4, i3], fetched=[i7, i6])
        >>> [item.id for item in merged.items]
        ['7', '6', '5', '4', '3']
    """
    base = _unique(existing)
    fresh = _unique(fetched)
    cursor = newest_timestamp(base)
    existing_ids = {item.id for item in base}
    fresh_by_id = {item.id: item for item in fresh}

    prepended: list[Item] = []
    dropped = 0
    for item in fresh:
        if item.id in existing_ids:
            continue
        if cursor is not None and item.created_at < cursor:
            dropped += 1
            continue
        prepended.append(item)

    refreshed = 0
    kept: list[Item] = []
    for item in base:
        replacement = fresh_by_id.get(item.id)
        if replacement is not None:
            refreshed += 1
            kept.append(replacement)
        else:
            kept.append(item)

    return MergeResult(
        items=reindex(prepended + kept),
        added=len(prepended),
        refreshed=refreshed,
        dropped=dropped,
    )


def append_older(existing: Sequence[Item], page: Sequence[Item]) -> MergeResult:
    """Append an older page after the existing items, skipping known ids."""
    base = _unique(existing)
    existing_ids = {item.id for item in base}
    appended = [item for item in _unique(page) if item.id not in existing_ids]
    return MergeResult(
        items=reindex(base + appended),
        added=len(appended),
        refreshed=0,
    )
