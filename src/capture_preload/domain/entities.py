# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain entities: cache entries and per-run load state."""

from dataclasses import dataclass, field
from typing import Any

from capture_preload.domain.errors import InvalidRequestError
from capture_preload.domain.value_objects import (
    HeavyPayload,
    Item,
    ItemStatus,
    PreloadStatus,
)


@dataclass
class CacheEntry:
    """Cached payload with freshness metadata.

    Attributes:
        key: Cache key (namespaced by parent entity).
        payload: Cached value; JSON-compatible when it must reach the durable tier.
        stored_at: Unix timestamp of the write that produced this entry.
        version: Caller-supplied version, or ``stored_at`` when none was given.
        access_count: Number of cache hits served from this entry.

    Example:
        >>> entry = CacheEntry(key="u1:items", payload=[], stored_at=100.0, version=100.0)
        >>> entry.is_expired(now=700.0, ttl_seconds=600.0)
        True
    """

    key: str
    payload: Any
    stored_at: float
    version: float | int | str
    access_count: int = 0

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        """An entry is valid only while ``now - stored_at < ttl``."""
        return self.age(now) >= ttl_seconds

    def mark_accessed(self) -> None:
        self.access_count += 1

    def to_record(self) -> dict[str, Any]:
        """Serialize for the durable tier."""
        return {
            "key": self.key,
            "payload": self.payload,
            "stored_at": self.stored_at,
            "version": self.version,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "CacheEntry":
        """Rebuild an entry from a durable record.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If stored_at is not numeric.
        """
        stored_at = float(record["stored_at"])
        return cls(
            key=str(record["key"]),
            payload=record["payload"],
            stored_at=stored_at,
            version=record.get("version", stored_at),
        )


@dataclass
class LoadState:
    """Mutable state of one preload run for one parent entity.

    Constructed when a viewer opens, discarded when it closes.

    Invariants:
        - ``currently_loading`` holds at most one index: the sequential cursor's
          in-flight item. Jump-ahead requests are tracked by the preloader.
        - ``loaded_indices`` only grows during a run.
        - Once ``aborted`` is set, no index is added to ``loaded_indices``.

    Attributes:
        parent_id: Entity whose items are being loaded.
        items: Items of the run, ordered by index.
        loaded_indices: Indices whose payload has been loaded.
        failed_indices: Indices whose last load attempt failed.
        currently_loading: Index the sequential cursor is fetching, if any.
        aborted: True once the run has been cancelled.
        status: Run-level status.
        payloads: Loaded payloads by index.
        load_order: Indices in the temporal order they became loaded.
    """

    parent_id: str
    items: list[Item] = field(default_factory=list)
    loaded_indices: set[int] = field(default_factory=set)
    failed_indices: set[int] = field(default_factory=set)
    currently_loading: int | None = None
    aborted: bool = False
    status: PreloadStatus = PreloadStatus.IDLE
    payloads: dict[int, HeavyPayload] = field(default_factory=dict)
    load_order: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def loaded_count(self) -> int:
        return len(self.loaded_indices)

    def validate_index(self, index: int) -> None:
        if not 0 <= index < len(self.items):
            raise InvalidRequestError(
                f"index {index} out of range for {len(self.items)} items "
                f"(parent {self.parent_id})"
            )

    def is_loaded(self, index: int) -> bool:
        return index in self.loaded_indices

    def mark_loaded(self, index: int, payload: HeavyPayload) -> bool:
        """Record a loaded payload.

        Returns:
            True if the index transitioned to loaded, False if the run was
            aborted or the index was already loaded.
        """
        if self.aborted or index in self.loaded_indices:
            return False
        self.payloads[index] = payload
        self.loaded_indices.add(index)
        self.failed_indices.discard(index)
        self.load_order.append(index)
        return True

    def mark_failed(self, index: int) -> None:
        if index not in self.loaded_indices:
            self.failed_indices.add(index)

    def status_of(self, index: int, in_flight: bool = False) -> ItemStatus:
        """Per-item status; ``in_flight`` reports requests the state cannot see."""
        if index in self.loaded_indices:
            return ItemStatus.LOADED
        if in_flight or index == self.currently_loading:
            return ItemStatus.IN_FLIGHT
        if index in self.failed_indices:
            return ItemStatus.FAILED
        return ItemStatus.PENDING

    def item_at(self, index: int) -> Item:
        """Item at ``index`` with its payload attached when loaded."""
        self.validate_index(index)
        item = self.items[index]
        payload = self.payloads.get(index)
        return item.with_payload(payload) if payload is not None else item
