# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Outbound port interfaces (driven adapters).

These ports define the contracts for the application core to interact
with external systems. Implementations are provided by outbound adapters
(REST client, JSON file store) or by test fakes.

All interfaces use Protocol (PEP 544) for structural typing, allowing
implicit implementation without inheritance.
"""

from datetime import datetime
from typing import Any, Protocol

from capture_preload.domain.value_objects import HeavyPayload, Item


class ItemSourcePort(Protocol):
    """Port for paginated and cursor-based retrieval of item metadata.

    Both operations return lightweight items ordered newest-first.
    """

    async def fetch_page(self, parent_id: str, limit: int, offset: int) -> list[Item]:
        """Fetch one page of items.

        Args:
            parent_id: Entity owning the items (e.g. a user for sessions).
            limit: Maximum number of items to return.
            offset: Number of newest items to skip.

        Returns:
            Items ordered newest-first.

        Raises:
            TransportError: If the request fails.
        """
        ...

    async def fetch_since(self, parent_id: str, cursor: datetime) -> list[Item]:
        """Fetch items created after ``cursor``.

        Raises:
            TransportError: If the request fails.
        """
        ...


class PayloadSourcePort(Protocol):
    """Port for retrieval of one item's heavy payload, addressed by position."""

    async def fetch_heavy_payload(self, parent_id: str, index: int) -> HeavyPayload:
        """Fetch the full payload of item ``index`` of ``parent_id``.

        Raises:
            TransportError: If the request fails.
        """
        ...


class DependentActionPort(Protocol):
    """Port for the expensive action gated on a fully loaded parent."""

    async def trigger(
        self,
        parent_id: str,
        force: bool = False,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run the action for ``parent_id``.

        Args:
            parent_id: Entity to act on.
            force: Re-run even if the collaborator holds a previous result.
            options: Action-specific options.

        Returns:
            JSON-compatible action result.

        Raises:
            TransportError: If the request fails.
        """
        ...


class DurableStorePort(Protocol):
    """Port for the durable cache tier.

    Records are JSON-compatible dicts. The store is capacity-bounded;
    callers treat every failure as best-effort.
    """

    def read(self, key: str) -> dict[str, Any] | None:
        """Return the record for ``key``, or None if absent.

        Raises:
            CacheCorruptionError: If the stored record cannot be decoded.
        """
        ...

    def write(self, key: str, record: dict[str, Any]) -> None:
        """Store ``record`` under ``key``, replacing any previous record.

        Raises:
            CacheCapacityError: If the store has no room for the record.
            OSError: If the underlying storage is unavailable.
        """
        ...

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if a record was removed."""
        ...

    def keys(self) -> list[str]:
        """List all stored keys."""
        ...
