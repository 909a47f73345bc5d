# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Two-tier cache with TTL expiry and namespaced invalidation.

Architecture layer: application service.
The durable tier is reached only through DurableStorePort.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from capture_preload.domain.entities import CacheEntry
from capture_preload.domain.errors import (
    CacheCorruptionError,
    CacheWriteError,
    InvalidRequestError,
)
from capture_preload.ports.outbound import DurableStorePort

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_STALE_SWEEP_SECONDS = 24 * 60 * 60


@dataclass
class CacheStats:
    """Counters for cache behaviour over the lifetime of one TieredCache."""

    hits: int = 0
    misses: int = 0
    promotions: int = 0
    expirations: int = 0
    durable_write_failures: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.promotions = 0
        self.expirations = 0
        self.durable_write_failures = 0


class TieredCache:
    """Key/value cache with a fast in-process tier and a durable tier.

    Manages entries across two tiers:
    - Fast: In-memory dict, authoritative for the running process
    - Durable: DurableStorePort (survives restarts), best-effort

    Features:
    - Uniform TTL; expired entries are evicted on the access that finds them
    - Promotion of durable hits into the fast tier
    - Prefix invalidation across both tiers
    - Soft-fail durable writes (logged, followed by a stale-entry sweep)

    Example:
        >>> cache = TieredCache(durable=JsonFileStore(Path("~/.capture/cache")))
        >>> cache.set("u1:items", [item.to_dict() for item in items])
        >>> entry = cache.get("u1:items")
        >>> cache.invalidate("u1:")
    """

    def __init__(
        self,
        durable: DurableStorePort | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        stale_sweep_seconds: float = DEFAULT_STALE_SWEEP_SECONDS,
    ) -> None:
        """Initialize cache.

        Args:
            durable: Durable tier, or None for a memory-only cache
            ttl_seconds: Maximum entry age in seconds
            clock: Source of Unix timestamps (injectable for tests)
            stale_sweep_seconds: Age beyond which durable entries are swept
                after a failed durable write
        """
        if ttl_seconds <= 0:
            raise InvalidRequestError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self.ttl_seconds = ttl_seconds
        self._durable = durable
        self._clock = clock
        self._stale_sweep_seconds = stale_sweep_seconds
        self._fast: dict[str, CacheEntry] = {}
        # Durable keys whose deletion failed; never promoted again
        self._tombstones: set[str] = set()
        self.stats = CacheStats()

    def get(self, key: str) -> CacheEntry | None:
        """Look up ``key`` in the fast tier, then the durable tier.

        Returns:
            Unexpired CacheEntry, or None on miss or expiry.

        Notes:
            - An expired entry is evicted from the tier it was found in
            - A durable hit is promoted into the fast tier
            - Corrupt durable records count as misses and are removed
        """
        now = self._clock()

        entry = self._fast.get(key)
        if entry is not None:
            if not entry.is_expired(now, self.ttl_seconds):
                entry.mark_accessed()
                self.stats.hits += 1
                return entry
            del self._fast[key]
            self.stats.expirations += 1
            logger.debug("cache_expired", key=key, tier="fast", age=entry.age(now))

        entry = self._read_durable(key)
        if entry is None:
            self.stats.misses += 1
            return None

        if entry.is_expired(now, self.ttl_seconds):
            self._delete_durable(key)
            self.stats.expirations += 1
            self.stats.misses += 1
            logger.debug("cache_expired", key=key, tier="durable", age=entry.age(now))
            return None

        self._fast[key] = entry
        entry.mark_accessed()
        self.stats.promotions += 1
        self.stats.hits += 1
        logger.debug("cache_promoted", key=key)
        return entry

    def set(self, key: str, payload: Any, version: float | int | str | None = None) -> CacheEntry:
        """Store ``payload`` under ``key`` in both tiers.

        Args:
            key: Cache key
            payload: Value to cache; must be JSON-compatible to reach the durable tier
            version: Optional version identifier (defaults to the write time)

        Returns:
            The new CacheEntry.
        """
        if not key:
            raise InvalidRequestError("cache key cannot be empty")

        now = self._clock()
        entry = CacheEntry(
            key=key,
            payload=payload,
            stored_at=now,
            version=version if version is not None else now,
        )
        self._fast[key] = entry
        self._tombstones.discard(key)
        self._write_durable(entry, now)
        return entry

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def delete(self, key: str) -> bool:
        """Remove exactly ``key`` from both tiers. Returns True if it was cached."""
        removed = self._fast.pop(key, None) is not None
        if self._durable is not None and key in self._durable_keys():
            self._delete_durable(key)
            removed = True
        return removed

    def invalidate(self, prefix: str) -> int:
        """Remove every key equal to or starting with ``prefix`` from both tiers.

        Returns:
            Number of distinct keys removed.
        """
        removed = {key for key in self._fast if key.startswith(prefix)}
        for key in removed:
            del self._fast[key]

        for key in self._durable_keys():
            if key.startswith(prefix):
                self._delete_durable(key)
                removed.add(key)

        if removed:
            logger.info("cache_invalidated", prefix=prefix, removed=len(removed))
        return len(removed)

    def clear(self) -> int:
        """Remove every entry from both tiers."""
        return self.invalidate("")

    def purge_expired(self, max_age: float | None = None) -> int:
        """Sweep entries older than ``max_age`` (default: the TTL) from both tiers.

        Corrupt durable records are removed as well.

        Returns:
            Number of entries removed.
        """
        max_age = self.ttl_seconds if max_age is None else max_age
        now = self._clock()

        stale = [key for key, entry in self._fast.items() if entry.age(now) >= max_age]
        for key in stale:
            del self._fast[key]

        purged = len(stale) + self._purge_durable(now, max_age)
        if purged:
            logger.info("cache_purged", removed=purged, max_age=max_age)
        return purged

    def describe(self) -> dict[str, Any]:
        """Snapshot of tier sizes and counters."""
        return {
            "fast_entries": len(self._fast),
            "durable_entries": len(self._durable_keys()),
            "ttl_seconds": self.ttl_seconds,
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "promotions": self.stats.promotions,
            "expirations": self.stats.expirations,
            "durable_write_failures": self.stats.durable_write_failures,
            "hit_rate": round(self.stats.hit_rate, 4),
        }

    def _read_durable(self, key: str) -> CacheEntry | None:
        if self._durable is None or key in self._tombstones:
            return None
        try:
            record = self._durable.read(key)
        except CacheCorruptionError as e:
            logger.warning("durable_record_corrupt", key=key, error=str(e))
            self._delete_durable(key)
            return None
        except OSError as e:
            logger.warning("durable_read_failed", key=key, error=str(e))
            return None

        if record is None:
            return None

        try:
            entry = CacheEntry.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("durable_record_invalid", key=key, error=str(e))
            self._delete_durable(key)
            return None

        if entry.key != key:
            logger.warning("durable_record_key_mismatch", key=key, stored_key=entry.key)
            self._delete_durable(key)
            return None
        return entry

    def _write_durable(self, entry: CacheEntry, now: float) -> None:
        if self._durable is None:
            return
        try:
            self._durable.write(entry.key, entry.to_record())
        except (CacheWriteError, OSError) as e:
            # Fast tier stays authoritative; make room for later writes.
            self.stats.durable_write_failures += 1
            logger.warning("durable_write_failed", key=entry.key, error=str(e))
            self._purge_durable(now, self._stale_sweep_seconds)

    def _delete_durable(self, key: str) -> None:
        if self._durable is None:
            return
        try:
            self._durable.delete(key)
            self._tombstones.discard(key)
        except OSError as e:
            logger.warning("durable_delete_failed", key=key, error=str(e))
            self._tombstones.add(key)

    def _durable_keys(self) -> list[str]:
        if self._durable is None:
            return []
        try:
            return self._durable.keys()
        except OSError as e:
            logger.warning("durable_keys_failed", error=str(e))
            return []

    def _purge_durable(self, now: float, max_age: float) -> int:
        if self._durable is None:
            return 0
        purged = 0
        for key in self._durable_keys():
            if key in self._tombstones:
                continue
            try:
                record = self._durable.read(key)
                entry = CacheEntry.from_record(record) if record is not None else None
            except (CacheCorruptionError, KeyError, TypeError, ValueError) as e:
                logger.warning("durable_record_corrupt", key=key, error=str(e))
                self._delete_durable(key)
                purged += 1
                continue
            except OSError as e:
                logger.warning("durable_read_failed", key=key, error=str(e))
                continue
            if entry is not None and entry.age(now) >= max_age:
                self._delete_durable(key)
                purged += 1
        return purged
