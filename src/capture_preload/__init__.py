# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""capture-preload: progressive loading and tiered caching for capture sessions.

Displays large, screenshot-heavy activity sessions without blocking the
consumer, and keeps the expensive analysis action locked until every
screenshot of a session has been loaded.

Architecture: Hexagonal (Ports & Adapters)
- Domain core: Items, cache entries, load state, merge rules (stdlib only)
- Ports: Protocol-based interfaces for remote sources and the durable tier
- Application: TieredCache, IncrementalFetcher, SequentialPreloader, LoadGate
- Adapters: JSON file store, httpx REST client, settings, logging
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
