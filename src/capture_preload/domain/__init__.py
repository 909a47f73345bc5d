# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain layer for progressive capture loading.

This package contains pure business logic with zero external dependencies.
All domain code uses only Python stdlib (typing, dataclasses, enum) and
internal capture_preload.domain imports.

Modules:
    entities: Mutable entities (CacheEntry, LoadState)
    value_objects: Immutable value objects (Item, HeavyPayload, PreloadEvent, cache keys)
    services: Pure merge rules for incremental and paginated fetches
    errors: Domain exception hierarchy
"""
