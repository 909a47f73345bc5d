# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Pytest configuration and shared fixtures.

This module defines:
- Test markers (unit, property)
- Shared fixtures for fake port implementations
"""

import pytest
import structlog

from capture_preload.adapters.config import settings as settings_module
from capture_preload.application.tiered_cache import TieredCache
from fakes import FakeAction, FakeClock, FakeItemSource, FakePayloadSource, MemoryStore


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: Fast unit tests with fakes at the port boundaries",
    )
    config.addinivalue_line(
        "markers",
        "property: Hypothesis property-based tests",
    )


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Keep settings and logging configuration from leaking between tests."""
    yield
    settings_module._settings = None
    structlog.reset_defaults()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def cache(store: MemoryStore, clock: FakeClock) -> TieredCache:
    """TieredCache over an in-memory durable tier and a manual clock."""
    return TieredCache(durable=store, ttl_seconds=600, clock=clock)


@pytest.fixture
def item_source() -> FakeItemSource:
    return FakeItemSource()


@pytest.fixture
def payload_source() -> FakePayloadSource:
    return FakePayloadSource()


@pytest.fixture
def action() -> FakeAction:
    return FakeAction()
