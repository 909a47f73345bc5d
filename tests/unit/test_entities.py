# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for CacheEntry and LoadState."""

import pytest

from capture_preload.domain.entities import CacheEntry, LoadState
from capture_preload.domain.errors import InvalidRequestError
from capture_preload.domain.value_objects import ItemStatus
from fakes import make_items, payload_for

pytestmark = pytest.mark.unit


class TestCacheEntry:
    def test_valid_strictly_before_ttl(self) -> None:
        entry = CacheEntry(key="k", payload=1, stored_at=100.0, version=100.0)
        assert not entry.is_expired(now=699.9, ttl_seconds=600)
        assert entry.is_expired(now=700.0, ttl_seconds=600)

    def test_mark_accessed_counts_hits(self) -> None:
        entry = CacheEntry(key="k", payload=1, stored_at=0.0, version=0.0)
        entry.mark_accessed()
        entry.mark_accessed()
        assert entry.access_count == 2

    def test_record_restores_entry(self) -> None:
        entry = CacheEntry(key="s:items", payload=[{"id": "1"}], stored_at=50.0, version="v2")
        restored = CacheEntry.from_record(entry.to_record())
        assert restored.key == "s:items"
        assert restored.payload == [{"id": "1"}]
        assert restored.version == "v2"

    def test_record_without_version_uses_stored_at(self) -> None:
        restored = CacheEntry.from_record({"key": "k", "payload": None, "stored_at": 7})
        assert restored.version == 7.0

    def test_record_missing_field_raises(self) -> None:
        with pytest.raises(KeyError):
            CacheEntry.from_record({"key": "k", "payload": None})


class TestLoadState:
    @pytest.fixture
    def state(self) -> LoadState:
        return LoadState(parent_id="session_42", items=make_items(4, 3, 2))

    def test_mark_loaded_records_order(self, state: LoadState) -> None:
        assert state.mark_loaded(2, payload_for(2))
        assert state.mark_loaded(0, payload_for(0))
        assert state.load_order == [2, 0]
        assert state.loaded_count == 2

    def test_mark_loaded_twice_is_noop(self, state: LoadState) -> None:
        assert state.mark_loaded(1, payload_for(1))
        assert not state.mark_loaded(1, payload_for(1))
        assert state.load_order == [1]

    def test_no_loads_after_abort(self, state: LoadState) -> None:
        state.aborted = True
        assert not state.mark_loaded(0, payload_for(0))
        assert state.loaded_indices == set()

    def test_failure_cleared_by_later_load(self, state: LoadState) -> None:
        state.mark_failed(1)
        assert state.status_of(1) is ItemStatus.FAILED
        state.mark_loaded(1, payload_for(1))
        assert state.failed_indices == set()
        assert state.status_of(1) is ItemStatus.LOADED

    def test_loaded_item_never_marked_failed(self, state: LoadState) -> None:
        state.mark_loaded(0, payload_for(0))
        state.mark_failed(0)
        assert state.failed_indices == set()

    def test_status_of_in_flight(self, state: LoadState) -> None:
        state.currently_loading = 0
        assert state.status_of(0) is ItemStatus.IN_FLIGHT
        assert state.status_of(1) is ItemStatus.PENDING
        assert state.status_of(2, in_flight=True) is ItemStatus.IN_FLIGHT

    @pytest.mark.parametrize("index", [-1, 3])
    def test_validate_index_out_of_range(self, state: LoadState, index: int) -> None:
        with pytest.raises(InvalidRequestError):
            state.validate_index(index)

    def test_item_at_attaches_payload(self, state: LoadState) -> None:
        state.mark_loaded(1, payload_for(1))
        assert state.item_at(1).heavy_payload == payload_for(1)
        assert state.item_at(0).heavy_payload is None
