# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for domain value objects and cache key helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from capture_preload.domain.errors import InvalidRequestError
from capture_preload.domain.value_objects import (
    HeavyPayload,
    Item,
    items_key,
    namespace,
    parse_timestamp,
    payload_key,
    result_key,
    to_data_uri,
)
from fakes import BASE_TIME, make_item

pytestmark = pytest.mark.unit


class TestParseTimestamp:
    def test_iso_with_z_suffix(self) -> None:
        parsed = parse_timestamp("2026-01-05T09:00:00.000Z")
        assert parsed == BASE_TIME
        assert parsed.tzinfo is not None

    def test_iso_with_offset(self) -> None:
        parsed = parse_timestamp("2026-01-05T11:00:00+02:00")
        assert parsed == BASE_TIME

    def test_naive_values_are_utc(self) -> None:
        assert parse_timestamp("2026-01-05T09:00:00") == BASE_TIME
        assert parse_timestamp(datetime(2026, 1, 5, 9, 0)) == BASE_TIME

    def test_epoch_seconds(self) -> None:
        assert parse_timestamp(BASE_TIME.timestamp()) == BASE_TIME

    def test_aware_datetime_passes_through(self) -> None:
        assert parse_timestamp(BASE_TIME) is BASE_TIME

    @pytest.mark.parametrize("value", ["", "yesterday", None, [2026]])
    def test_rejects_garbage(self, value: object) -> None:
        with pytest.raises(InvalidRequestError):
            parse_timestamp(value)


class TestToDataUri:
    def test_jpeg_sniffed(self) -> None:
        assert to_data_uri("/9j/4AAQ") == "data:image/jpeg;base64,/9j/4AAQ"

    def test_png_sniffed(self) -> None:
        assert to_data_uri("iVBORw0K") == "data:image/png;base64,iVBORw0K"

    def test_other_data_treated_as_webp(self) -> None:
        assert to_data_uri("UklGR") == "data:image/webp;base64,UklGR"

    def test_existing_data_uri_unchanged(self) -> None:
        uri = "data:image/png;base64,iVBORw0K"
        assert to_data_uri(uri) == uri

    def test_empty_unchanged(self) -> None:
        assert to_data_uri("") == ""


class TestHeavyPayload:
    def test_from_raw_normalizes_full_data(self) -> None:
        payload = HeavyPayload.from_raw(
            {
                "_id": "65f0",
                "fullData": "/9j/4AAQ",
                "thumbnail": "iVBORw0K",
                "capturedAt": "2026-01-05T09:00:00Z",
            }
        )
        assert payload.data == "data:image/jpeg;base64,/9j/4AAQ"
        assert payload.mime_type == "image/jpeg"
        assert payload.thumbnail == "data:image/png;base64,iVBORw0K"
        assert payload.captured_at == BASE_TIME
        assert payload.payload_id == "65f0"

    def test_from_raw_accepts_data_key(self) -> None:
        payload = HeavyPayload.from_raw({"data": "data:image/webp;base64,UklGR", "id": 3})
        assert payload.mime_type == "image/webp"
        assert payload.payload_id == "3"
        assert payload.captured_at is None

    def test_dict_form_restores_payload(self) -> None:
        payload = HeavyPayload.from_raw({"fullData": "iVBOR", "capturedAt": "2026-01-05T09:00:00Z"})
        assert HeavyPayload.from_dict(payload.to_dict()) == payload


class TestItem:
    def test_equality_ignores_metadata_and_payload(self) -> None:
        plain = make_item(5)
        rich = make_item(5, title="standup").with_payload(HeavyPayload(data="data:,x"))
        assert plain == rich

    def test_is_loaded_tracks_payload(self) -> None:
        item = make_item(1)
        assert not item.is_loaded
        assert item.with_payload(HeavyPayload(data="data:,x")).is_loaded

    def test_with_index_returns_copy(self) -> None:
        item = make_item(1, index=4)
        moved = item.with_index(0)
        assert moved.index == 0
        assert item.index == 4

    def test_to_dict_excludes_heavy_payload(self) -> None:
        item = make_item(2, title="review").with_payload(HeavyPayload(data="data:,x"))
        record = item.to_dict()
        assert "heavy_payload" not in record
        assert record["metadata"] == {"title": "review"}

        restored = Item.from_dict(record)
        assert restored == item
        assert restored.heavy_payload is None
        assert restored.created_at == BASE_TIME + timedelta(minutes=2)
        assert restored.created_at.tzinfo == timezone.utc


class TestCacheKeys:
    def test_keys_share_parent_namespace(self) -> None:
        prefix = namespace("session_42")
        assert prefix == "session_42:"
        for key in (items_key("session_42"), payload_key("session_42", 3), result_key("session_42")):
            assert key.startswith(prefix)

    def test_payload_keys_distinct_per_index(self) -> None:
        assert payload_key("s", 1) != payload_key("s", 10)

    def test_empty_parent_rejected(self) -> None:
        with pytest.raises(InvalidRequestError):
            namespace("")
