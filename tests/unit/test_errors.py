# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for the domain error hierarchy."""

import pytest

from capture_preload.domain.errors import (
    ActionInProgressError,
    CacheCapacityError,
    CacheCorruptionError,
    CacheWriteError,
    CapturePreloadError,
    InvalidRequestError,
    NotReadyError,
    TransportError,
)


@pytest.mark.unit
class TestErrorHierarchy:
    """Every domain error is catchable as CapturePreloadError."""

    @pytest.mark.parametrize(
        "error_cls",
        [
            TransportError,
            NotReadyError,
            ActionInProgressError,
            InvalidRequestError,
            CacheWriteError,
            CacheCapacityError,
            CacheCorruptionError,
        ],
    )
    def test_inherits_from_base(self, error_cls: type[Exception]) -> None:
        error = error_cls("boom")
        assert isinstance(error, CapturePreloadError)
        assert str(error) == "boom"

    def test_capacity_error_is_a_write_error(self) -> None:
        with pytest.raises(CacheWriteError):
            raise CacheCapacityError("no room")

    def test_transport_error_carries_context(self) -> None:
        error = TransportError("timeout", operation="fetch_since", parent_id="user_7")
        assert error.operation == "fetch_since"
        assert error.parent_id == "user_7"

    def test_transport_error_context_defaults_empty(self) -> None:
        error = TransportError("timeout")
        assert error.operation == ""
        assert error.parent_id == ""
