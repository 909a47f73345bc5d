# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for structured logging configuration."""

import json

import pytest
import structlog

from capture_preload.adapters.config.logging import configure_logging, get_logger

pytestmark = pytest.mark.unit


class TestConfigureLogging:
    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO", json_output=True)

        structlog.get_logger("test").info("cache_promoted", key="s1:items")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "cache_promoted"
        assert record["key"] == "s1:items"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("WARNING")

        logger = structlog.get_logger("test")
        logger.info("hidden")
        logger.warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_invalid_level_falls_back_to_info(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("chatty")

        structlog.get_logger("test").info("visible")

        assert "visible" in capsys.readouterr().err

    def test_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("DEBUG", json_output=False)

        structlog.get_logger("test").debug("preload_started", total=3)

        err = capsys.readouterr().err
        assert "preload_started" in err
        assert "total" in err

    def test_get_logger(self) -> None:
        assert get_logger("capture_preload.test") is not None
        assert get_logger() is not None
