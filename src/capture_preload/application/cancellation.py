# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Cooperative cancellation token passed explicitly into loading tasks."""

import asyncio
from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)


class CancellationToken:
    """One-shot cancellation signal.

    Cancellation is cooperative: holders inspect ``cancelled`` between units
    of work; nothing in flight is interrupted. Callbacks run synchronously,
    exactly once, when ``cancel()`` is first called.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("cancel_callback_failed")

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation (immediately if already cancelled)."""
        if self._event.is_set():
            callback()
        else:
            self._callbacks.append(callback)

    async def wait(self) -> None:
        await self._event.wait()
