# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""LoadGate: a single "fully loaded" signal derived from a preload run."""

import asyncio
from collections.abc import Callable

import structlog

from capture_preload.application.preloader import SequentialPreloader
from capture_preload.domain.value_objects import EventKind, PreloadEvent

logger = structlog.get_logger(__name__)


class LoadGate:
    """Observes a SequentialPreloader and reports when every item is loaded.

    The gate is complete iff the run has started, every item is loaded and
    the run was not aborted. Failed items keep the gate closed until they
    are loaded through an explicit retry.

    Example:
        >>> gate = LoadGate(preloader)
        >>> gate.on_complete(lambda: print("analysis unlocked"))
        >>> preloader.start(items)
    """

    def __init__(self, preloader: SequentialPreloader) -> None:
        self._preloader = preloader
        self._callbacks: list[Callable[[], None]] = []
        self._fired = False
        self._settled = asyncio.Event()
        self._unsubscribe = preloader.subscribe(self._on_event)
        preloader.token.add_callback(self._settled.set)
        self._check()

    @property
    def parent_id(self) -> str:
        return self._preloader.parent_id

    def is_complete(self) -> bool:
        state = self._preloader.state
        return (
            self._preloader.started
            and not state.aborted
            and state.loaded_count == state.total
        )

    def on_complete(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` once, when the gate first becomes complete.

        A callback registered after completion is called immediately.
        """
        if self._fired:
            callback()
        else:
            self._callbacks.append(callback)

    async def wait(self) -> bool:
        """Wait until the gate completes or the run is aborted.

        A run that finishes with failed items leaves the gate incomplete, so this
        keeps waiting until a retry loads them or the run is aborted. Await
        the preloader run and check ``is_complete()`` to avoid blocking.

        Returns:
            True if the gate is complete, False if the run was aborted.
        """
        await self._settled.wait()
        return self.is_complete()

    def detach(self) -> None:
        """Stop observing the preloader."""
        self._unsubscribe()

    def _on_event(self, event: PreloadEvent) -> None:
        if event.kind in (EventKind.ITEM_LOADED, EventKind.RUN_COMPLETE):
            self._check()

    def _check(self) -> None:
        if self._fired or not self.is_complete():
            return
        self._fired = True
        self._settled.set()
        logger.info("load_gate_complete", parent_id=self.parent_id, total=self._preloader.state.total)
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("load_gate_callback_failed", parent_id=self.parent_id)
