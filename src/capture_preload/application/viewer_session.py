# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""ViewerSession: lifecycle of one open capture viewer.

Opening a viewer creates a load state and starts preloading; closing it
aborts the run so no background work outlives the view.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

from capture_preload.application.cancellation import CancellationToken
from capture_preload.application.dependent_action import DependentActionRunner
from capture_preload.application.load_gate import LoadGate
from capture_preload.application.preloader import PreloadListener, SequentialPreloader
from capture_preload.application.tiered_cache import TieredCache
from capture_preload.domain.entities import LoadState
from capture_preload.domain.value_objects import Item
from capture_preload.ports.outbound import PayloadSourcePort


class ViewerSession:
    """Preloader, gate and analysis trigger for one parent, bound together.

    Example:
        >>> async with ViewerSession("session_42", client, runner, cache) as viewer:
        ...     viewer.open(screenshots)
        ...     current = await viewer.show(3)
        ...     await viewer.preloader.wait()
        ...     if viewer.gate.is_complete():
        ...         result = await viewer.analyze()
    """

    def __init__(
        self,
        parent_id: str,
        payload_source: PayloadSourcePort,
        runner: DependentActionRunner,
        cache: TieredCache | None = None,
    ) -> None:
        self.token = CancellationToken()
        self.preloader = SequentialPreloader(parent_id, payload_source, cache=cache, token=self.token)
        self.gate = LoadGate(self.preloader)
        self._runner = runner

    @property
    def parent_id(self) -> str:
        return self.preloader.parent_id

    @property
    def state(self) -> LoadState:
        return self.preloader.state

    def open(self, items: Sequence[Item], listener: PreloadListener | None = None) -> "asyncio.Task[LoadState]":
        """Start preloading ``items``; ``listener`` receives progress events."""
        if listener is not None:
            self.preloader.subscribe(listener)
        return self.preloader.start(items)

    async def show(self, index: int) -> Item:
        """Item ``index`` with its payload, jumping ahead of the cursor if needed."""
        await self.preloader.request_index(index)
        return self.state.item_at(index)

    async def analyze(self, force: bool = False, options: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run the dependent action; rejected until every item is loaded."""
        return await self._runner.trigger(self.parent_id, self.gate, force=force, options=options)

    async def close(self) -> LoadState:
        state = await self.preloader.aclose()
        self.gate.detach()
        return state

    async def __aenter__(self) -> "ViewerSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
