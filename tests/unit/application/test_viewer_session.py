# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Unit tests for ViewerSession: preload, jump, analyze, close."""

import asyncio

import pytest

from capture_preload.application.dependent_action import DependentActionRunner
from capture_preload.application.tiered_cache import TieredCache
from capture_preload.application.viewer_session import ViewerSession
from capture_preload.domain.errors import NotReadyError
from capture_preload.domain.value_objects import EventKind, PreloadEvent, PreloadStatus
from fakes import FakeAction, FakePayloadSource, make_items, payload_for

pytestmark = pytest.mark.unit

SESSION = "session_42"


class TestViewerSession:
    @pytest.mark.asyncio
    async def test_full_flow(
        self, payload_source: FakePayloadSource, action: FakeAction, cache: TieredCache
    ) -> None:
        runner = DependentActionRunner(action, cache=cache)
        events: list[PreloadEvent] = []

        async with ViewerSession(SESSION, payload_source, runner, cache=cache) as viewer:
            viewer.open(make_items(4, 3, 2, 1), listener=events.append)
            shown = await viewer.show(2)
            assert shown.heavy_payload == payload_for(2)

            assert await viewer.gate.wait()
            await viewer.preloader.wait()
            result = await viewer.analyze()

        assert result == {"summary": "focused work"}
        assert action.calls == [(SESSION, False, None)]
        assert events[-1].kind is EventKind.RUN_COMPLETE
        assert viewer.state.status is PreloadStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_analyze_rejected_while_loading(
        self, payload_source: FakePayloadSource, action: FakeAction
    ) -> None:
        block = payload_source.block(1)
        viewer = ViewerSession(SESSION, payload_source, DependentActionRunner(action))
        viewer.open(make_items(2, 1))
        await payload_source.started[1].wait()

        with pytest.raises(NotReadyError):
            await viewer.analyze()

        assert action.calls == []
        block.set()
        await viewer.close()

    @pytest.mark.asyncio
    async def test_close_aborts_run(self, payload_source: FakePayloadSource, action: FakeAction) -> None:
        block = payload_source.block(0)
        viewer = ViewerSession(SESSION, payload_source, DependentActionRunner(action))
        viewer.open(make_items(3, 2, 1))
        await payload_source.started[0].wait()
        waiter = asyncio.create_task(viewer.gate.wait())

        closing = asyncio.create_task(viewer.close())
        await asyncio.sleep(0)
        assert viewer.token.cancelled

        block.set()
        state = await closing

        assert state.status is PreloadStatus.ABORTED
        assert state.loaded_indices == set()
        assert payload_source.calls == [0]
        assert await waiter is False

    @pytest.mark.asyncio
    async def test_show_after_load_uses_loaded_payload(
        self, payload_source: FakePayloadSource, action: FakeAction
    ) -> None:
        async with ViewerSession(SESSION, payload_source, DependentActionRunner(action)) as viewer:
            await viewer.open(make_items(2, 1))
            shown = await viewer.show(0)

        assert shown.heavy_payload == payload_for(0)
        assert payload_source.calls == [0, 1]

    @pytest.mark.asyncio
    async def test_failed_item_finishes_run_with_gate_incomplete(self, action: FakeAction) -> None:
        source = FakePayloadSource(fail={1})
        viewer = ViewerSession(SESSION, source, DependentActionRunner(action))
        viewer.open(make_items(3, 2, 1))
        waiter = asyncio.create_task(viewer.gate.wait())

        state = await viewer.preloader.wait()

        assert state.status is PreloadStatus.COMPLETE
        assert not viewer.gate.is_complete()
        assert not waiter.done()
        with pytest.raises(NotReadyError):
            await viewer.analyze()

        await viewer.close()
        assert await waiter is False
        assert action.calls == []
