# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""SequentialPreloader: loads heavy payloads one item at a time, in index order.

A run walks the items in ascending index order, fetching each payload in
turn, while allowing the consumer to pull any single item forward
("jump-ahead"). Every load, sequential or jump-ahead, is one task per
index, so a second request for the same index awaits the first instead
of fetching again.

State machine per run:  IDLE -> LOADING -> (COMPLETE | ABORTED)
Per item:               PENDING -> IN_FLIGHT -> (LOADED | FAILED)

Architecture layer: application service.
Transitions are published as PreloadEvents; presentation code subscribes
instead of being called directly.
"""

import asyncio
from collections.abc import Callable, Sequence

import structlog

from capture_preload.application.cancellation import CancellationToken
from capture_preload.application.tiered_cache import TieredCache
from capture_preload.domain.entities import LoadState
from capture_preload.domain.errors import InvalidRequestError, TransportError
from capture_preload.domain.services import reindex
from capture_preload.domain.value_objects import (
    EventKind,
    HeavyPayload,
    Item,
    ItemStatus,
    PreloadEvent,
    PreloadStatus,
    payload_key,
)
from capture_preload.ports.outbound import PayloadSourcePort

logger = structlog.get_logger(__name__)

PreloadListener = Callable[[PreloadEvent], None]

_ITEM_EVENTS = frozenset({EventKind.ITEM_STARTED, EventKind.ITEM_LOADED, EventKind.ITEM_FAILED})


class SequentialPreloader:
    """Background loader for the heavy payloads of one parent's items.

    Public API:
        start(items)         - schedule the run as a task, return the task
        run(items)           - run in the calling coroutine, return final state
        request_index(index) - load one item now (jump-ahead / explicit retry)
        abort()              - cooperative cancellation of the run
        subscribe(listener)  - receive PreloadEvents

    A failed item never halts the run; it stays unloaded until requested
    again through request_index(). After abort(), a request already in
    flight may finish and be cached, but it no longer changes the load state
    or reaches listeners.

    Example:
        >>> preloader = SequentialPreloader("session_42", client, cache=cache)
        >>> task = preloader.start(items)
        >>> await preloader.request_index(7)  # user jumped to screenshot #8
        >>> preloader.abort()                 # viewer closed
    """

    def __init__(
        self,
        parent_id: str,
        payload_source: PayloadSourcePort,
        cache: TieredCache | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        if not parent_id:
            raise InvalidRequestError("parent_id cannot be empty")

        self.state = LoadState(parent_id=parent_id)
        self._source = payload_source
        self._cache = cache
        self._token = token or CancellationToken()
        self._inflight: dict[int, asyncio.Task[HeavyPayload | None]] = {}
        self._listeners: list[PreloadListener] = []
        self._task: asyncio.Task[LoadState] | None = None
        self._started = False

        self._token.add_callback(self._on_cancel)

    @property
    def parent_id(self) -> str:
        return self.state.parent_id

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def started(self) -> bool:
        return self._started

    @property
    def progress(self) -> tuple[int, int]:
        """(loaded, total) for "N of M loaded" displays."""
        return self.state.loaded_count, self.state.total

    def status_of(self, index: int) -> ItemStatus:
        self.state.validate_index(index)
        return self.state.status_of(index, in_flight=index in self._inflight)

    def subscribe(self, listener: PreloadListener) -> Callable[[], None]:
        """Register ``listener`` for transitions; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def start(self, items: Sequence[Item]) -> "asyncio.Task[LoadState]":
        """Begin the sequential run in the background.

        Must be called from a running event loop.

        Raises:
            InvalidRequestError: If this preloader already started a run.
        """
        self._prepare(items)
        self._task = asyncio.create_task(
            self._run_loop(), name=f"preload-{self.parent_id}"
        )
        return self._task

    async def run(self, items: Sequence[Item]) -> LoadState:
        """Run the sequential load in the calling coroutine."""
        self._prepare(items)
        return await self._run_loop()

    async def wait(self) -> LoadState:
        """Wait for a run started with start() to finish."""
        if self._task is not None:
            return await self._task
        return self.state

    def abort(self) -> None:
        """Request cancellation; no new item loads are started afterwards."""
        self._token.cancel()

    async def aclose(self) -> LoadState:
        """Abort and wait for the run and any in-flight requests to settle."""
        self.abort()
        pending = [*self._inflight.values()]
        if self._task is not None:
            pending.append(self._task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return self.state

    def _prepare(self, items: Sequence[Item]) -> None:
        if self._started:
            raise InvalidRequestError(f"preload run for {self.parent_id} already started")
        self._started = True
        self.state.items = reindex(sorted(items, key=lambda item: item.index))

    def _on_cancel(self) -> None:
        self.state.aborted = True
        if self.state.status in (PreloadStatus.IDLE, PreloadStatus.LOADING):
            logger.info(
                "preload_abort_requested",
                parent_id=self.parent_id,
                loaded=self.state.loaded_count,
                total=self.state.total,
            )
        if self.state.status is PreloadStatus.IDLE:
            self.state.status = PreloadStatus.ABORTED
            self._emit(EventKind.RUN_ABORTED)

    async def _run_loop(self) -> LoadState:
        state = self.state
        if state.status is PreloadStatus.ABORTED:
            return state

        state.status = PreloadStatus.LOADING
        logger.info("preload_started", parent_id=self.parent_id, total=state.total)

        try:
            for index in range(state.total):
                if self._token.cancelled:
                    break
                if state.is_loaded(index):
                    continue
                # Failed jump-ahead loads are retried only through request_index
                if index in state.failed_indices:
                    continue

                pending = self._inflight.get(index)
                if pending is not None:
                    # Jump-ahead request already fetching this index
                    await asyncio.shield(pending)
                    continue

                state.currently_loading = index
                try:
                    await asyncio.shield(self._spawn(index))
                finally:
                    state.currently_loading = None
        except asyncio.CancelledError:
            self._token.cancel()
            self._finish()
            raise

        self._finish()
        return state

    def _finish(self) -> None:
        state = self.state
        if self._token.cancelled:
            state.status = PreloadStatus.ABORTED
            self._emit(EventKind.RUN_ABORTED)
        else:
            state.status = PreloadStatus.COMPLETE
            self._emit(EventKind.RUN_COMPLETE)
        logger.info(
            "preload_finished",
            parent_id=self.parent_id,
            status=state.status.value,
            loaded=state.loaded_count,
            failed=len(state.failed_indices),
            total=state.total,
        )

    # ------------------------------------------------------------------
    # Item loading
    # ------------------------------------------------------------------

    async def request_index(self, index: int) -> HeavyPayload | None:
        """Load item ``index`` now, independent of the sequential cursor.

        Returns:
            The payload, or None if the load failed or the run was aborted.

        Raises:
            InvalidRequestError: If ``index`` is out of range.
        """
        self.state.validate_index(index)

        if self.state.is_loaded(index):
            return self.state.payloads[index]
        if self._token.cancelled:
            return None

        task = self._inflight.get(index)
        if task is None:
            logger.debug("jump_ahead", parent_id=self.parent_id, index=index)
            task = self._spawn(index)
        return await asyncio.shield(task)

    def _spawn(self, index: int) -> "asyncio.Task[HeavyPayload | None]":
        task = asyncio.create_task(self._load(index), name=f"payload-{self.parent_id}-{index}")
        self._inflight[index] = task
        task.add_done_callback(lambda done: self._release(index, done))
        self._emit(EventKind.ITEM_STARTED, index)
        return task

    def _release(self, index: int, task: "asyncio.Task[HeavyPayload | None]") -> None:
        if self._inflight.get(index) is task:
            del self._inflight[index]

    async def _load(self, index: int) -> HeavyPayload | None:
        payload = self._cached_payload(index)
        if payload is None:
            try:
                payload = await self._source.fetch_heavy_payload(self.parent_id, index)
            except (TransportError, OSError, TimeoutError) as e:
                self._record_failure(index, e)
                return None
            except Exception as e:
                logger.error(
                    "payload_fetch_unexpected_error",
                    parent_id=self.parent_id,
                    index=index,
                    exc_info=True,
                )
                self._record_failure(index, e)
                return None
            self._cache_payload(index, payload)

        if self.state.mark_loaded(index, payload):
            self._emit(EventKind.ITEM_LOADED, index)
        return self.state.payloads.get(index)

    def _record_failure(self, index: int, error: BaseException) -> None:
        logger.warning(
            "payload_fetch_failed",
            parent_id=self.parent_id,
            index=index,
            error=str(error),
        )
        if not self.state.aborted:
            self.state.mark_failed(index)
            self._emit(EventKind.ITEM_FAILED, index)

    def _cached_payload(self, index: int) -> HeavyPayload | None:
        if self._cache is None:
            return None
        key = payload_key(self.parent_id, index)
        entry = self._cache.get(key)
        if entry is None:
            return None
        try:
            return HeavyPayload.from_dict(entry.payload)
        except (KeyError, TypeError, ValueError, InvalidRequestError) as e:
            logger.warning("cached_payload_invalid", key=key, error=str(e))
            self._cache.delete(key)
            return None

    def _cache_payload(self, index: int, payload: HeavyPayload) -> None:
        if self._cache is not None:
            self._cache.set(payload_key(self.parent_id, index), payload.to_dict())

    def _emit(self, kind: EventKind, index: int | None = None) -> None:
        # A torn-down view must not receive item updates
        if self.state.aborted and kind in _ITEM_EVENTS:
            return
        event = PreloadEvent(
            kind=kind,
            parent_id=self.parent_id,
            index=index,
            loaded_count=self.state.loaded_count,
            total=self.state.total,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("preload_listener_failed", kind=kind.value, index=index)
