# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""DependentActionRunner: runs the expensive action only on complete data.

The action (AI analysis of a session's screenshots) is rejected, before
any network call, while the parent's LoadGate is open, and at most one
invocation per parent may be outstanding at a time.
"""

from typing import Any

import structlog

from capture_preload.application.load_gate import LoadGate
from capture_preload.application.tiered_cache import TieredCache
from capture_preload.domain.errors import (
    ActionInProgressError,
    InvalidRequestError,
    NotReadyError,
    TransportError,
)
from capture_preload.domain.value_objects import result_key
from capture_preload.ports.outbound import DependentActionPort

logger = structlog.get_logger(__name__)


class DependentActionRunner:
    """Gated, single-flight invoker of the dependent action.

    Share one runner across viewers so that the single-flight rule holds
    per parent entity, not per viewer.

    Dependencies (injected):
      - action: DependentActionPort
      - cache: TieredCache holding the last result under result_key(parent_id)
    """

    def __init__(self, action: DependentActionPort, cache: TieredCache | None = None) -> None:
        self._action = action
        self._cache = cache
        self._inflight: set[str] = set()

    def is_running(self, parent_id: str) -> bool:
        return parent_id in self._inflight

    async def trigger(
        self,
        parent_id: str,
        gate: LoadGate,
        force: bool = False,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run the action for ``parent_id`` once its gate is complete.

        Args:
            parent_id: Entity to act on.
            gate: LoadGate of the parent's preload run.
            force: Bypass a cached result and ask the collaborator to re-run.
            options: Action-specific options passed through unchanged.

        Returns:
            Action result (possibly the cached result of an earlier run).

        Raises:
            NotReadyError: If the gate is not complete. No request is made.
            ActionInProgressError: If an invocation for the parent is outstanding.
            TransportError: If the action request fails.
        """
        if gate.parent_id != parent_id:
            raise InvalidRequestError(
                f"gate belongs to {gate.parent_id}, not {parent_id}"
            )
        if not gate.is_complete():
            logger.warning("dependent_action_not_ready", parent_id=parent_id)
            raise NotReadyError(f"items of {parent_id} are not fully loaded")
        if parent_id in self._inflight:
            raise ActionInProgressError(f"action already running for {parent_id}")

        if not force and self._cache is not None:
            cached = self._cache.get(result_key(parent_id))
            if cached is not None:
                logger.debug("dependent_action_cached", parent_id=parent_id)
                return cached.payload

        self._inflight.add(parent_id)
        try:
            result = await self._action.trigger(parent_id, force=force, options=options)
        except TransportError:
            logger.warning("dependent_action_failed", parent_id=parent_id)
            raise
        except (OSError, TimeoutError) as e:
            logger.warning("dependent_action_failed", parent_id=parent_id, error=str(e))
            raise TransportError(
                f"action failed for {parent_id}: {e}",
                operation="trigger",
                parent_id=parent_id,
            ) from e
        finally:
            self._inflight.discard(parent_id)

        if self._cache is not None:
            self._cache.set(result_key(parent_id), result)
        logger.info("dependent_action_completed", parent_id=parent_id, forced=force)
        return result
