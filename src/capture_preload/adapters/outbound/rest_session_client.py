# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""httpx adapter for the productivity-session REST endpoints.

Implements ItemSourcePort, PayloadSourcePort and DependentActionPort.
Every endpoint answers with a ``{"success": bool, "data": ..., "error": str}``
envelope; connection errors, non-2xx statuses and ``success: false`` all
surface as TransportError.
"""

from datetime import datetime
from typing import Any, cast

import httpx
import structlog

from capture_preload.domain.errors import InvalidRequestError, TransportError
from capture_preload.domain.value_objects import HeavyPayload, Item, parse_timestamp

logger = structlog.get_logger(__name__)

SESSIONS_PATH = "/api/productivity/sessions"

# Heavy fields never kept in item metadata
_HEAVY_FIELDS = frozenset({"fullData"})


def item_from_record(record: dict[str, Any], index: int) -> Item:
    """Build a lightweight Item from a session record.

    Raises:
        InvalidRequestError: If the record has no id or creation time.
    """
    item_id = record.get("_id") or record.get("id")
    created_raw = record.get("createdAt") or record.get("sessionStart") or record.get("startTime")
    if not item_id or not created_raw:
        raise InvalidRequestError(f"session record missing id or creation time: {sorted(record)}")
    metadata = {k: v for k, v in record.items() if k not in _HEAVY_FIELDS}
    return Item(
        id=str(item_id),
        index=index,
        created_at=parse_timestamp(created_raw),
        metadata=metadata,
    )


def screenshot_items(session: Item) -> list[Item]:
    """Light descriptors of a session's screenshots, in stored order.

    Screenshots without their own id or capture time inherit them from
    the session (``<session id>-<position>``, session creation time).
    """
    items = []
    for position, shot in enumerate(session.metadata.get("screenshots") or []):
        captured_raw = shot.get("capturedAt") or shot.get("timestamp")
        items.append(
            Item(
                id=str(shot.get("_id") or f"{session.id}-{position}"),
                index=position,
                created_at=parse_timestamp(captured_raw) if captured_raw else session.created_at,
                metadata={k: v for k, v in shot.items() if k not in _HEAVY_FIELDS},
            )
        )
    return items


class RestSessionClient:
    """REST client for session lists, screenshots and session analysis.

    Example:
        >>> async with RestSessionClient("https://hr.example.com", token) as client:
        ...     sessions = await client.fetch_page(user_id, limit=4, offset=0)
        ...     shot = await client.fetch_heavy_payload(sessions[0].id, 0)
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize client.

        Args:
            base_url: Backend root URL
            api_token: Bearer token (omitted from requests when empty)
            timeout: Per-request timeout in seconds
            client: Preconfigured AsyncClient (for dependency injection)
        """
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._client.headers.update(headers)
        self._base_url = base_url.rstrip("/")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RestSessionClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def fetch_page(self, parent_id: str, limit: int, offset: int) -> list[Item]:
        data = await self._request(
            "GET",
            SESSIONS_PATH,
            operation="fetch_page",
            parent_id=parent_id,
            params={"userId": parent_id, "limit": limit, "offset": offset},
        )
        return self._items(data, parent_id, "fetch_page")

    async def fetch_since(self, parent_id: str, cursor: datetime) -> list[Item]:
        data = await self._request(
            "GET",
            SESSIONS_PATH,
            operation="fetch_since",
            parent_id=parent_id,
            params={"userId": parent_id, "since": cursor.isoformat()},
        )
        return self._items(data, parent_id, "fetch_since")

    async def fetch_heavy_payload(self, parent_id: str, index: int) -> HeavyPayload:
        data = await self._request(
            "GET",
            f"{SESSIONS_PATH}/{parent_id}/screenshot/{index}",
            operation="fetch_heavy_payload",
            parent_id=parent_id,
        )
        if not isinstance(data, dict):
            raise TransportError(
                f"screenshot {index} of {parent_id}: unexpected response body",
                operation="fetch_heavy_payload",
                parent_id=parent_id,
            )
        return HeavyPayload.from_raw(data)

    async def trigger(
        self,
        parent_id: str,
        force: bool = False,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body = {**(options or {}), "force": force}
        data = await self._request(
            "POST",
            f"{SESSIONS_PATH}/{parent_id}/analyze",
            operation="trigger",
            parent_id=parent_id,
            json=body,
        )
        return cast(dict[str, Any], data) if isinstance(data, dict) else {"data": data}

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        parent_id: str,
        **kwargs: Any,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.debug("request_error", operation=operation, url=url, exc_info=True)
            raise TransportError(
                f"{operation} for {parent_id}: {e}", operation=operation, parent_id=parent_id
            ) from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.is_error or body.get("success") is False:
            error = body.get("error") or resp.reason_phrase
            logger.warning(
                "request_failed",
                operation=operation,
                parent_id=parent_id,
                status=resp.status_code,
                error=error,
            )
            raise TransportError(
                f"{operation} for {parent_id}: HTTP {resp.status_code} {error}",
                operation=operation,
                parent_id=parent_id,
            )
        return body.get("data")

    @staticmethod
    def _items(data: Any, parent_id: str, operation: str) -> list[Item]:
        if data is None:
            return []
        if not isinstance(data, list):
            raise TransportError(
                f"{operation} for {parent_id}: expected a list",
                operation=operation,
                parent_id=parent_id,
            )
        try:
            return [item_from_record(record, i) for i, record in enumerate(data)]
        except (AttributeError, InvalidRequestError) as e:
            raise TransportError(
                f"{operation} for {parent_id}: malformed record: {e}",
                operation=operation,
                parent_id=parent_id,
            ) from e
