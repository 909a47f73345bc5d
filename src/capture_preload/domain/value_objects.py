# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain value objects (immutable data structures).

Value objects are immutable data structures that represent concepts
from the domain model. They have no identity - two instances with
the same values are considered equal.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from capture_preload.domain.errors import InvalidRequestError

# Leading base64 characters of well-known image encodings
_JPEG_MAGIC = "/9j/"
_PNG_MAGIC = "iVBOR"


class ItemStatus(str, Enum):
    """Per-item load state within a preload run."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    LOADED = "loaded"
    FAILED = "failed"


class PreloadStatus(str, Enum):
    """Run-level state of a SequentialPreloader."""

    IDLE = "idle"
    LOADING = "loading"
    COMPLETE = "complete"
    ABORTED = "aborted"


class EventKind(str, Enum):
    """Transitions published by the preloader to its listeners."""

    ITEM_STARTED = "item_started"
    ITEM_LOADED = "item_loaded"
    ITEM_FAILED = "item_failed"
    RUN_COMPLETE = "run_complete"
    RUN_ABORTED = "run_aborted"


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string, epoch seconds, or datetime into an aware datetime.

    Naive values are taken to be UTC.

    Raises:
        InvalidRequestError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidRequestError(f"Invalid timestamp {value!r}") from e
    else:
        raise InvalidRequestError(f"Invalid timestamp {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_data_uri(data: str) -> str:
    """Prefix raw base64 image data with a data URI header.

    The MIME type is sniffed from the leading base64 characters: JPEG
    (``/9j/``), PNG (``iVBOR``), anything else is treated as WebP.
    Values that already carry a ``data:`` prefix, and empty values, are
    returned unchanged.
    """
    if not data or data.startswith("data:"):
        return data
    if data.startswith(_JPEG_MAGIC):
        mime_type = "image/jpeg"
    elif data.startswith(_PNG_MAGIC):
        mime_type = "image/png"
    else:
        mime_type = "image/webp"
    return f"data:{mime_type};base64,{data}"


def _mime_type_of(data_uri: str) -> str:
    if not data_uri.startswith("data:"):
        return ""
    return data_uri[len("data:"):].split(";", 1)[0].split(",", 1)[0]


@dataclass(frozen=True)
class HeavyPayload:
    """Full-resolution data of one item (e.g. one screenshot image).

    Attributes:
        data: Image data as a data URI.
        mime_type: MIME type derived from the data URI.
        thumbnail: Optional thumbnail data URI.
        captured_at: Capture time, if the source reports one.
        payload_id: Source identifier of the payload, if any.
    """

    data: str
    mime_type: str = ""
    thumbnail: str = ""
    captured_at: datetime | None = None
    payload_id: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "HeavyPayload":
        """Build a payload from a source record, normalizing image data.

        Args:
            raw: Record with ``fullData`` (or ``data``), optional ``thumbnail``,
                ``capturedAt`` and ``_id``/``id`` fields.

        Returns:
            HeavyPayload with data URIs for ``data`` and ``thumbnail``.
        """
        data = to_data_uri(str(raw.get("fullData") or raw.get("data") or ""))
        thumbnail = to_data_uri(str(raw.get("thumbnail") or ""))
        captured_raw = raw.get("capturedAt") or raw.get("captured_at")
        return cls(
            data=data,
            mime_type=_mime_type_of(data),
            thumbnail=thumbnail,
            captured_at=parse_timestamp(captured_raw) if captured_raw else None,
            payload_id=str(raw.get("_id") or raw.get("id") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "mime_type": self.mime_type,
            "thumbnail": self.thumbnail,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "payload_id": self.payload_id,
        }

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "HeavyPayload":
        captured_raw = record.get("captured_at")
        return cls(
            data=record["data"],
            mime_type=record.get("mime_type", ""),
            thumbnail=record.get("thumbnail", ""),
            captured_at=parse_timestamp(captured_raw) if captured_raw else None,
            payload_id=record.get("payload_id", ""),
        )


@dataclass(frozen=True)
class Item:
    """Unit being loaded (a session in a list, or a capture in a session).

    Items are totally ordered by ``index``, which matches the newest-first
    order returned by the source of truth.

    Attributes:
        id: Source identifier, unique within a parent.
        index: Position in the ordered list.
        created_at: Creation time (the incremental-fetch cursor).
        metadata: Lightweight fields shown before the heavy payload arrives.
        heavy_payload: Full payload, or None while unloaded.
    """

    id: str
    index: int
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)
    heavy_payload: HeavyPayload | None = field(default=None, compare=False)

    @property
    def is_loaded(self) -> bool:
        return self.heavy_payload is not None

    def with_index(self, index: int) -> "Item":
        return replace(self, index=index)

    def with_payload(self, payload: HeavyPayload) -> "Item":
        return replace(self, heavy_payload=payload)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (heavy payload excluded)."""
        return {
            "id": self.id,
            "index": self.index,
            "created_at": self.created_at.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "Item":
        return cls(
            id=str(record["id"]),
            index=int(record.get("index", 0)),
            created_at=parse_timestamp(record["created_at"]),
            metadata=dict(record.get("metadata") or {}),
        )


@dataclass(frozen=True)
class Page:
    """One page of items from a paginated fetch."""

    items: list[Item]
    has_more: bool


@dataclass(frozen=True)
class PreloadEvent:
    """Transition of a preload run, delivered to subscribed listeners.

    Attributes:
        kind: Kind of transition.
        parent_id: Parent entity of the run.
        index: Item index for item-level events, None for run-level events.
        loaded_count: Number of loaded items after the transition.
        total: Number of items in the run.
    """

    kind: EventKind
    parent_id: str
    index: int | None
    loaded_count: int
    total: int


# Cache key layout: every key of a parent lives under its namespace, so
# invalidate(namespace(parent_id)) drops the list, payloads and results at once.


def namespace(parent_id: str) -> str:
    """Namespace prefix shared by every cache key of a parent entity."""
    if not parent_id:
        raise InvalidRequestError("parent_id cannot be empty")
    return f"{parent_id}:"


def items_key(parent_id: str) -> str:
    return f"{namespace(parent_id)}items"


def payload_key(parent_id: str, index: int) -> str:
    return f"{namespace(parent_id)}payload:{index}"


def result_key(parent_id: str) -> str:
    return f"{namespace(parent_id)}result"
