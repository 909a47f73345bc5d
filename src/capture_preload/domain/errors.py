# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Domain exception hierarchy.

All domain-level errors inherit from CapturePreloadError.
This allows clean exception handling at adapter boundaries.
"""


class CapturePreloadError(Exception):
    """Base exception for all domain errors."""


class TransportError(CapturePreloadError):
    """A remote fetch (metadata, heavy payload, dependent action) failed.

    Retryable: the caller may issue the same request again. Cached data is
    left untouched when this is raised.
    """

    def __init__(self, message: str, operation: str = "", parent_id: str = "") -> None:
        super().__init__(message)
        self.operation = operation
        self.parent_id = parent_id


class NotReadyError(CapturePreloadError):
    """Dependent action invoked before every item of the parent was loaded."""


class ActionInProgressError(CapturePreloadError):
    """Dependent action already outstanding for the same parent entity."""


class InvalidRequestError(CapturePreloadError):
    """Request validation failed (empty parent_id, index out of range, etc)."""


class CacheWriteError(CapturePreloadError):
    """Durable tier rejected a write (unavailable, unserializable record)."""


class CacheCapacityError(CacheWriteError):
    """Durable tier has no room left for the record being written."""


class CacheCorruptionError(CapturePreloadError):
    """Durable record could not be decoded (truncated file, invalid JSON)."""
