# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""JSON file store: the durable cache tier.

One JSON file per key in a directory. Keys are percent-encoded into file
names, writes are atomic (tmp + rename), and the directory is bounded by a
byte capacity.
"""

import json
import os
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from capture_preload.domain.errors import (
    CacheCapacityError,
    CacheCorruptionError,
    CacheWriteError,
)

_SUFFIX = ".json"
_TMP_SUFFIX = ".tmp"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024


class JsonFileStore:
    """DurableStorePort implementation backed by a directory of JSON files."""

    def __init__(self, cache_dir: Path, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        """Initialize store with cache directory.

        Raises:
            CacheWriteError: If the directory cannot be created.
        """
        self.cache_dir = Path(cache_dir).expanduser()
        self.max_bytes = max_bytes
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheWriteError(f"Failed to create cache directory {self.cache_dir}: {e}") from e

    def _path_for(self, key: str) -> Path:
        return self.cache_dir / f"{quote(key, safe='')}{_SUFFIX}"

    def read(self, key: str) -> dict[str, Any] | None:
        path = self._path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            record = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CacheCorruptionError(f"Invalid JSON in {path.name}: {e}") from e
        if not isinstance(record, dict):
            raise CacheCorruptionError(f"Record in {path.name} is not an object")
        return record

    def write(self, key: str, record: dict[str, Any]) -> None:
        try:
            data = json.dumps(record, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise CacheWriteError(f"Record for {key!r} is not JSON-serializable: {e}") from e

        path = self._path_for(key)
        current = self.size_bytes(exclude=path)
        if current + len(data) > self.max_bytes:
            raise CacheCapacityError(
                f"Durable tier full: {current + len(data)} bytes needed, "
                f"capacity {self.max_bytes} bytes (key {key!r})"
            )

        tmp_path = path.with_name(path.name + _TMP_SUFFIX)
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> bool:
        try:
            self._path_for(key).unlink()
        except FileNotFoundError:
            return False
        return True

    def keys(self) -> list[str]:
        return sorted(
            unquote(path.name[: -len(_SUFFIX)])
            for path in self.cache_dir.glob(f"*{_SUFFIX}")
        )

    def size_bytes(self, exclude: Path | None = None) -> int:
        """Total size of stored records, optionally ignoring one file."""
        total = 0
        for path in self.cache_dir.glob(f"*{_SUFFIX}"):
            if path == exclude:
                continue
            try:
                total += path.stat().st_size
            except FileNotFoundError:
                continue
        return total
