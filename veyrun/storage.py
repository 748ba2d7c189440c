"""Persisted key/value storage areas.

The engine's owning process may be suspended and resumed at any time, so
anything that must outlive it (wallet record, receipt history) goes through
a ``StorageArea``. Callers always read the latest persisted value before
writing; no implementation caches reads.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from .schemas import StorageError

logger = logging.getLogger(__name__)


class StorageArea(Protocol):
    """Protocol for persisted storage backends."""

    async def get(self, key: str) -> Any | None:
        """Read the value stored under ``key``, or None.

        Raises:
            StorageError: If the backend cannot be read.
        """
        ...

    async def set(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key`` in one write.

        Raises:
            StorageError: If the backend cannot be written.
        """
        ...

    async def remove(self, key: str) -> None:
        """Delete ``key`` if present."""
        ...


class MemoryStorage:
    """Process-local storage, used when no path is configured and in tests."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.loads(json.dumps(value))

    async def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        # Hand out copies so callers cannot mutate stored state in place
        return json.loads(json.dumps(value)) if value is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.loads(json.dumps(value))

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """Storage area backed by a single JSON document on disk.

    Writes go to a temporary file that replaces the document atomically.
    File I/O runs in a worker thread so the event loop is never blocked.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read storage at {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Storage at {self._path} is not a JSON object")
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".veyrun-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, self._path)
        except OSError as e:
            raise StorageError(f"Failed to write storage at {self._path}: {e}") from e

    async def get(self, key: str) -> Any | None:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data[key] = value
            await asyncio.to_thread(self._write_all, data)

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            if data.pop(key, None) is not None:
                await asyncio.to_thread(self._write_all, data)
