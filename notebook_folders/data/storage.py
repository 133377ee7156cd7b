from __future__ import annotations

import abc
import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from ..constants import STORAGE_PATH

logger = logging.getLogger(__name__)


class StorageUnavailableError(Exception):
    pass


class KeyValueStorage(abc.ABC):
    """
    Async key-value persistence, shaped like the browser's ``storage.local``.

    Values are JSON-compatible structures. Implementations raise
    :class:`StorageUnavailableError` when the backing store can't be reached.
    """

    @property
    def available(self) -> bool:
        return True

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: Any):
        ...


class MemoryStorage(KeyValueStorage):
    _data: Dict[str, Any]
    _available: bool
    _latency: float

    def __init__(self, data: Optional[Dict[str, Any]] = None, latency: float = 0):
        self._data = copy.deepcopy(data) if data else {}
        self._available = True
        # Every call yields to the event loop, like a real async storage API
        self._latency = latency

    @property
    def available(self) -> bool:
        return self._available

    @available.setter
    def available(self, value: bool):
        self._available = value

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    async def get(self, key: str) -> Optional[Any]:
        await asyncio.sleep(self._latency)
        if not self._available:
            raise StorageUnavailableError("Storage has been torn down")
        # Copy so callers can't mutate stored state without a set()
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any):
        await asyncio.sleep(self._latency)
        if not self._available:
            raise StorageUnavailableError("Storage has been torn down")
        self._data[key] = copy.deepcopy(value)


class JsonFileStorage(KeyValueStorage):
    """All keys live in one JSON object on disk, rewritten on every set()."""

    _path: Path
    _io_lock: asyncio.Lock

    def __init__(self, path: Path = STORAGE_PATH):
        self._path = path
        self._io_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}

        try:
            with open(self._path, encoding="utf-8") as storage_file:
                data = json.load(storage_file)
        except OSError as e:
            raise StorageUnavailableError(f"Couldn't read '{self._path}': {e}") from e
        except ValueError as e:
            raise StorageUnavailableError(
                f"Storage file '{self._path}' is not valid JSON: {e}"
            ) from e

        if not isinstance(data, dict):
            raise StorageUnavailableError(
                f"Storage file '{self._path}' doesn't contain a JSON object"
            )
        return data

    def _write_all(self, data: Dict[str, Any]):
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as storage_file:
                json.dump(data, storage_file, ensure_ascii=False)
            os.replace(temp_path, self._path)
        except OSError as e:
            raise StorageUnavailableError(f"Couldn't write '{self._path}': {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        async with self._io_lock:
            return self._read_all().get(key)

    async def set(self, key: str, value: Any):
        async with self._io_lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)
