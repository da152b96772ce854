"""
Key-value stores behind the config store and the backup tiers.

  JsonFileKeyValueStore  - one JSON document on disk, rewritten on every set
  InMemoryKeyValueStore  - lives as long as the process (session tier)

File I/O runs in the default executor so the event loop never blocks.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
import threading
from typing import Any, Dict, List, Optional

from riskledger.persistence.ports import KeyValueStore
from riskledger.utils.exceptions import StorageError
from riskledger.utils.logger import get_logger

logger = get_logger(__name__)


class JsonFileKeyValueStore(KeyValueStore):
    def __init__(self, path: str, name: str = "file"):
        self.path = path
        self.name = name
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            # a corrupt document is reported, never silently replaced
            raise StorageError(f"Corrupt key-value file {self.path}", original_error=e) from e
        if not isinstance(data, dict):
            raise StorageError(f"Key-value file {self.path} does not hold an object")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_path, self.path)

    def _get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read_all().get(key)

    def _set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def _remove(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)

    def _keys(self) -> List[str]:
        with self._lock:
            return list(self._read_all().keys())

    async def _run(self, operation: str, fn, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except StorageError:
            raise
        except (OSError, TypeError, ValueError) as e:
            logger.error("kv_store_failed", store=self.name, operation=operation, error=str(e))
            raise StorageError(f"{self.name}: {operation} failed", original_error=e) from e

    async def get(self, key: str) -> Optional[Any]:
        return await self._run("get", self._get, key)

    async def set(self, key: str, value: Any) -> None:
        await self._run("set", self._set, key, value)

    async def remove(self, key: str) -> None:
        await self._run("remove", self._remove, key)

    async def keys(self) -> List[str]:
        return await self._run("keys", self._keys)


class InMemoryKeyValueStore(KeyValueStore):
    """Values are deep-copied in and out so callers never share state with the store."""

    def __init__(self, name: str = "session"):
        self.name = name
        self._data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> List[str]:
        return list(self._data.keys())
