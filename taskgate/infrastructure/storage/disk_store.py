"""Durable KeyValueStore backed by diskcache.

Holds the simulated backend's collections and the credential record between
runs. diskcache is synchronous, so calls are pushed to a worker thread with
``asyncio.to_thread``.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Union

import diskcache as dc

from taskgate.domain.interfaces.key_value_store import KeyValueStore
from taskgate.domain.models.common import StorageKey

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = Path.home() / ".taskgate" / "store"


class DiskKeyValueStore(KeyValueStore):
    """KeyValueStore persisting string values in a diskcache directory."""

    def __init__(self, directory: Union[str, Path] = DEFAULT_STORAGE_DIR):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        # No expiry: records live until deleted
        self._cache = dc.Cache(str(self.directory), timeout=1)
        logger.info(f"Initialized disk key/value store at: {self._cache.directory}")

    async def get(self, key: StorageKey) -> Optional[str]:
        value = await asyncio.to_thread(self._cache.get, key, None)
        logger.debug(f"Disk store GET {key}: {'hit' if value is not None else 'miss'}")
        return value

    async def set(self, key: StorageKey, value: str) -> None:
        await asyncio.to_thread(self._cache.set, key, value)
        logger.debug(f"Disk store SET {key} ({len(value)} chars)")

    async def delete(self, key: StorageKey) -> None:
        await asyncio.to_thread(self._cache.delete, key)
        logger.debug(f"Disk store DELETE {key}")

    async def keys(self, prefix: str = "") -> List[StorageKey]:
        all_keys = await asyncio.to_thread(lambda: list(self._cache.iterkeys()))
        return [StorageKey(k) for k in all_keys if isinstance(k, str) and k.startswith(prefix)]

    def close(self) -> None:
        self._cache.close()
        logger.debug("Closed disk key/value store.")
