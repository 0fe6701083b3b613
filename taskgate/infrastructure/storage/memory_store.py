"""In-memory KeyValueStore, used in tests and for throwaway sessions."""

from typing import Dict, List, Optional

from taskgate.domain.interfaces.key_value_store import KeyValueStore
from taskgate.domain.models.common import StorageKey


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed KeyValueStore. Nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: StorageKey) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: StorageKey, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: StorageKey) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> List[StorageKey]:
        return [StorageKey(k) for k in self._data if k.startswith(prefix)]

    def snapshot(self) -> Dict[str, str]:
        """Copy of the raw contents (for assertions)."""
        return dict(self._data)
