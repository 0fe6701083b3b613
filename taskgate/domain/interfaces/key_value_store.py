"""Interface for the key/value persistence primitive.

The simulated backend and the credential store both persist through this
contract; they never touch a storage library directly.
"""

import abc
from typing import List, Optional

from taskgate.domain.models.common import StorageKey


class KeyValueStore(abc.ABC):
    """Abstract Base Class for string-valued persistent storage."""

    @abc.abstractmethod
    async def get(self, key: StorageKey) -> Optional[str]:
        """Retrieves a stored value asynchronously.

        Args:
            key: The key to look up.

        Returns:
            The stored string, or None if the key is absent.
        """
        pass

    @abc.abstractmethod
    async def set(self, key: StorageKey, value: str) -> None:
        """Stores a value, replacing any previous one.

        Args:
            key: The key to store the value under.
            value: The serialized value.
        """
        pass

    @abc.abstractmethod
    async def delete(self, key: StorageKey) -> None:
        """Removes a key. Removing an absent key is not an error."""
        pass

    @abc.abstractmethod
    async def keys(self, prefix: str = "") -> List[StorageKey]:
        """Lists stored keys starting with ``prefix``."""
        pass

    async def delete_many(self, keys: List[StorageKey]) -> None:
        """Removes several keys."""
        for key in keys:
            await self.delete(key)
