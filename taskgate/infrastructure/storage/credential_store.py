"""Credential store: the single persisted Session record.

Reads and writes are unlocked read-modify-write on the key/value primitive;
the gateway guarantees at most one token refresh in flight.
"""

import json
import logging
from typing import Optional

from taskgate.domain.interfaces.key_value_store import KeyValueStore
from taskgate.domain.models.common import StorageKey
from taskgate.domain.models.records import Session

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = StorageKey("taskgate:credentials")


class CredentialStore:
    """Holds the access/refresh tokens and the signed-in user."""

    def __init__(self, storage: KeyValueStore, key: StorageKey = CREDENTIALS_KEY):
        self.storage = storage
        self.key = key

    async def load(self) -> Optional[Session]:
        raw = await self.storage.get(self.key)
        if raw is None:
            return None
        try:
            return Session.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Stored credentials are unreadable, discarding them: {e}")
            await self.storage.delete(self.key)
            return None

    async def save(self, session: Session) -> None:
        await self.storage.set(self.key, json.dumps(session.to_dict()))
        logger.debug(f"Saved credentials for user {session.user.id}")

    async def clear(self) -> None:
        await self.storage.delete(self.key)
        logger.info("Cleared stored credentials.")

    async def access_token(self) -> Optional[str]:
        session = await self.load()
        return session.access_token if session else None

    async def refresh_token(self) -> Optional[str]:
        session = await self.load()
        return session.refresh_token if session else None
