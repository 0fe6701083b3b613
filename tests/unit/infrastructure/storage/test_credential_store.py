from datetime import datetime, timezone

from taskgate.domain.models.records import Session, User
from taskgate.infrastructure.storage.credential_store import CREDENTIALS_KEY, CredentialStore
from taskgate.infrastructure.storage.memory_store import InMemoryKeyValueStore


def make_session(token="access"):
    return Session(
        user=User(id="user_1", phone="+15550001", name="Demo User"),
        access_token=token,
        refresh_token=f"refresh-{token}",
        expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
    )


async def test_empty_store_has_no_session(credentials):
    assert await credentials.load() is None
    assert await credentials.access_token() is None


async def test_save_and_load_round_trip(credentials):
    session = make_session()

    await credentials.save(session)

    assert await credentials.load() == session
    assert await credentials.access_token() == "access"
    assert await credentials.refresh_token() == "refresh-access"


async def test_save_replaces_the_previous_session(credentials):
    await credentials.save(make_session("old"))
    await credentials.save(make_session("new"))
    assert await credentials.access_token() == "new"


async def test_clear_removes_the_session(credentials, memory_storage):
    await credentials.save(make_session())

    await credentials.clear()

    assert CREDENTIALS_KEY not in memory_storage.snapshot()
    assert await credentials.load() is None


async def test_unreadable_credentials_are_discarded():
    storage = InMemoryKeyValueStore({CREDENTIALS_KEY: "{not json"})
    store = CredentialStore(storage)

    assert await store.load() is None
    assert storage.snapshot() == {}


async def test_incomplete_credentials_are_discarded():
    storage = InMemoryKeyValueStore({CREDENTIALS_KEY: '{"user": {"id": "u"}}'})
    assert await CredentialStore(storage).load() is None
