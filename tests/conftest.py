import random
from datetime import datetime, timedelta, timezone

import pytest
from typer.testing import CliRunner

from taskgate.core.gateway import Gateway
from taskgate.domain.models.common import GatewayMode
from taskgate.infrastructure.backends.simulated_backend import SimulatedBackend
from taskgate.infrastructure.backends.simulated_store import SimulatedBackendStore
from taskgate.infrastructure.config.settings import clear_test_config
from taskgate.infrastructure.resilience.retry_policy import RetryPolicy, RetryPolicyEngine
from taskgate.infrastructure.storage.credential_store import CredentialStore
from taskgate.infrastructure.storage.memory_store import InMemoryKeyValueStore


class FakeTime:
    """Monotonic clock that only advances when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class FakeClock:
    """Wall clock (aware UTC datetimes) under test control."""

    def __init__(self, start: datetime = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_storage():
    return InMemoryKeyValueStore()


@pytest.fixture
def credentials(memory_storage):
    return CredentialStore(memory_storage)


@pytest.fixture
def store(memory_storage, clock):
    """Simulated store without latency or faults."""
    return SimulatedBackendStore(memory_storage, fault_rate=0.0, latency_scale=0.0, clock=clock, rng=random.Random(7))


@pytest.fixture
def engine(fake_time):
    return RetryPolicyEngine(RetryPolicy(), sleep=fake_time.sleep, clock=fake_time.monotonic)


@pytest.fixture
def mock_backend(store, credentials):
    return SimulatedBackend(store, credentials=credentials)


@pytest.fixture
def gateway(mock_backend, credentials, engine):
    """Mock-mode gateway over the in-memory simulated store."""
    return Gateway({GatewayMode.MOCK: mock_backend}, credentials, engine=engine, mode=GatewayMode.MOCK)


@pytest.fixture(autouse=True)
def isolate_test_config():
    yield
    clear_test_config()
