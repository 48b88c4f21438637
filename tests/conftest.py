"""
Pytest configuration and fixtures.

Every test gets its own in-memory ledger (the demo school's reference
data, no payments), a manual clock and a seeded random source.
"""
import random
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from schoolup_payments.api.main import create_app
from schoolup_payments.config import Settings
from schoolup_payments.core.service import PaymentService
from schoolup_payments.core.store import InMemoryLedgerStore
from schoolup_payments.seed import build_demo_store


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 12, 8, 0, tzinfo=timezone.utc)):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


class SequenceRandom:
    """Random whose randint() replays a fixed sequence (for receipt collisions)."""

    def __init__(self, values: list[int]):
        self.values = list(values)

    def randint(self, a: int, b: int) -> int:
        return self.values.pop(0)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        app_name="schoolup-payments-test",
        app_env="test",
        log_level="DEBUG",
        simulator_enabled=False,
        background_workers_enabled=False,
        webhook_secret=None,
        confirmation_timeout_seconds=300,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(20260112)


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return build_demo_store()


@pytest.fixture
def service(
    store: InMemoryLedgerStore,
    test_settings: Settings,
    clock: ManualClock,
    rng: random.Random,
) -> PaymentService:
    return PaymentService(store, settings=test_settings, clock=clock, rng=rng)


@pytest.fixture
def app(service: PaymentService) -> Any:
    return create_app(service)


@pytest_asyncio.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sample_initiation() -> dict[str, Any]:
    """Chipo Banda's parent paying 1000 ZMW over MTN."""
    return {
        "student_id": "std-1",
        "amount": "1000",
        "payer_phone": "+260971000003",
        "network": "MTN",
    }


@pytest.fixture
def sequence_random() -> type[SequenceRandom]:
    return SequenceRandom


@pytest.fixture
def make_service(store: InMemoryLedgerStore, test_settings: Settings, clock: ManualClock) -> Any:
    """Build a service over the test ledger with a custom rng or settings overrides."""

    def factory(rng: random.Random | None = None, **overrides: Any) -> PaymentService:
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        return PaymentService(store, settings=settings, clock=clock, rng=rng)

    return factory
