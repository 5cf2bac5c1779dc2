"""
Shared test fixtures.

Storage is the in-memory document service and time comes from a
controllable clock. Provider adapters are mocks; no test makes a real
network call.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from neoclip.config import QuotaPolicy
from neoclip.models.generations import GenerationTask
from neoclip.models.shared import GenerationStatus
from neoclip.services.generation_service import GenerationService
from neoclip.services.memory_service import InMemoryFirestoreService
from neoclip.services.quota_ledger import QuotaLedger
from neoclip.services.video.common import ProviderSubmission, VideoProviderAdapter
from neoclip.services.video.registry import FallbackChainSelector

START_TIME = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_adapter(key: str, name: str, cost: float = 0.1, configured: bool = True):
    """Create a mock provider adapter that accepts every submission."""
    adapter = MagicMock(spec=VideoProviderAdapter)
    adapter.key = key
    adapter.name = name
    adapter.cost = cost
    adapter.create_url = f"https://{key}.example.com/tasks"
    adapter.is_configured.return_value = configured
    adapter.submit.return_value = ProviderSubmission(
        provider_task_id=f"{key}-task-1",
        provider=key,
        provider_name=name,
        cost=cost,
        status_url=f"https://{key}.example.com/tasks/{key}-task-1",
    )
    adapter.describe.return_value = {"key": key, "name": name, "configured": configured}
    return adapter


def make_task(**overrides) -> GenerationTask:
    """Create a processing generation task with sensible defaults."""
    data = {
        "generation_id": "gen-1",
        "user_id": "user-1",
        "provider_task_id": "wan-task-1",
        "provider": "wan",
        "provider_name": "Wan-2.1",
        "prompt": "cat playing piano",
        "tier": "free",
        "duration": 10,
        "resolution": "768p",
        "status": GenerationStatus.PROCESSING,
        "created_at": START_TIME,
        "started_at": START_TIME,
    }
    data.update(overrides)
    return GenerationTask(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryFirestoreService()


@pytest.fixture
def ledger(store, clock):
    return QuotaLedger(store, QuotaPolicy(), clock=clock)


@pytest.fixture
def adapters():
    return {
        "wan": make_adapter("wan", "Wan-2.1", 0.0008),
        "luma": make_adapter("luma", "Luma", 0.20),
        "fal": make_adapter("fal", "MiniMax-FAL", 0.50),
    }


@pytest.fixture
def selector(adapters):
    return FallbackChainSelector(adapters)


@pytest.fixture
def service(selector, ledger, store, clock):
    return GenerationService(selector, ledger, store, clock=clock)
