from __future__ import annotations

import pytest

from standings_sync.services.cache_store import CacheStore
from standings_sync.services.config import SyncConfig
from standings_sync.services.orchestrator import SyncOrchestrator
from standings_sync.services.scheduler import FetchScheduler
from standings_sync.tests.helpers import FakeApi, FakeClock, RecordingSleep


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(
        api_key="demo-key",
        min_request_interval_seconds=0,
        backoff_base_seconds=1.0,
        max_retries=3,
        max_daily_api_calls=50,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def scheduler(config, clock, fake_sleep, fake_api, monkeypatch) -> FetchScheduler:
    built = FetchScheduler(config, clock=clock, sleep=fake_sleep)
    monkeypatch.setattr(built.session, "get", fake_api)
    return built


@pytest.fixture
def cache(clock) -> CacheStore:
    return CacheStore(clock=clock)


@pytest.fixture
def orchestrator(config, cache, scheduler) -> SyncOrchestrator:
    return SyncOrchestrator(config, cache=cache, scheduler=scheduler)
