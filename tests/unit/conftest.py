from datetime import timedelta

import pytest

from services.rival_audit_service.config import Settings
from services.rival_audit_service.lifecycle import AuditLifecycleManager
from services.rival_audit_service.store.memory import InMemoryAuditStore
from site_fixtures import FrozenClock


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemoryAuditStore()


@pytest.fixture
def lifecycle(store, clock):
    return AuditLifecycleManager(store, ttl=timedelta(minutes=30), clock=clock)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        rabbitmq_url=None,
        cleanup_in_process=False,
        crawl_time_budget_s=30.0,
        fetch_timeout_s=5.0,
        enable_metrics=False,
    )
