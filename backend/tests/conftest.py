"""Pytest 公共 fixtures"""

import pytest
from fastapi.testclient import TestClient

from chromagui.api import deps
from chromagui.main import app
from chromagui.services.analytics import AnalyticsCache, AnalyticsService
from chromagui.services.request_log import RequestLogStore
from helpers import FakeChromaClient, FakeClock


@pytest.fixture
def fake_client():
    return FakeChromaClient()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def analytics_service(fake_client, fake_clock):
    return AnalyticsService(fake_client, cache=AnalyticsCache(ttl_seconds=60, clock=fake_clock))


@pytest.fixture
def log_store(monkeypatch):
    store = RequestLogStore(max_logs=100)
    monkeypatch.setattr(deps, "_log_store", store)
    return store


@pytest.fixture
def api(fake_client, analytics_service, log_store):
    """挂载假客户端的 TestClient"""
    app.dependency_overrides[deps.get_client] = lambda: fake_client
    app.dependency_overrides[deps.get_analytics] = lambda: analytics_service
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
