from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import app
from tests.helpers.fakes import ManualClock
from tests.helpers.metrics_stub import StubMetrics


@pytest.fixture
def client() -> Iterator[TestClient]:
    """HTTP client against the app with its lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def _reset_dependency_overrides() -> Iterator[None]:
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def stub_metrics() -> StubMetrics:
    return StubMetrics()


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()
