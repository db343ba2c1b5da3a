"""Shared fixtures: isolated store, pipeline, fake push channels and API client."""

import json

import pytest
from fastapi.testclient import TestClient

from vigil.api.app import create_app
from vigil.config import GeneratorConfig, StoreConfig, VigilConfig
from vigil.core.broadcaster import Broadcaster
from vigil.core.pipeline import IngestionPipeline
from vigil.core.store import VigilStore


class FakeChannel:
    """Records decoded events; can be told to fail every send."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.closed = False
        self.events: list[dict] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("channel gone")
        self.events.append(json.loads(data))

    async def close(self) -> None:
        self.closed = True

    @property
    def kinds(self) -> list[str]:
        return [e["type"] for e in self.events]


@pytest.fixture
def store(tmp_path):
    with VigilStore(tmp_path / "test.db") as s:
        yield s


@pytest.fixture
def app_record(store):
    return store.create_application(name="checkout-service", status="healthy", uptime=100.0)


@pytest.fixture
def broadcaster():
    return Broadcaster(send_timeout=1.0)


@pytest.fixture
def pipeline(store, broadcaster):
    return IngestionPipeline(store, broadcaster)


@pytest.fixture
def test_config(tmp_path):
    return VigilConfig(
        project_path=tmp_path,
        store=StoreConfig(seed_on_startup=False),
        generator=GeneratorConfig(enabled=False),
    )


@pytest.fixture
def client(test_config):
    with TestClient(create_app(test_config)) as c:
        yield c


@pytest.fixture
def registered(client):
    """Register checkout-service through the API and return its id."""
    resp = client.post("/api/ingest/register", json={"name": "checkout-service"})
    assert resp.status_code == 201
    return resp.json()["applicationId"]


def metric_payload(application_id: str, **overrides) -> dict:
    payload = {
        "applicationId": application_id,
        "responseTime": 250.0,
        "throughput": 1200.0,
        "errorRate": 0.5,
        "successRate": 99.5,
    }
    payload.update(overrides)
    return payload


def error_payload(application_id: str, **overrides) -> dict:
    payload = {
        "applicationId": application_id,
        "errorType": "TimeoutException",
        "message": "upstream timed out",
        "endpoint": "/api/orders",
    }
    payload.update(overrides)
    return payload


def alert_payload(application_id: str, **overrides) -> dict:
    payload = {
        "applicationId": application_id,
        "alertType": "high_response_time",
        "severity": "critical",
        "message": "high response time threshold exceeded",
        "threshold": 500.0,
        "currentValue": 612.5,
    }
    payload.update(overrides)
    return payload
