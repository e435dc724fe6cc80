"""
Pytest configuration and fixtures
"""

import json
from typing import Callable, List, Optional

import httpx
import pytest

from core.config import PipelineConfig
from schemas.delivery import EndpointConfig
from schemas.normalized import NormalizationContext, NormalizedEvent

TEST_HEC_URL = "https://hec.example.com:8088/services/collector/event"
TEST_TOKEN = "test-token"


class RecordingEndpoint:
    """
    Fake event collector for httpx.MockTransport.

    ``script`` holds one entry per request: an int status code or an
    exception class (raised with the request). When the script runs out,
    every further request gets 200.
    """

    def __init__(self, script: Optional[List] = None, headers: Optional[dict] = None):
        self.script = list(script or [])
        self.headers = headers or {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.script.pop(0) if self.script else 200

        if isinstance(outcome, type) and issubclass(outcome, Exception):
            raise outcome("simulated failure", request=request)

        body = {"text": "Success", "code": 0} if outcome < 400 else {"text": "Error", "code": outcome}
        return httpx.Response(outcome, json=body, headers=self.headers)

    @property
    def delivered_events(self) -> List[dict]:
        events = []
        for request in self.requests:
            for line in request.content.decode("utf-8").splitlines():
                events.append(json.loads(line))
        return events

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class RoutingEndpoint(RecordingEndpoint):
    """Fake collector that decides the status code from the request body."""

    def __init__(self, decide: Callable[[httpx.Request], int]):
        super().__init__()
        self.decide = decide

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.decide(request)
        return httpx.Response(status, json={"code": 0 if status < 400 else status})


@pytest.fixture
def context():
    """Normalization context for compute instances"""
    return NormalizationContext(
        host="inventory-host",
        source="cloud-inventory:compute-instances",
        index="inventory",
        sourcetype="cloud:inventory:compute-instances",
        timestamp_field="creationTimestamp",
    )


@pytest.fixture
def endpoint_config():
    return EndpointConfig(url=TEST_HEC_URL, auth_token=TEST_TOKEN, timeout=5.0)


@pytest.fixture
def pipeline_config(context, endpoint_config):
    """Pipeline config with instant retries"""
    return PipelineConfig(
        endpoint=endpoint_config,
        context=context,
        max_batch_bytes=1_000_000,
        max_batch_events=2,
        max_attempts=3,
        retry_delay=0.0,
        max_retry_delay=0.0,
    )


@pytest.fixture
def make_event(context):
    def _make(event_id: str, padding: int = 0) -> NormalizedEvent:
        return NormalizedEvent(
            host=context.host,
            source=context.source,
            sourcetype=context.sourcetype,
            index=context.index,
            event={"id": event_id, "pad": "x" * padding},
        )
    return _make


@pytest.fixture
def mock_inventory_records():
    """Compute instance records as listed by a cloud CLI"""
    return [
        {
            "id": "1001",
            "name": "web-1",
            "zone": "us-central1-a",
            "status": "RUNNING",
            "creationTimestamp": "2022-01-01T00:00:00.000Z",
            "labels": {"env": "prod"},
        },
        {
            "id": "1002",
            "name": "web-2",
            "zone": "us-central1-b",
            "status": "TERMINATED",
            "creationTimestamp": "2022-01-02T12:30:00.123456789-08:00",
            "labels": None,
        },
        {
            "id": "1003",
            "name": "batch-1",
            "zone": "europe-west1-d",
            "status": "RUNNING",
            "creationTimestamp": "not a timestamp",
        },
        {
            "id": "1004",
            "name": "batch-2",
            "zone": "europe-west1-d",
            "status": "STOPPING",
        },
    ]


@pytest.fixture
def fake_endpoint():
    """Factory for scripted fake collectors"""
    return RecordingEndpoint


@pytest.fixture
def routing_endpoint():
    """Factory for body-routed fake collectors"""
    return RoutingEndpoint
