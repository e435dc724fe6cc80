"""
Unit tests for the HTTP delivery client
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from ingestion.loaders.http_delivery import DeliveryClient
from models.base import DeliveryStatus, ErrorKind
from schemas.delivery import Batch


@pytest.fixture
def batch(make_event):
    events = [make_event("a"), make_event("b"), make_event("c")]
    size = sum(len(e.to_json_line().encode()) + 1 for e in events)
    return Batch(batch_id=7, events=events, size_bytes=size)


def _client(endpoint_config, endpoint, max_attempts=3, sleep=None, **kwargs):
    return DeliveryClient(
        endpoint_config,
        max_attempts=max_attempts,
        retry_delay=0.5,
        max_retry_delay=10.0,
        client=endpoint.client(),
        sleep=sleep or AsyncMock(),
        **kwargs
    )


class TestDeliveryClient:
    """Test delivery, retry and classification"""

    @pytest.mark.asyncio
    async def test_success_sends_whole_batch_as_ndjson(self, endpoint_config, fake_endpoint, batch):
        endpoint = fake_endpoint()
        client = _client(endpoint_config, endpoint)

        result = await client.deliver(batch)

        assert result.status == DeliveryStatus.SUCCESS
        assert result.attempts == 1
        assert result.batch_id == 7
        assert result.event_count == 3
        assert len(endpoint.requests) == 1

        request = endpoint.requests[0]
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["Content-Type"] == "application/x-ndjson"

        lines = request.content.decode().splitlines()
        assert [json.loads(line)["event"]["id"] for line in lines] == ["a", "b", "c"]
        assert all(set(json.loads(line)) >= {"host", "source", "sourcetype", "index", "event"} for line in lines)

    @pytest.mark.asyncio
    async def test_custom_auth_scheme(self, endpoint_config, fake_endpoint, batch):
        endpoint = fake_endpoint()
        config = endpoint_config.model_copy(update={"auth_scheme": "Splunk"})
        client = _client(config, endpoint)

        await client.deliver(batch)

        assert endpoint.requests[0].headers["Authorization"] == "Splunk test-token"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [0, 1, 2, 3, 5])
    async def test_transient_failures_then_success(self, endpoint_config, fake_endpoint, batch, failures):
        endpoint = fake_endpoint(script=[503] * failures)
        client = _client(endpoint_config, endpoint, max_attempts=3)

        result = await client.deliver(batch)

        assert result.attempts == min(failures + 1, 3)
        if failures < 3:
            assert result.status == DeliveryStatus.SUCCESS
            assert result.error is None
        else:
            assert result.status == DeliveryStatus.FAILURE
            assert result.error == ErrorKind.SERVER_ERROR
            assert result.status_code == 503

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome,kind", [
        (httpx.ConnectError, ErrorKind.CONNECTION),
        (httpx.ReadTimeout, ErrorKind.TIMEOUT),
        (httpx.ConnectTimeout, ErrorKind.TIMEOUT),
        (500, ErrorKind.SERVER_ERROR),
        (429, ErrorKind.RATE_LIMITED),
    ])
    async def test_transient_errors_are_retried(self, endpoint_config, fake_endpoint, batch, outcome, kind):
        endpoint = fake_endpoint(script=[outcome] * 3)
        client = _client(endpoint_config, endpoint, max_attempts=3)

        result = await client.deliver(batch)

        assert result.status == DeliveryStatus.FAILURE
        assert result.attempts == 3
        assert result.error == kind
        assert len(endpoint.requests) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 404, 413])
    async def test_client_errors_are_not_retried(self, endpoint_config, fake_endpoint, batch, status):
        endpoint = fake_endpoint(script=[status])
        sleep = AsyncMock()
        client = _client(endpoint_config, endpoint, max_attempts=5, sleep=sleep)

        result = await client.deliver(batch)

        assert result.status == DeliveryStatus.FAILURE
        assert result.attempts == 1
        assert result.error == ErrorKind.CLIENT_ERROR
        assert result.status_code == status
        sleep.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [301, 302, 307, 308])
    async def test_non_2xx_below_400_is_not_delivered(self, endpoint_config, fake_endpoint, batch, status):
        endpoint = fake_endpoint(script=[status], headers={"Location": "https://hec.example.com/elsewhere"})
        sleep = AsyncMock()
        client = _client(endpoint_config, endpoint, max_attempts=3, sleep=sleep)

        result = await client.deliver(batch)

        assert result.status == DeliveryStatus.FAILURE
        assert result.error == ErrorKind.UNEXPECTED_STATUS
        assert result.status_code == status
        assert result.attempts == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_backoff_is_exponential_with_jitter(self, endpoint_config, fake_endpoint, batch):
        endpoint = fake_endpoint(script=[502, 502, 502])
        sleep = AsyncMock()
        client = _client(endpoint_config, endpoint, max_attempts=4, sleep=sleep)

        result = await client.deliver(batch)

        assert result.status == DeliveryStatus.SUCCESS
        delays = [call.args[0] for call in sleep.call_args_list]
        assert len(delays) == 3
        for attempt, delay in enumerate(delays, start=1):
            base = 0.5 * 2 ** (attempt - 1)
            assert base * 0.5 <= delay <= base

    @pytest.mark.asyncio
    async def test_retry_after_is_honoured(self, endpoint_config, fake_endpoint, batch):
        endpoint = fake_endpoint(script=[429], headers={"Retry-After": "4"})
        sleep = AsyncMock()
        client = _client(endpoint_config, endpoint, sleep=sleep)

        result = await client.deliver(batch)

        assert result.status == DeliveryStatus.SUCCESS
        assert result.attempts == 2
        sleep.assert_awaited_once_with(4.0)

    def test_backoff_delay_is_capped(self, endpoint_config):
        client = DeliveryClient(endpoint_config, retry_delay=1.0, max_retry_delay=5.0)

        assert client.backoff_delay(10) <= 5.0
        assert client.backoff_delay(1, retry_after=60) == 5.0

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(self, endpoint_config, batch):
        def explode(request):
            raise RuntimeError("boom")

        client = DeliveryClient(
            endpoint_config,
            client=httpx.AsyncClient(transport=httpx.MockTransport(explode)),
            sleep=AsyncMock()
        )

        result = await client.deliver(batch)

        assert result.status == DeliveryStatus.FAILURE
        assert result.error == ErrorKind.UNEXPECTED
        assert "boom" in result.error_message

    def test_rejects_zero_attempts(self, endpoint_config):
        with pytest.raises(ValueError):
            DeliveryClient(endpoint_config, max_attempts=0)

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self, endpoint_config):
        async with DeliveryClient(endpoint_config) as client:
            http_client = client._get_client()
            assert http_client.is_closed is False

        assert http_client.is_closed is True
