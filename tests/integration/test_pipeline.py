"""
End-to-end pipeline tests against a fake event collector
"""

import json
from unittest.mock import AsyncMock

import pytest

from ingestion.base import IterableSource
from ingestion.loaders.http_delivery import DeliveryClient
from ingestion.runner import PipelineRunner
from models.base import RunState, DeliveryStatus


def _runner(config, endpoint, **kwargs):
    client = DeliveryClient(
        config.endpoint,
        max_attempts=config.max_attempts,
        client=endpoint.client(),
        sleep=AsyncMock(),
    )
    return PipelineRunner(config, delivery_client=client, **kwargs)


@pytest.mark.asyncio
async def test_full_run_delivers_every_record(pipeline_config, fake_endpoint, mock_inventory_records):
    endpoint = fake_endpoint()
    runner = _runner(pipeline_config, endpoint)

    report = await runner.run(IterableSource("compute-instances", mock_inventory_records))

    assert report.state == RunState.COMPLETED
    assert report.status == DeliveryStatus.SUCCESS
    assert report.exit_code == 0
    assert report.records_extracted == 4
    assert report.events_normalized == 4
    assert report.batches_total == 2
    assert report.events_delivered == 4
    # one unparseable and one missing timestamp
    assert report.warning_count == 2

    delivered = endpoint.delivered_events
    assert [e["event"]["id"] for e in delivered] == ["1001", "1002", "1003", "1004"]
    assert delivered[0]["time"] == 1640995200
    assert "time" not in delivered[2]
    assert "time" not in delivered[3]
    assert {e["index"] for e in delivered} == {"inventory"}
    assert {e["sourcetype"] for e in delivered} == {"cloud:inventory:compute-instances"}


@pytest.mark.asyncio
async def test_record_content_is_preserved(pipeline_config, fake_endpoint, mock_inventory_records):
    endpoint = fake_endpoint()

    await _runner(pipeline_config, endpoint).run(IterableSource("compute-instances", mock_inventory_records))

    first = endpoint.delivered_events[0]["event"]
    assert first == mock_inventory_records[0]
    assert endpoint.delivered_events[1]["event"]["labels"] is None


@pytest.mark.asyncio
async def test_empty_source_is_success(pipeline_config, fake_endpoint):
    endpoint = fake_endpoint()

    report = await _runner(pipeline_config, endpoint).run(IterableSource("compute-instances", []))

    assert report.status == DeliveryStatus.SUCCESS
    assert report.batches_total == 0
    assert endpoint.requests == []


@pytest.mark.asyncio
async def test_async_source(pipeline_config, fake_endpoint):
    async def records():
        for i in range(5):
            yield {"id": str(i), "creationTimestamp": 1640995200 + i}

    config = pipeline_config.model_copy(update={
        "context": pipeline_config.context.model_copy(update={"timestamp_format": "epoch"})
    })
    endpoint = fake_endpoint()

    report = await _runner(config, endpoint).run(IterableSource("compute-instances", records()))

    assert report.batches_total == 3
    assert [e["time"] for e in endpoint.delivered_events] == [1640995200 + i for i in range(5)]


@pytest.mark.asyncio
async def test_concurrent_delivery_attributes_results(pipeline_config, routing_endpoint):
    def decide(request):
        ids = [json.loads(line)["event"]["id"] for line in request.content.decode().splitlines()]
        return 500 if "7" in ids else 200

    endpoint = routing_endpoint(decide)
    config = pipeline_config.model_copy(update={"max_in_flight": 3})
    records = [{"id": str(i)} for i in range(10)]

    report = await _runner(config, endpoint).run(IterableSource("compute-instances", records))

    assert report.batches_total == 5
    assert [r.batch_id for r in report.results] == [1, 2, 3, 4, 5]
    assert [r.batch_id for r in report.failed_results] == [4]
    assert report.failed_results[0].attempts == 3
    assert report.status == DeliveryStatus.PARTIAL_FAILURE


@pytest.mark.asyncio
async def test_batches_are_staged(pipeline_config, fake_endpoint, mock_inventory_records, tmp_path):
    config = pipeline_config.model_copy(update={"stage_dir": str(tmp_path)})
    endpoint = fake_endpoint()

    report = await _runner(config, endpoint).run(IterableSource("compute-instances", mock_inventory_records))

    run_dir = tmp_path / str(report.run_id)
    staged = sorted(p.name for p in run_dir.iterdir())
    assert staged == ["batch-00001.ndjson", "batch-00002.ndjson"]
    assert (run_dir / "batch-00001.ndjson").read_bytes() == endpoint.requests[0].content


@pytest.mark.asyncio
async def test_staging_failure_does_not_stop_delivery(pipeline_config, fake_endpoint, mock_inventory_records, tmp_path):
    not_a_directory = tmp_path / "staging"
    not_a_directory.write_text("occupied")
    config = pipeline_config.model_copy(update={"stage_dir": str(not_a_directory)})
    endpoint = fake_endpoint()

    report = await _runner(config, endpoint).run(IterableSource("compute-instances", mock_inventory_records))

    assert report.status == DeliveryStatus.SUCCESS
    assert report.batches_total == 2
    assert report.events_delivered == 4
    assert len(endpoint.requests) == 2
