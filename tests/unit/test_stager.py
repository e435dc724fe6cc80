"""
Unit tests for on-disk batch staging
"""

import json
import uuid

from ingestion.loaders.disk_stager import BatchStager
from schemas.delivery import Batch


def test_stage_writes_request_body(tmp_path, make_event):
    events = [make_event("a"), make_event("b")]
    batch = Batch(batch_id=3, events=events, size_bytes=0)
    run_id = uuid.uuid4()

    path = BatchStager(tmp_path).stage(run_id, batch)

    assert path == tmp_path / str(run_id) / "batch-00003.ndjson"
    assert path.read_bytes() == batch.to_ndjson()
    assert [json.loads(line)["event"]["id"] for line in path.read_text().splitlines()] == ["a", "b"]


def test_stage_keeps_runs_apart(tmp_path, make_event):
    stager = BatchStager(tmp_path / "staging")
    batch = Batch(batch_id=1, events=[make_event("a")], size_bytes=0)

    first = stager.stage("run-1", batch)
    second = stager.stage("run-2", batch)

    assert first.parent != second.parent
    assert first.exists() and second.exists()
