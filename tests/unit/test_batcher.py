"""
Unit tests for the batcher
"""

import math

import pytest

from ingestion.batcher import Batcher


def _drain(batcher, events):
    batches = []
    for event in events:
        batch = batcher.add(event)
        if batch is not None:
            batches.append(batch)
    tail = batcher.flush()
    if tail is not None:
        batches.append(tail)
    return batches


class TestBatcher:
    """Test batch completion rules"""

    def test_count_limit(self, make_event):
        events = [make_event(str(i)) for i in range(7)]
        batcher = Batcher(max_bytes=1_000_000, max_events=3)

        batches = _drain(batcher, events)

        assert [len(b) for b in batches] == [3, 3, 1]
        assert len(batches) == math.ceil(7 / 3)

    def test_order_preserved_across_batches(self, make_event):
        events = [make_event(str(i)) for i in range(10)]
        batcher = Batcher(max_bytes=1_000_000, max_events=4)

        batches = _drain(batcher, events)
        flattened = [e for b in batches for e in b.events]

        assert flattened == events

    def test_byte_limit_starts_new_batch(self, make_event):
        event = make_event("a", padding=100)
        size = Batcher.event_size(event)
        batcher = Batcher(max_bytes=size * 2 + size // 2, max_events=None)

        assert batcher.add(make_event("a", padding=100)) is None
        assert batcher.add(make_event("b", padding=100)) is None
        completed = batcher.add(make_event("c", padding=100))

        assert completed is not None
        assert [e.event["id"] for e in completed.events] == ["a", "b"]
        assert batcher.pending == 1

    def test_batches_never_exceed_byte_limit(self, make_event):
        events = [make_event(str(i), padding=i * 7) for i in range(50)]
        batcher = Batcher(max_bytes=600, max_events=None)

        batches = _drain(batcher, events)

        assert all(b.size_bytes <= 600 for b in batches)
        assert sum(len(b) for b in batches) == 50

    def test_oversized_event_travels_alone(self, make_event):
        batcher = Batcher(max_bytes=200, max_events=None)

        first = batcher.add(make_event("small"))
        second = batcher.add(make_event("huge", padding=1000))
        third = batcher.add(make_event("after"))

        assert first is None
        assert [e.event["id"] for e in second.events] == ["small"]
        assert [e.event["id"] for e in third.events] == ["huge"]
        assert third.events[0].event["pad"] == "x" * 1000

    def test_size_bytes_matches_body(self, make_event):
        batcher = Batcher(max_bytes=1_000_000, max_events=3)

        batches = _drain(batcher, [make_event(str(i), padding=i) for i in range(5)])

        for batch in batches:
            assert batch.size_bytes == len(batch.to_ndjson())

    def test_batch_ids_are_sequential(self, make_event):
        batcher = Batcher(max_bytes=1_000_000, max_events=1)

        batches = _drain(batcher, [make_event(str(i)) for i in range(4)])

        assert [b.batch_id for b in batches] == [1, 2, 3, 4]

    def test_flush_empty_returns_none(self):
        assert Batcher().flush() is None

    def test_flush_resets_state(self, make_event):
        batcher = Batcher(max_bytes=1_000_000, max_events=10)
        batcher.add(make_event("a"))

        batch = batcher.flush()

        assert len(batch) == 1
        assert batcher.pending == 0
        assert batcher.flush() is None

    @pytest.mark.parametrize("max_bytes,max_events", [(0, 10), (100, 0)])
    def test_invalid_limits(self, max_bytes, max_events):
        with pytest.raises(ValueError):
            Batcher(max_bytes=max_bytes, max_events=max_events)
