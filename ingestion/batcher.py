"""
Group normalized events into size-bounded batches
"""

import logging
from typing import List, Optional

from schemas.delivery import Batch
from schemas.normalized import NormalizedEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 1_000_000
DEFAULT_MAX_EVENTS = 500


class Batcher:
    """
    Accumulate events and emit batches bounded by byte size and event count.

    A batch is completed when:
    - the next event would push it past ``max_bytes`` (the event starts a new batch)
    - it reaches ``max_events``
    - ``flush()`` is called

    An event larger than ``max_bytes`` is never truncated; it travels alone.
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_BYTES, max_events: Optional[int] = DEFAULT_MAX_EVENTS):
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if max_events is not None and max_events <= 0:
            raise ValueError("max_events must be positive")

        self.max_bytes = max_bytes
        self.max_events = max_events

        self._events: List[NormalizedEvent] = []
        self._size = 0
        self._next_id = 1
        self.batches_emitted = 0

    @staticmethod
    def event_size(event: NormalizedEvent) -> int:
        """Bytes the event occupies in the request body, newline included."""
        return len(event.to_json_line().encode("utf-8")) + 1

    @property
    def pending(self) -> int:
        return len(self._events)

    def add(self, event: NormalizedEvent) -> Optional[Batch]:
        """Add an event; returns the batch completed by this call, if any."""
        size = self.event_size(event)
        completed = None

        if self._events and self._size + size > self.max_bytes:
            completed = self._complete()

        if size > self.max_bytes:
            logger.warning(
                f"Event of {size} bytes exceeds batch limit of {self.max_bytes} bytes; "
                f"sending it in its own batch"
            )

        self._events.append(event)
        self._size += size

        # Fewer than max_events events are pending between calls
        if self.max_events is not None and len(self._events) >= self.max_events:
            completed = self._complete()

        return completed

    def flush(self) -> Optional[Batch]:
        """Complete the current partial batch, if any."""
        if not self._events:
            return None
        return self._complete()

    def _complete(self) -> Batch:
        batch = Batch(batch_id=self._next_id, events=self._events, size_bytes=self._size)
        self._next_id += 1
        self._events = []
        self._size = 0
        self.batches_emitted += 1

        logger.debug(f"Batch {batch.batch_id} complete: {len(batch)} events, {batch.size_bytes} bytes")
        return batch
