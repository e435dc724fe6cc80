# ============================================================================
# File: ingestion/runner.py
# Description: Batch ingestion orchestrator (extract, normalize, batch, deliver)
# ============================================================================
"""
Pipeline Runner - drives one record source through the ingestion pipeline.

This module provides run orchestration with:
- Pull-based extraction from a record source
- Best-effort normalization (warnings never abort a run)
- Size-bounded batching
- Sequential or bounded-concurrency delivery
- Failure isolation between batches (optional fail-fast)
- Cooperative cancellation that never loses track of a batch
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from core.config import PipelineConfig
from core.exceptions import SourceUnavailableError
from ingestion.base import RecordSource
from ingestion.batcher import Batcher
from ingestion.loaders.disk_stager import BatchStager
from ingestion.loaders.http_delivery import DeliveryClient
from ingestion.transformers.normalizer import RecordNormalizer
from models.base import RunState, DeliveryStatus, ErrorKind
from models.run_report import RunReport
from schemas.delivery import Batch, DeliveryResult

logger = logging.getLogger(__name__)

_END = object()


class PipelineRunner:
    """
    Batch ingestion orchestrator

    Responsibilities:
    - Pull records from the source until it is exhausted
    - Normalize and batch every record
    - Dispatch completed batches to the delivery client
    - Record exactly one DeliveryResult per batch
    - Produce the final RunReport
    """

    def __init__(
        self,
        config: PipelineConfig,
        delivery_client: Optional[DeliveryClient] = None,
        stager: Optional[BatchStager] = None
    ):
        self.config = config
        self._delivery_client = delivery_client
        self.stager = stager
        if self.stager is None and config.stage_dir:
            self.stager = BatchStager(config.stage_dir)

        self.state = RunState.IDLE
        self.report: Optional[RunReport] = None
        self._cancel_requested = False
        self._failed_fast = False
        self._in_flight: Dict[int, Tuple[asyncio.Task, Batch]] = {}
        self._seen_states = set()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop starting new deliveries; in-flight ones are allowed to finish."""
        if not self._cancel_requested:
            logger.warning("Cancellation requested; no further batches will be delivered")
        self._cancel_requested = True

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def _stop_status(self) -> Optional[DeliveryStatus]:
        if self._cancel_requested:
            return DeliveryStatus.CANCELLED
        if self._failed_fast:
            return DeliveryStatus.SKIPPED
        return None

    def _transition(self, state: RunState) -> None:
        if state == self.state:
            return
        if state not in self._seen_states:
            logger.debug(f"Run state: {self.state.value} -> {state.value}")
            self._seen_states.add(state)
        self.state = state
        if self.report is not None:
            self.report.state = state

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, source: RecordSource) -> RunReport:
        """
        Run the full pipeline for one source.

        Source enumeration failures do not raise; they end the run in the
        FAILED state with the error recorded on the report. Cancellation of
        the calling task propagates after the report is finalized.

        Returns:
            The finalized RunReport
        """
        self.report = report = RunReport(source_name=source.source_name)
        self.state = RunState.IDLE
        self._failed_fast = False
        self._in_flight = {}
        self._seen_states = set()

        normalizer = RecordNormalizer(self.config.context)
        batcher = Batcher(
            max_bytes=self.config.max_batch_bytes,
            max_events=self.config.max_batch_events
        )
        owns_client = self._delivery_client is None
        client = self._delivery_client or DeliveryClient(
            self.config.endpoint,
            max_attempts=self.config.max_attempts,
            retry_delay=self.config.retry_delay,
            max_retry_delay=self.config.max_retry_delay
        )
        semaphore = asyncio.Semaphore(self.config.max_in_flight)
        final_state = RunState.COMPLETED

        logger.info(f"Starting run {report.run_id} for {source.source_name}")
        records = source.iter_records()

        try:
            while self._stop_status() is None:
                # --------------------------------------------------
                # EXTRACT
                # --------------------------------------------------
                self._transition(RunState.EXTRACTING)
                raw = await self._next_record(source, records)
                if raw is _END:
                    break
                report.records_extracted += 1

                # --------------------------------------------------
                # NORMALIZE
                # --------------------------------------------------
                self._transition(RunState.NORMALIZING)
                event = normalizer.normalize(raw)
                report.events_normalized += 1
                for warning in normalizer.drain_warnings():
                    report.add_warning(warning)

                # --------------------------------------------------
                # BATCH / DELIVER
                # --------------------------------------------------
                self._transition(RunState.BATCHING)
                batch = batcher.add(event)
                if batch is not None:
                    await self._dispatch(batch, client, semaphore)

            batch = batcher.flush()
            if batch is not None:
                self._transition(RunState.BATCHING)
                await self._dispatch(batch, client, semaphore)

            await self._drain()

        except SourceUnavailableError as e:
            logger.error(f"Run {report.run_id} failed: {e}")
            report.error = e.to_dict()
            final_state = RunState.FAILED
            await self._drain()

        except asyncio.CancelledError:
            logger.warning(f"Run {report.run_id} cancelled")
            self._cancel_requested = True
            for task, _ in self._in_flight.values():
                task.cancel()
            await self._drain()
            self._record_pending(batcher)
            report.cancelled = True
            self._transition(RunState.FAILED)
            report.finalize(RunState.FAILED)
            raise

        finally:
            aclose = getattr(records, "aclose", None)
            if aclose is not None:
                await aclose()
            if owns_client:
                await client.aclose()

        self._record_pending(batcher)
        if self._cancel_requested:
            report.cancelled = True
            final_state = RunState.FAILED

        self._transition(final_state)
        report.finalize(final_state)

        log = logger.info if report.status == DeliveryStatus.SUCCESS else logger.warning
        log(
            f"Run {report.run_id} finished: {report.status.value} - "
            f"records={report.records_extracted}, batches={report.batches_total}, "
            f"failed={report.batches_failed}, warnings={report.warning_count}"
        )
        return report

    async def _next_record(self, source: RecordSource, records) -> Any:
        try:
            return await records.__anext__()
        except StopAsyncIteration:
            return _END
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise SourceUnavailableError(
                "Record source failed during enumeration",
                context={"source_name": source.source_name},
                original_exception=e
            )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _dispatch(self, batch: Batch, client: DeliveryClient, semaphore: asyncio.Semaphore) -> None:
        """Start delivering a batch once a delivery slot is free."""
        if self._stop_status() is not None:
            self._record_undelivered(batch)
            return

        try:
            await semaphore.acquire()
        except asyncio.CancelledError:
            self.report.add_result(self._undelivered_result(batch, DeliveryStatus.CANCELLED))
            raise

        if self._stop_status() is not None:
            semaphore.release()
            self._record_undelivered(batch)
            return

        if self.stager is not None:
            try:
                self.stager.stage(self.report.run_id, batch)
            except OSError as e:
                logger.warning(f"Batch {batch.batch_id}: staging failed, delivering anyway: {e}")

        self._transition(RunState.DELIVERING)
        task = asyncio.create_task(self._deliver(batch, client, semaphore))
        self._in_flight[batch.batch_id] = (task, batch)

    async def _deliver(self, batch: Batch, client: DeliveryClient, semaphore: asyncio.Semaphore) -> None:
        try:
            result = await client.deliver(batch)
        except asyncio.CancelledError:
            self.report.add_result(self._undelivered_result(batch, DeliveryStatus.CANCELLED))
            raise
        except Exception as e:
            logger.exception(f"Batch {batch.batch_id}: delivery raised unexpectedly")
            result = DeliveryResult(
                batch_id=batch.batch_id,
                status=DeliveryStatus.FAILURE,
                error=ErrorKind.UNEXPECTED,
                error_message=f"{type(e).__name__}: {e}",
                event_count=len(batch),
                size_bytes=batch.size_bytes,
            )
        finally:
            semaphore.release()
            self._in_flight.pop(batch.batch_id, None)

        self.report.add_result(result)

        if result.status == DeliveryStatus.FAILURE:
            logger.error(f"Batch {batch.batch_id} failed ({result.error.value}): {result.error_message}")
            if self.config.fail_fast and not self._failed_fast:
                logger.warning("fail_fast is set; remaining batches will be skipped")
                self._failed_fast = True

    async def _drain(self) -> None:
        """Wait for every in-flight delivery to record its result."""
        while self._in_flight:
            pending = dict(self._in_flight)
            await asyncio.gather(*[task for task, _ in pending.values()], return_exceptions=True)
            for batch_id, (_, batch) in pending.items():
                # a task cancelled before its first step never reaches _deliver
                if self._in_flight.pop(batch_id, None) is not None:
                    self.report.add_result(self._undelivered_result(batch, DeliveryStatus.CANCELLED))

    # ------------------------------------------------------------------
    # Undelivered batches
    # ------------------------------------------------------------------

    @staticmethod
    def _undelivered_result(batch: Batch, status: DeliveryStatus) -> DeliveryResult:
        return DeliveryResult(
            batch_id=batch.batch_id,
            status=status,
            attempts=0,
            error=ErrorKind.CANCELLED if status == DeliveryStatus.CANCELLED else None,
            event_count=len(batch),
            size_bytes=batch.size_bytes,
        )

    def _record_undelivered(self, batch: Batch) -> None:
        status = self._stop_status() or DeliveryStatus.CANCELLED
        logger.info(f"Batch {batch.batch_id} not delivered ({status.value})")
        self.report.add_result(self._undelivered_result(batch, status))

    def _record_pending(self, batcher: Batcher) -> None:
        """Account for events still buffered when the run stopped early."""
        if self.report.completed_at is not None:
            return
        batch = batcher.flush()
        if batch is not None:
            self._record_undelivered(batch)
