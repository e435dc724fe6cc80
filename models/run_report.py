from collections import Counter
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
import uuid

from pydantic import BaseModel, Field

from models.base import RunState, DeliveryStatus, ErrorKind
from schemas.delivery import DeliveryResult

# Warnings kept verbatim in the report; the rest are only counted
MAX_WARNING_SAMPLES = 20

EXIT_CODES = {
    DeliveryStatus.SUCCESS: 0,
    DeliveryStatus.FAILURE: 1,
    DeliveryStatus.PARTIAL_FAILURE: 2,
    DeliveryStatus.CANCELLED: 130,
}
EXIT_RUN_FAILED = 3
EXIT_CONFIGURATION_ERROR = 4


class RunReport(BaseModel):
    """
    Aggregate outcome of one pipeline run.

    Purpose:
    - Per-batch delivery audit trail
    - Run-level status and exit code
    - Normalization warning summary

    Lifecycle: created when the run starts, appended to while batches are
    delivered, finalized once when the run ends.
    """

    run_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    source_name: str
    state: RunState = RunState.IDLE
    status: Optional[DeliveryStatus] = None

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    records_extracted: int = 0
    events_normalized: int = 0
    warning_count: int = 0
    warnings: List[Dict[str, Any]] = Field(default_factory=list)

    results: List[DeliveryResult] = Field(default_factory=list)
    cancelled: bool = False
    error: Optional[Dict[str, Any]] = None

    def add_result(self, result: DeliveryResult) -> None:
        if self.completed_at is not None:
            raise RuntimeError(f"Run {self.run_id} is already finalized")
        self.results.append(result)

    def add_warning(self, warning: Dict[str, Any]) -> None:
        self.warning_count += 1
        if len(self.warnings) < MAX_WARNING_SAMPLES:
            self.warnings.append(warning)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def batches_total(self) -> int:
        return len(self.results)

    @property
    def batches_succeeded(self) -> int:
        return sum(1 for r in self.results if r.status == DeliveryStatus.SUCCESS)

    @property
    def batches_failed(self) -> int:
        return sum(1 for r in self.results if r.status == DeliveryStatus.FAILURE)

    @property
    def failed_results(self) -> List[DeliveryResult]:
        return [r for r in self.results if r.status == DeliveryStatus.FAILURE]

    @property
    def events_delivered(self) -> int:
        return sum(r.event_count for r in self.results if r.status == DeliveryStatus.SUCCESS)

    def error_kinds(self) -> Dict[str, int]:
        """Count of error kinds across non-successful batches."""
        counts = Counter(
            ErrorKind(r.error).value for r in self.results
            if r.error is not None and r.status != DeliveryStatus.SUCCESS
        )
        return dict(counts)

    def compute_status(self) -> DeliveryStatus:
        if self.cancelled:
            return DeliveryStatus.CANCELLED
        if self.state == RunState.FAILED or self.error is not None:
            return DeliveryStatus.FAILURE
        succeeded = self.batches_succeeded
        failed = len(self.results) - succeeded

        if failed == 0:
            return DeliveryStatus.SUCCESS
        if succeeded == 0:
            return DeliveryStatus.FAILURE
        return DeliveryStatus.PARTIAL_FAILURE

    def finalize(self, state: RunState) -> "RunReport":
        """Freeze the report: order results by batch id and compute status."""
        if self.completed_at is not None:
            return self
        self.results.sort(key=lambda r: r.batch_id)
        self.state = state
        self.status = self.compute_status()
        self.completed_at = datetime.now(timezone.utc)
        self.duration_seconds = (self.completed_at - self.started_at).total_seconds()
        return self

    @property
    def exit_code(self) -> int:
        if self.state == RunState.FAILED and not self.cancelled:
            return EXIT_RUN_FAILED
        return EXIT_CODES.get(self.status or self.compute_status(), 1)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def summary(self) -> str:
        """Human-readable run summary"""
        status = self.status or self.compute_status()
        lines = [
            f"Run {self.run_id} ({self.source_name}): {status.value} [{self.state.value}]",
            f"  records extracted:  {self.records_extracted}",
            f"  events normalized:  {self.events_normalized}",
            f"  events delivered:   {self.events_delivered}",
            f"  batches:            {self.batches_total} total, "
            f"{self.batches_succeeded} succeeded, {self.batches_failed} failed",
            f"  warnings:           {self.warning_count}",
        ]
        other = self.batches_total - self.batches_succeeded - self.batches_failed
        if other:
            lines.append(f"  not delivered:      {other} (cancelled or skipped)")
        kinds = self.error_kinds()
        if kinds:
            kinds_str = ", ".join(f"{k}={v}" for k, v in sorted(kinds.items()))
            lines.append(f"  error kinds:        {kinds_str}")
        for result in self.failed_results:
            lines.append(
                f"  batch {result.batch_id} failed after {result.attempts} attempt(s): "
                f"{result.error_message or result.error}"
            )
        if self.error:
            lines.append(f"  run error:          {self.error.get('message')}")
        if self.duration_seconds is not None:
            lines.append(f"  duration:           {self.duration_seconds:.2f}s")
        return "\n".join(lines)

    def to_summary_dict(self) -> Dict[str, Any]:
        """Structured run summary"""
        data = self.model_dump(mode="json")
        data["status"] = (self.status or self.compute_status()).value
        data["batches_total"] = self.batches_total
        data["batches_succeeded"] = self.batches_succeeded
        data["batches_failed"] = self.batches_failed
        data["events_delivered"] = self.events_delivered
        data["error_kinds"] = self.error_kinds()
        data["exit_code"] = self.exit_code
        return data
