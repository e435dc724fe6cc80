"""
Run-level models and shared enums.

Models:
    base: Shared enums (RunState, DeliveryStatus, ErrorKind)
    run_report: Aggregate outcome of one pipeline run

Usage:
    from models.base import RunState, DeliveryStatus, ErrorKind
    from models.run_report import RunReport

Example:
    report = RunReport(source_name="compute-instances")
    report.add_result(result)
    report.finalize(RunState.COMPLETED)
    print(report.summary())
"""

__all__ = [
    "RunState",
    "DeliveryStatus",
    "ErrorKind",
    "RunReport",
]
