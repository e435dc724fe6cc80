"""
Batch ingestion pipeline components.

Modules:
    base: Record source abstraction and the in-memory IterableSource
    batcher: Size-bounded batching of normalized events
    runner: Orchestrator that drives a source through the pipeline
    cli: Command line entry point

Subpackages:
    extractors: Record sources (JSON/CSV files, CLI commands, management API)
    transformers: Record normalization and timestamp parsing
    loaders: HTTP delivery with retry, optional on-disk batch staging

Architecture:
    Each run is a one-shot, stateless pass:

    1. Extract - Pull raw records from the source
    2. Normalize - Wrap each record in an event envelope
    3. Batch - Group events by byte size and count
    4. Deliver - POST each batch with retry and backoff

    One failed batch never aborts the run; only configuration errors and
    source failures do.

Usage:
    from ingestion.base import IterableSource
    from ingestion.runner import PipelineRunner

Example:
    runner = PipelineRunner(config)
    report = await runner.run(IterableSource("compute-instances", records))

    print(report.summary())
"""

__all__ = [
    "RecordSource",
    "IterableSource",
    "Batcher",
    "PipelineRunner",
    "RecordNormalizer",
    "DeliveryClient",
    "JSONFileSource",
    "CSVFileSource",
    "CommandSource",
    "APISource",
]
