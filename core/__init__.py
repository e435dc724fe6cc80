"""
Core utilities and configuration for the inventory ingestion pipeline.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Settings from environment variables and the per-run PipelineConfig
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import load_settings, build_pipeline_config
    from core.exceptions import SourceUnavailableError, ConfigurationError
    from core.logging import setup_logging

Example:
    setup_logging()
    config = build_pipeline_config(load_settings(), "compute-instances")
"""

__all__ = [
    "load_settings",
    "Settings",
    "PipelineConfig",
    "build_pipeline_config",
    "setup_logging",
    # Exceptions
    "IngestException",
    "ConfigurationError",
    "ExtractionError",
    "SourceUnavailableError",
    "TransformationError",
    "NormalizationWarning",
    "DataFormatError",
    "DeliveryError",
    "RetryableError",
    "NonRetryableError",
    "TransientDeliveryError",
    "PermanentDeliveryError",
]
