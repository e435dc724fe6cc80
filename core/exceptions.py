"""
Custom exceptions for the ingestion pipeline with structured error context.

This module provides the exception hierarchy used throughout the pipeline.
Each exception includes context information for debugging and for the
run report.

Exception Hierarchy:
    IngestException (base)
    ├── ConfigurationError
    ├── ExtractionError
    │   └── SourceUnavailableError
    ├── TransformationError
    │   ├── NormalizationWarning
    │   └── DataFormatError
    ├── DeliveryError
    │   ├── TransientDeliveryError
    │   └── PermanentDeliveryError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class IngestException(Exception):
    """
    Base exception for all ingestion-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, batch, status code, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/reporting."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(IngestException):
    """
    Raised before a run starts when required configuration is missing or invalid.

    Context should include:
        - setting: Name of the offending setting
        - resource: Resource category being configured (if applicable)
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(IngestException):
    """Base exception for record extraction failures."""
    pass


class SourceUnavailableError(ExtractionError):
    """
    Raised when a record source cannot be enumerated. Fatal for the run.

    Context should include:
        - source_name: Resource category of the source
        - command / file_path / api_url: What was being read
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(IngestException):
    """Base exception for record transformation failures."""
    pass


class NormalizationWarning(TransformationError):
    """
    Non-fatal normalization problem (unparseable timestamp, malformed record).

    Instances are recorded by the normalizer and reported, never raised by
    the pipeline; the event is still delivered without a time.

    Context should include:
        - field_name: Name of the timestamp field
        - field_value: Value that failed to parse
        - timestamp_format: Format used for parsing
    """
    pass


class DataFormatError(TransformationError):
    """Raised when a record or timestamp value has an unusable shape."""
    pass


# ============================================================================
# Delivery Errors
# ============================================================================

class DeliveryError(IngestException):
    """
    Base exception for batch delivery failures.

    Context should include:
        - batch_id: Batch being delivered
        - url: Endpoint URL
        - status_code: HTTP status code (if applicable)
        - attempt: Attempt number
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        error_kind: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.error_kind = error_kind
        self.status_code = status_code


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(IngestException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Connection failures
    - Server errors (HTTP 5xx)
    """


class NonRetryableError(IngestException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Malformed payloads (HTTP 400)
    - Unknown endpoint (HTTP 404)
    """
    pass


class TransientDeliveryError(RetryableError, DeliveryError):
    """Network, timeout, 5xx and 429 failures that are retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        error_kind: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception, error_kind, status_code)
        self.retry_after = retry_after  # Seconds requested by the server
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class PermanentDeliveryError(NonRetryableError, DeliveryError):
    """4xx failures other than 429; the batch is marked failed immediately."""
    pass
