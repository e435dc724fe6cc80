"""
Deliver batches to an HTTP event collector with retry logic.

This module provides robust batch delivery with:
- Exponential backoff with jitter for transient failures
- Retry-After support for rate limiting (HTTP 429)
- Immediate failure for permanent client errors (4xx) and redirects
- Per-attempt timeout handling
- All-or-nothing delivery per batch
"""

import asyncio
import logging
import random
import time
from typing import Optional, Callable, Awaitable

import httpx

from core.exceptions import (
    DeliveryError,
    TransientDeliveryError,
    PermanentDeliveryError,
)
from models.base import DeliveryStatus, ErrorKind
from schemas.delivery import Batch, DeliveryResult, EndpointConfig

logger = logging.getLogger(__name__)

NDJSON_CONTENT_TYPE = "application/x-ndjson"


class DeliveryClient:
    """
    Post batches to the ingestion endpoint.

    Features:
    - Bearer-style token authentication
    - Optional TLS verification bypass
    - Retry logic with exponential backoff and jitter
    - Transient/permanent error classification

    Attributes:
        max_attempts: Total attempts per batch, first try included (default: 3)
        retry_delay: Base backoff delay in seconds (default: 1.0)
        max_retry_delay: Upper bound for a single backoff sleep (default: 30.0)
    """

    def __init__(
        self,
        endpoint: EndpointConfig,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        max_retry_delay: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.endpoint = endpoint
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    async def __aenter__(self) -> "DeliveryClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.endpoint.timeout,
                verify=not self.endpoint.tls_insecure
            )
        return self._client

    @property
    def headers(self):
        return {
            "Authorization": self.endpoint.authorization,
            "Content-Type": NDJSON_CONTENT_TYPE,
        }

    def backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        if retry_after is not None:
            return max(0.0, min(self.max_retry_delay, retry_after))
        base = min(self.max_retry_delay, self.retry_delay * (2 ** (attempt - 1)))
        return base * random.uniform(0.5, 1.0)

    async def _post(self, batch: Batch, body: bytes, attempt: int) -> httpx.Response:
        """
        Single delivery attempt.

        Raises:
            TransientDeliveryError: Connection errors, timeouts, 5xx, 429
            PermanentDeliveryError: Other 4xx responses, non-2xx statuses below 400
        """
        url = self.endpoint.url
        context = {"batch_id": batch.batch_id, "url": url, "attempt": attempt}

        try:
            response = await self._get_client().post(
                url,
                content=body,
                headers=self.headers,
                timeout=self.endpoint.timeout
            )

        except httpx.TimeoutException as e:
            raise TransientDeliveryError(
                "Request timed out",
                context={**context, "timeout": self.endpoint.timeout},
                original_exception=e,
                error_kind=ErrorKind.TIMEOUT
            )

        except httpx.TransportError as e:
            raise TransientDeliveryError(
                "Connection error",
                context=context,
                original_exception=e,
                error_kind=ErrorKind.CONNECTION
            )

        status = response.status_code
        context["status_code"] = status

        if status == 429:
            raise TransientDeliveryError(
                "Rate limited by endpoint",
                context=context,
                error_kind=ErrorKind.RATE_LIMITED,
                status_code=status,
                retry_after=_parse_retry_after(response.headers.get("Retry-After"))
            )

        if status >= 500:
            raise TransientDeliveryError(
                f"Server error {status}",
                context={**context, "response_body": response.text[:500]},
                error_kind=ErrorKind.SERVER_ERROR,
                status_code=status
            )

        if status >= 400:
            raise PermanentDeliveryError(
                f"Client error {status}",
                context={**context, "response_body": response.text[:500]},
                error_kind=ErrorKind.CLIENT_ERROR,
                status_code=status
            )

        if not 200 <= status < 300:
            # redirects are not followed; the collector never saw the batch
            raise PermanentDeliveryError(
                f"Unexpected status {status}",
                context={**context, "location": response.headers.get("Location")},
                error_kind=ErrorKind.UNEXPECTED_STATUS,
                status_code=status
            )

        return response

    async def deliver(self, batch: Batch) -> DeliveryResult:
        """
        Deliver a batch, retrying transient failures.

        Never raises for delivery problems; the outcome is in the result.
        Cancellation propagates to the caller.
        """
        body = batch.to_ndjson()
        started = time.monotonic()
        last_error: Optional[DeliveryError] = None
        attempt = 0

        while attempt < self.max_attempts:
            attempt += 1
            logger.debug(
                f"Batch {batch.batch_id}: attempt {attempt}/{self.max_attempts} "
                f"({len(batch)} events, {len(body)} bytes)"
            )

            try:
                response = await self._post(batch, body, attempt)

            except PermanentDeliveryError as e:
                last_error = e
                logger.error(f"Batch {batch.batch_id} rejected: {e.message}")
                break

            except TransientDeliveryError as e:
                last_error = e
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Batch {batch.batch_id} failed after {attempt} attempts: {e.message}"
                    )
                    break
                delay = self.backoff_delay(attempt, e.retry_after)
                logger.warning(
                    f"Batch {batch.batch_id}: {e.message}. "
                    f"Retrying in {delay:.2f} seconds (attempt {attempt}/{self.max_attempts})"
                )
                await self._sleep(delay)
                continue

            except Exception as e:
                last_error = DeliveryError(
                    "Unexpected delivery error",
                    context={"batch_id": batch.batch_id, "url": self.endpoint.url},
                    original_exception=e,
                    error_kind=ErrorKind.UNEXPECTED
                )
                logger.exception(f"Batch {batch.batch_id}: unexpected delivery error")
                break

            logger.info(
                f"Batch {batch.batch_id} delivered: {len(batch)} events, "
                f"{batch.size_bytes} bytes, {attempt} attempt(s)"
            )
            return DeliveryResult(
                batch_id=batch.batch_id,
                status=DeliveryStatus.SUCCESS,
                attempts=attempt,
                status_code=response.status_code,
                event_count=len(batch),
                size_bytes=batch.size_bytes,
                duration_seconds=time.monotonic() - started,
            )

        return DeliveryResult(
            batch_id=batch.batch_id,
            status=DeliveryStatus.FAILURE,
            attempts=attempt,
            error=last_error.error_kind if last_error else ErrorKind.UNEXPECTED,
            error_message=_describe(last_error),
            status_code=last_error.status_code if last_error else None,
            event_count=len(batch),
            size_bytes=batch.size_bytes,
            duration_seconds=time.monotonic() - started,
        )


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Numeric Retry-After only; HTTP-date values fall back to backoff."""
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _describe(error: Optional[DeliveryError]) -> Optional[str]:
    if error is None:
        return None
    if error.original_exception is not None:
        return f"{error.message}: {type(error.original_exception).__name__}: {error.original_exception}"
    return error.message
