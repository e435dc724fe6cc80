"""
Management API record source with authentication, pagination and retry logic.

This module provides API extraction with:
- Exponential backoff retry logic for transient failures
- Rate limiting protection (HTTP 429, Retry-After)
- Page-token, has_next and page-number pagination
- Records streamed page by page
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from ingestion.base import RecordSource, RawRecord
from ingestion.extractors.file_extractor import ENVELOPE_KEYS

logger = logging.getLogger(__name__)


class APISource(RecordSource):
    """
    List resources from a REST management API.

    Features:
    - Bearer token authentication
    - Pagination support
    - Retry logic with exponential backoff
    - Timeout handling

    Attributes:
        max_retries: Maximum number of attempts per page (default: 3)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 30.0)
        page_size: Requested page size, also used to detect the last page
            of un-enveloped list responses (default: 100)
    """

    def __init__(
        self,
        source_name: str,
        api_url: str,
        api_key: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        page_size: int = 100,
        max_pages: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(source_name)
        self.api_url = api_url
        self.api_key = api_key
        self.params = dict(params or {})
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.page_size = page_size
        self.max_pages = max_pages
        self._client = client

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_with_retry(self, client: httpx.AsyncClient, params: Dict[str, Any]) -> httpx.Response:
        """
        GET one page, retrying timeouts, connection errors, 5xx and 429.

        Raises:
            SourceUnavailableError: On non-retryable errors or exhausted retries
        """
        last_exception = None

        for attempt in range(self.max_retries):
            delay = self.retry_delay * (2 ** attempt)

            try:
                logger.debug(f"Request attempt {attempt + 1}/{self.max_retries} to {self.api_url}")

                response = await client.get(
                    self.api_url,
                    headers=self.headers,
                    params=params,
                    timeout=self.timeout
                )

                if response.status_code == 429:
                    retry_after = response.headers.get("Retry-After")
                    if retry_after and retry_after.isdigit():
                        delay = float(retry_after)
                    last_exception = httpx.HTTPStatusError(
                        "Rate limited", request=response.request, response=response
                    )
                    logger.warning(f"Rate limited. Retrying after {delay} seconds")

                elif response.status_code >= 500:
                    last_exception = httpx.HTTPStatusError(
                        f"Server error {response.status_code}", request=response.request, response=response
                    )
                    logger.warning(
                        f"Server error {response.status_code}. "
                        f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                    )

                elif response.status_code >= 400:
                    raise self.unavailable(
                        f"API request failed with status {response.status_code}",
                        api_url=self.api_url,
                        status_code=response.status_code,
                        response_body=response.text[:500]
                    )

                else:
                    return response

            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_exception = e
                logger.warning(f"{type(e).__name__} from {self.api_url}. Retrying in {delay} seconds")

            if attempt < self.max_retries - 1:
                await asyncio.sleep(delay)

        raise self.unavailable(
            f"API unreachable after {self.max_retries} attempts",
            original_exception=last_exception,
            api_url=self.api_url,
            retry_count=self.max_retries
        )

    def _parse_page(self, data: Any) -> Tuple[List[Any], bool, Optional[str]]:
        """Return the page's records, whether more pages follow, and the next page token."""
        if isinstance(data, list):
            return data, len(data) >= self.page_size, None

        if not isinstance(data, dict):
            return [], False, None

        records: List[Any] = []
        for key in ENVELOPE_KEYS:
            if isinstance(data.get(key), list):
                records = data[key]
                break

        token = data.get("nextPageToken")
        if token:
            return records, True, token
        return records, bool(data.get("has_next")), None

    async def iter_records(self) -> AsyncIterator[RawRecord]:
        params = {**self.params, "page": 1, "per_page": self.page_size}
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        total = 0
        pages = 0

        try:
            while True:
                logger.info(f"Fetching page {pages + 1} from {self.api_url}")
                response = await self._get_with_retry(client, params)
                pages += 1

                try:
                    data = response.json()
                except ValueError as e:
                    raise self.unavailable(
                        "Failed to parse JSON response",
                        original_exception=e,
                        api_url=self.api_url,
                        page=pages,
                        response_body=response.text[:500]
                    )

                records, has_more, page_token = self._parse_page(data)
                for record in records:
                    yield record
                total += len(records)

                if not records or not has_more:
                    break
                if self.max_pages is not None and pages >= self.max_pages:
                    logger.warning(f"Stopping after max_pages={self.max_pages}")
                    break

                if page_token:
                    params["pageToken"] = page_token
                else:
                    params["page"] += 1
        finally:
            if self._client is None:
                await client.aclose()

        logger.info(f"Fetched {total} records from {self.source_name} ({pages} pages)")
