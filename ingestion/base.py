"""
Abstract base class for record sources
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Iterable, AsyncIterable, Union

from core.exceptions import SourceUnavailableError

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]


class RecordSource(ABC):
    """
    Abstract base class for all record sources.

    A source yields the raw records of one resource category as a lazy,
    finite async stream. Any failure to enumerate records is raised as
    SourceUnavailableError and fails the run.
    """

    def __init__(self, source_name: str):
        self.source_name = source_name

    @abstractmethod
    def iter_records(self) -> AsyncIterator[RawRecord]:
        """Yield raw records one at a time."""
        pass

    def unavailable(self, message: str, original_exception: Exception = None, **context) -> SourceUnavailableError:
        """Build a SourceUnavailableError carrying this source's name."""
        return SourceUnavailableError(
            message,
            context={"source_name": self.source_name, **context},
            original_exception=original_exception
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(source_name={self.source_name!r})"


class IterableSource(RecordSource):
    """Records from an in-memory iterable or async iterable."""

    def __init__(self, source_name: str, records: Union[Iterable[Any], AsyncIterable[Any]]):
        super().__init__(source_name)
        self.records = records

    async def iter_records(self) -> AsyncIterator[RawRecord]:
        try:
            if hasattr(self.records, "__aiter__"):
                async for record in self.records:
                    yield record
            else:
                for record in self.records:
                    yield record
        except SourceUnavailableError:
            raise
        except Exception as e:
            raise self.unavailable("Failed to iterate records", original_exception=e)
