"""
File-based record sources: JSON / NDJSON exports and CSV files
"""

import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Union

import pandas as pd

from ingestion.base import RecordSource, RawRecord

logger = logging.getLogger(__name__)

# Keys under which list endpoints and CLIs wrap their records
ENVELOPE_KEYS = ("items", "data", "results", "resources")


def parse_json_records(text: str) -> List[Any]:
    """
    Parse CLI/API JSON output into a list of records.

    Accepts a JSON array, a single object (unwrapped when it holds a list
    under one of ENVELOPE_KEYS) or newline-delimited JSON.

    Raises:
        ValueError: If the text is neither JSON nor NDJSON
    """
    text = text.strip()
    if not text:
        return []

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        records = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON on line {line_number}: {e.msg}") from e
        return records

    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ENVELOPE_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
        return [data]
    return [data]


class JSONFileSource(RecordSource):
    """
    Read records from a JSON file, e.g. the saved output of
    ``<cloud-cli> ... list --format=json``.
    """

    def __init__(self, source_name: str, file_path: Union[str, Path], encoding: str = "utf-8"):
        super().__init__(source_name)
        self.file_path = Path(file_path)
        self.encoding = encoding

    async def iter_records(self) -> AsyncIterator[RawRecord]:
        if not self.file_path.exists():
            raise self.unavailable(f"File not found: {self.file_path}", file_path=str(self.file_path))

        logger.info(f"Reading JSON records from {self.file_path}")

        try:
            records = parse_json_records(self.file_path.read_text(encoding=self.encoding))
        except (OSError, UnicodeDecodeError, ValueError) as e:
            raise self.unavailable(
                f"Cannot read records from {self.file_path}",
                original_exception=e,
                file_path=str(self.file_path)
            )

        logger.info(f"Read {len(records)} records from {self.file_path}")
        for record in records:
            yield record


class CSVFileSource(RecordSource):
    """
    Read records from a CSV export.

    Supports:
    - Type inference
    - Header normalization
    - Empty cells as null
    """

    def __init__(self, source_name: str, file_path: Union[str, Path], normalize_headers: bool = True):
        super().__init__(source_name)
        self.file_path = Path(file_path)
        self.normalize_headers = normalize_headers

    def _read(self) -> List[Dict[str, Any]]:
        df = pd.read_csv(self.file_path)

        if self.normalize_headers:
            # strip whitespace, lowercase
            df.columns = df.columns.str.strip().str.lower().str.replace(" ", "_")

        # Python scalars and None instead of numpy types and NaN
        df = df.astype(object).where(pd.notnull(df), None)
        return df.to_dict(orient="records")

    async def iter_records(self) -> AsyncIterator[RawRecord]:
        if not self.file_path.exists():
            raise self.unavailable(f"CSV file not found: {self.file_path}", file_path=str(self.file_path))

        logger.info(f"Reading CSV from {self.file_path}")

        try:
            records = self._read()
        except pd.errors.EmptyDataError:
            records = []
        except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
            raise self.unavailable(
                f"Cannot parse CSV file {self.file_path}",
                original_exception=e,
                file_path=str(self.file_path)
            )

        logger.info(f"Read {len(records)} records from CSV")
        for record in records:
            yield record
