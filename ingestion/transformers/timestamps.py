"""
Timestamp parsing for resource records.

Supported formats:
    iso8601: ISO-8601 with optional fractional seconds of any precision
             (nanosecond values from cloud APIs are truncated to microseconds),
             "Z" or numeric UTC offsets
    epoch:   numeric seconds since the Unix epoch (NaN and infinity rejected)
    other:   any strptime pattern, e.g. "%Y-%m-%d %H:%M:%S"

Naive values are interpreted as UTC.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from core.exceptions import DataFormatError

ISO8601 = "iso8601"
EPOCH = "epoch"

_ISO_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2})?)"
    r"(?:[.,](?P<frac>\d+))?"
    r"(?P<tz>Z|z|[+-]\d{2}(?::?\d{2})?)?$"
)


def _parse_iso8601(value: str) -> datetime:
    text = value.strip()
    match = _ISO_RE.match(text)
    if not match:
        # Date-only and other shapes fromisoformat understands
        return datetime.fromisoformat(text)

    base = match.group("base")
    frac = match.group("frac")
    tz = match.group("tz")

    if frac:
        base += "." + frac[:6].ljust(6, "0")

    if tz is None or tz in ("Z", "z"):
        base += "+00:00"
    elif len(tz) == 3:
        base += tz + ":00"
    elif ":" not in tz:
        base += f"{tz[:3]}:{tz[3:]}"
    else:
        base += tz

    return datetime.fromisoformat(base)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_timestamp(value: Any, timestamp_format: Optional[str] = None) -> float:
    """
    Convert a record field to epoch seconds.

    Raises:
        DataFormatError: If the value cannot be parsed with the given format
    """
    fmt = timestamp_format or ISO8601

    if isinstance(value, datetime):
        return _as_utc(value).timestamp()

    try:
        if fmt == EPOCH:
            if isinstance(value, bool):
                raise TypeError("boolean is not a timestamp")
            seconds = float(value)
            if not math.isfinite(seconds):
                raise ValueError("epoch value must be finite")
            return seconds

        if not isinstance(value, str):
            raise TypeError(f"expected string, got {type(value).__name__}")

        if fmt == ISO8601:
            dt = _parse_iso8601(value)
        else:
            dt = datetime.strptime(value.strip(), fmt)

        return _as_utc(dt).timestamp()

    except (ValueError, TypeError, OverflowError) as e:
        raise DataFormatError(
            f"Cannot parse timestamp {value!r}",
            context={"field_value": value, "timestamp_format": fmt},
            original_exception=e
        )
