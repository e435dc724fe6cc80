"""
Pydantic schemas for normalized ingestion events
"""

import json
from types import MappingProxyType
from typing import Optional, Dict, Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NormalizationContext(BaseModel):
    """
    Routing metadata applied to every record of one resource category.

    Ensures:
    - index and sourcetype are present and non-blank
    - the context cannot change once a run has started
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    index: str = Field(..., min_length=1)
    sourcetype: str = Field(..., min_length=1)
    timestamp_field: Optional[str] = None
    timestamp_format: Optional[str] = None

    @field_validator("host", "source", "index", "sourcetype")
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("timestamp_field", "timestamp_format")
    @classmethod
    def empty_as_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


def freeze(value: Any) -> Any:
    """Read-only copy of a JSON-like value: mappings become proxies, lists tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Plain dict/list copy of a frozen value, ready for ``json.dumps``."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


class NormalizedEvent(BaseModel):
    """
    Canonical envelope wrapping one raw record with routing metadata.

    The model is frozen and ``event`` is stored read-only (nested mappings
    as ``MappingProxyType``, sequences as tuples), so neither the envelope
    nor the record body can change after normalization.
    """

    model_config = ConfigDict(frozen=True)

    host: str
    source: str
    sourcetype: str
    index: str
    time: Optional[float] = Field(None, allow_inf_nan=False)
    event: Mapping[str, Any]

    @field_validator("event", mode="after")
    @classmethod
    def read_only(cls, v):
        return freeze(v)

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation; ``time`` is omitted when absent."""
        payload: Dict[str, Any] = {}
        if self.time is not None:
            payload["time"] = self.time
        payload["host"] = self.host
        payload["source"] = self.source
        payload["sourcetype"] = self.sourcetype
        payload["index"] = self.index
        payload["event"] = thaw(self.event)
        return payload

    def to_json_line(self) -> str:
        """Serialize as a single strict JSON line (no trailing newline)."""
        return json.dumps(self.to_payload(), separators=(",", ":"), default=str, allow_nan=False)
