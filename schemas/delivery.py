"""
Pydantic schemas for batches, endpoint settings and delivery outcomes
"""

from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.base import DeliveryStatus, ErrorKind
from schemas.normalized import NormalizedEvent


class EndpointConfig(BaseModel):
    """Where and how batches are posted"""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1)
    auth_token: str = Field(..., min_length=1, repr=False)
    auth_scheme: str = "Bearer"
    tls_insecure: bool = False
    timeout: float = Field(30.0, gt=0)

    @field_validator("url")
    @classmethod
    def check_scheme(cls, v):
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v

    @property
    def authorization(self) -> str:
        return f"{self.auth_scheme} {self.auth_token}"


class Batch(BaseModel):
    """
    Ordered group of events delivered in one request.

    ``size_bytes`` is the exact length of the NDJSON body.
    """

    batch_id: int = Field(..., ge=1)
    events: List[NormalizedEvent] = Field(default_factory=list)
    size_bytes: int = 0

    def __len__(self) -> int:
        return len(self.events)

    def to_ndjson(self) -> bytes:
        """One event per line, each line newline-terminated."""
        return "".join(f"{e.to_json_line()}\n" for e in self.events).encode("utf-8")


class DeliveryResult(BaseModel):
    """Outcome of delivering one batch"""

    batch_id: int
    status: DeliveryStatus
    attempts: int = Field(0, ge=0)
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    event_count: int = 0
    size_bytes: int = 0
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == DeliveryStatus.SUCCESS
