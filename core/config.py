"""
Application configuration using Pydantic Settings
"""

import socket
from typing import Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from core.exceptions import ConfigurationError
from schemas.delivery import EndpointConfig
from schemas.normalized import NormalizationContext


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Ingestion endpoint
    HEC_URL: Optional[str] = None
    HEC_TOKEN: Optional[str] = None
    HEC_AUTH_SCHEME: str = "Bearer"
    HEC_INDEX: Optional[str] = None
    TLS_INSECURE: bool = False
    REQUEST_TIMEOUT: float = 30.0

    # Event routing
    HOST: str = Field(default_factory=socket.gethostname)
    SOURCE_PREFIX: str = "cloud-inventory"
    SOURCETYPE_PREFIX: str = "cloud:inventory"
    SOURCETYPE_MAP: Dict[str, str] = Field(default_factory=dict)
    TIMESTAMP_FIELDS: Dict[str, str] = Field(default_factory=dict)
    TIMESTAMP_FORMATS: Dict[str, str] = Field(default_factory=dict)

    # Batching and delivery
    MAX_BATCH_BYTES: int = 1_000_000
    MAX_BATCH_EVENTS: int = 500
    MAX_RETRIES: int = 3
    RETRY_DELAY: float = 1.0
    MAX_RETRY_DELAY: float = 30.0
    MAX_IN_FLIGHT: int = 1
    FAIL_FAST: bool = False
    STAGE_DIR: Optional[str] = None

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


class PipelineConfig(BaseModel):
    """Immutable per-run configuration handed to the pipeline runner"""

    model_config = ConfigDict(frozen=True)

    endpoint: EndpointConfig
    context: NormalizationContext
    max_batch_bytes: int = Field(1_000_000, gt=0)
    max_batch_events: Optional[int] = Field(500, gt=0)
    max_attempts: int = Field(3, ge=1)
    retry_delay: float = Field(1.0, ge=0)
    max_retry_delay: float = Field(30.0, ge=0)
    max_in_flight: int = Field(1, ge=1)
    fail_fast: bool = False
    stage_dir: Optional[str] = None


def build_pipeline_config(
    settings: Settings,
    resource: str,
    overrides: Optional[Dict[str, Any]] = None
) -> PipelineConfig:
    """
    Build the run configuration for one resource category.

    Args:
        settings: Loaded application settings
        resource: Resource category name (e.g. "compute-instances")
        overrides: Values taken from the command line; None entries are ignored

    Raises:
        ConfigurationError: If required settings are missing or invalid
    """
    values = settings.model_dump()
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    for required in ("HEC_URL", "HEC_TOKEN", "HEC_INDEX"):
        if not values.get(required):
            raise ConfigurationError(
                f"{required} is not configured",
                context={"setting": required, "resource": resource}
            )

    if not resource or not resource.strip():
        raise ConfigurationError("Resource category must not be empty", context={"setting": "resource"})

    sourcetype = (
        values["SOURCETYPE_MAP"].get(resource)
        or f"{values['SOURCETYPE_PREFIX']}:{resource}"
    )

    try:
        return PipelineConfig(
            endpoint=EndpointConfig(
                url=values["HEC_URL"],
                auth_token=values["HEC_TOKEN"],
                auth_scheme=values["HEC_AUTH_SCHEME"],
                tls_insecure=values["TLS_INSECURE"],
                timeout=values["REQUEST_TIMEOUT"],
            ),
            context=NormalizationContext(
                host=values["HOST"],
                source=f"{values['SOURCE_PREFIX']}:{resource}",
                index=values["HEC_INDEX"],
                sourcetype=sourcetype,
                timestamp_field=values["TIMESTAMP_FIELDS"].get(resource),
                timestamp_format=values["TIMESTAMP_FORMATS"].get(resource),
            ),
            max_batch_bytes=values["MAX_BATCH_BYTES"],
            max_batch_events=values["MAX_BATCH_EVENTS"] or None,
            max_attempts=values["MAX_RETRIES"],
            retry_delay=values["RETRY_DELAY"],
            max_retry_delay=values["MAX_RETRY_DELAY"],
            max_in_flight=values["MAX_IN_FLIGHT"],
            fail_fast=values["FAIL_FAST"],
            stage_dir=values["STAGE_DIR"],
        )
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid pipeline configuration",
            context={
                "resource": resource,
                "fields": ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors()),
            },
            original_exception=e
        )


def load_settings(**kwargs) -> Settings:
    """
    Read settings from the environment and `.env`.

    Raises:
        ConfigurationError: If an environment value has the wrong type or shape
    """
    try:
        return Settings(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid environment settings",
            context={"fields": ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())},
            original_exception=e
        )
    except SettingsError as e:
        # unparseable JSON in a mapping setting such as SOURCETYPE_MAP
        raise ConfigurationError(
            "Invalid environment settings",
            context={"detail": str(e)},
            original_exception=e
        )
