"""Configuration for the Firebase Admin SDK.

Uses Pydantic v2 for validation with defaults matching the backend
services' retry and timeout guidance.
"""

from __future__ import annotations

import os
import random
from typing import Annotated, Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_ID_ENV_VARS = ("GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT")
EMULATOR_HOST_ENV_VAR = "FIREBASE_AUTH_EMULATOR_HOST"
CREDENTIALS_ENV_VAR = "GOOGLE_APPLICATION_CREDENTIALS"


class RetryConfig(BaseModel):
    """Retry configuration with exponential backoff."""

    model_config = ConfigDict(frozen=True)

    max_attempts: Annotated[int, Field(ge=1, le=8)] = 8
    initial_delay: Annotated[float, Field(ge=0, le=60)] = 0.5
    backoff_factor: Annotated[float, Field(ge=1.0, le=3.0)] = 1.5
    max_delay: Annotated[float, Field(ge=0, le=300)] = 120.0
    jitter: Annotated[float, Field(ge=0, le=1.0)] = 0.0
    retry_statuses: frozenset[int] = frozenset({429, 500, 503})

    def get_delay(self, retry_index: int) -> float:
        """Calculate delay before the given retry (0-indexed) with exponential backoff."""
        delay = min(
            self.initial_delay * (self.backoff_factor**retry_index),
            self.max_delay,
        )
        if not self.jitter:
            return delay
        jitter_range = delay * self.jitter
        return max(0.0, delay + random.uniform(-jitter_range, jitter_range))  # noqa: S311

    def max_total_delay(self) -> float:
        """Upper bound of the summed backoff over all retries (without jitter)."""
        return sum(self.get_delay(i) for i in range(self.max_attempts - 1))


class TelemetryConfig(BaseModel):
    """OpenTelemetry and structured logging configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    service_name: str = "firebase-admin-sdk"
    trace_requests: bool = True
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate the log level name."""
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"Unsupported log level: {v}"
            raise ValueError(msg)
        return v.upper()


class AppConfig(BaseModel):
    """Main configuration for an SDK app instance."""

    model_config = ConfigDict(frozen=True, validate_default=True)

    project_id: str | None = None
    service_account_id: str | None = None

    # Used by collaborating subsystems only
    database_url: str | None = None
    storage_bucket: str | None = None
    auth_override: dict[str, Any] | None = None

    emulator_host: str | None = None

    # HTTP settings
    timeout: Annotated[float, Field(gt=0, le=300)] = 60.0
    connect_timeout: Annotated[float, Field(gt=0, le=60)] = 10.0

    retry: RetryConfig = Field(default_factory=RetryConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    @field_validator("project_id", "service_account_id", "emulator_host")
    @classmethod
    def validate_non_blank(cls, v: str | None) -> str | None:
        """Treat blank strings as unset."""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def emulator_mode(self) -> bool:
        """Whether auth calls are routed to a local emulator."""
        return self.emulator_host is not None

    def with_overrides(self, **kwargs: Any) -> Self:
        """Create new config with overridden values."""
        data = self.model_dump()
        data.update(kwargs)
        return self.__class__(**data)

    @classmethod
    def from_env(cls, **overrides: Any) -> Self:
        """Create config from environment variables."""
        data: dict[str, Any] = {}
        for var in PROJECT_ID_ENV_VARS:
            if os.environ.get(var):
                data["project_id"] = os.environ[var]
                break
        if os.environ.get(EMULATOR_HOST_ENV_VAR):
            data["emulator_host"] = os.environ[EMULATOR_HOST_ENV_VAR]
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)
