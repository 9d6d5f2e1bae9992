"""Runtime settings for beacon ingestion, loaded from the environment."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from src.shared.utils.config_validator import (
    ConfigurationError,
    require_env,
    validate_float_env,
    validate_int_env,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500
DEFAULT_CONCURRENCY_LIMIT = 250
DEFAULT_RETRY_LIMIT = 3
DEFAULT_RETRY_BASE_DELAY = 0.5
DEFAULT_RECHECK_CONCURRENCY = 350
DEFAULT_STATS_VALIDATOR_CONCURRENCY = 350
DEFAULT_GRAFFITI_SEARCH = "dappnode"
DEFAULT_PROGRESS_LOG_INTERVAL = 25
DEFAULT_HTTP_TIMEOUT = 30.0


class IngestionSettings(BaseModel):
    """Tunables for ingestion, recheck and stats runs."""

    endpoint: str = Field(..., min_length=1, description="Beacon node base URL")
    head_endpoint: Optional[str] = Field(
        default=None,
        description="Beacon node used for the head slot lookup (defaults to endpoint)",
    )
    api_key: Optional[str] = Field(default=None, description="Sent as the dkey query parameter")
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    concurrency_limit: int = Field(default=DEFAULT_CONCURRENCY_LIMIT, ge=1)
    retry_limit: int = Field(default=DEFAULT_RETRY_LIMIT, ge=1)
    retry_base_delay: float = Field(default=DEFAULT_RETRY_BASE_DELAY, ge=0)
    recheck_concurrency: int = Field(default=DEFAULT_RECHECK_CONCURRENCY, ge=1)
    stats_validator_concurrency: int = Field(default=DEFAULT_STATS_VALIDATOR_CONCURRENCY, ge=1)
    graffiti_search: str = Field(default=DEFAULT_GRAFFITI_SEARCH, min_length=1)
    progress_log_interval: int = Field(default=DEFAULT_PROGRESS_LOG_INTERVAL, ge=1)
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT, gt=0)

    @field_validator("endpoint", "head_endpoint")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        return value.rstrip("/") if value else value

    @model_validator(mode="after")
    def _default_head_endpoint(self) -> "IngestionSettings":
        if not self.head_endpoint:
            self.head_endpoint = self.endpoint
        return self

    @property
    def max_concurrency(self) -> int:
        """Largest number of requests any stage may have in flight."""
        return max(self.concurrency_limit, self.recheck_concurrency, self.stats_validator_concurrency)

    def snapshot(self) -> Dict[str, Any]:
        """Return a loggable view with the API key masked."""
        data = self.model_dump()
        if data.get("api_key"):
            data["api_key"] = "***"
        return data


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> IngestionSettings:
    """Build settings from environment variables plus explicit overrides.

    Overrides whose value is ``None`` are ignored, so CLI flags that were not
    passed fall through to the environment.

    Raises:
        ConfigurationError: If a variable is missing or invalid
    """
    overrides = {key: value for key, value in (overrides or {}).items() if value is not None}

    values: Dict[str, Any] = {
        "batch_size": validate_int_env("BATCH_SIZE", DEFAULT_BATCH_SIZE, min_value=1),
        "concurrency_limit": validate_int_env("CONCURRENCY_LIMIT", DEFAULT_CONCURRENCY_LIMIT, min_value=1),
        "retry_limit": validate_int_env("RETRY_LIMIT", DEFAULT_RETRY_LIMIT, min_value=1),
        "retry_base_delay": validate_float_env("RETRY_BASE_DELAY", DEFAULT_RETRY_BASE_DELAY, min_value=0),
        "recheck_concurrency": validate_int_env(
            "RECHECK_CONCURRENCY", DEFAULT_RECHECK_CONCURRENCY, min_value=1
        ),
        "stats_validator_concurrency": validate_int_env(
            "STATS_VALIDATOR_CONCURRENCY", DEFAULT_STATS_VALIDATOR_CONCURRENCY, min_value=1
        ),
        "progress_log_interval": validate_int_env(
            "PROGRESS_LOG_INTERVAL", DEFAULT_PROGRESS_LOG_INTERVAL, min_value=1
        ),
        "http_timeout": validate_float_env("HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
    }

    graffiti = os.getenv("GRAFFITI_SEARCH")
    if graffiti:
        values["graffiti_search"] = graffiti
    head_endpoint = os.getenv("BEACON_HEAD_ENDPOINT")
    if head_endpoint:
        values["head_endpoint"] = head_endpoint
    api_key = os.getenv("BEACON_API_KEY")
    if api_key:
        values["api_key"] = api_key

    if "endpoint" not in overrides:
        values["endpoint"] = require_env("BEACON_ENDPOINT", "Beacon node API base URL")

    values.update(overrides)

    try:
        settings = IngestionSettings(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid ingestion settings: {exc}") from exc

    logger.debug("Loaded ingestion settings: %s", settings.snapshot())
    return settings
