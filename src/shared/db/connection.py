"""Supabase client construction.

One supabase-py client is built per process and shared by every worker;
its PostgREST session keeps a pooled httpx connection underneath, so
concurrent ``asyncio.to_thread`` calls do not need extra locking.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client, ClientOptions, create_client

from src.shared.utils.config_validator import ConfigurationError, validate_int_env

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "public"
DEFAULT_TIMEOUT_SECONDS = 30


@dataclass
class SupabaseConfig:
    """Where and how to reach the Supabase project.

    Attributes:
        url: Project URL
        key: Service role (or anon) API key
        schema: Postgres schema holding the ingestion tables
        timeout_seconds: PostgREST request timeout
    """
    url: str
    key: str
    schema: str = DEFAULT_SCHEMA
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_env(
        cls,
        url_var: str = "SUPABASE_URL",
        key_var: str = "SUPABASE_KEY",
        schema_var: str = "SUPABASE_SCHEMA",
        timeout_var: str = "SUPABASE_TIMEOUT",
    ) -> SupabaseConfig:
        """Read the connection settings from environment variables.

        Raises:
            ConfigurationError: If the URL or key is unset, or the timeout is invalid
        """
        missing = [name for name in (url_var, key_var) if not os.getenv(name)]
        if missing:
            raise ConfigurationError(
                f"Missing Supabase settings: {', '.join(missing)}. "
                f"Set them in your .env file or environment."
            )

        return cls(
            url=os.environ[url_var],
            key=os.environ[key_var],
            schema=os.getenv(schema_var) or DEFAULT_SCHEMA,
            timeout_seconds=validate_int_env(timeout_var, DEFAULT_TIMEOUT_SECONDS, min_value=1),
        )


def get_supabase_client(config: Optional[SupabaseConfig] = None) -> Client:
    """Build a client for *config*, or for the environment when omitted.

    Example:
        >>> client = get_supabase_client()
        >>> client.table("ingestion_meta").select("value").eq("key", "last_processed_slot").execute()
    """
    config = config or SupabaseConfig.from_env()
    logger.debug("Connecting to Supabase at %s (schema=%s)", config.url, config.schema)

    options = ClientOptions(
        schema=config.schema,
        postgrest_client_timeout=config.timeout_seconds,
    )
    return create_client(config.url, config.key, options=options)
