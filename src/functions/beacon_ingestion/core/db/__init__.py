"""Persistence layer for beacon ingestion."""

from .repository import (
    BLOCKS_TABLE,
    LAST_PROCESSED_SLOT,
    LAST_STATS_FOR_SLOT,
    META_TABLE,
    STATS_TABLE,
    TABLE_KEYS,
    VALIDATORS_TABLE,
    BeaconRepository,
    create_supabase_repository,
)

__all__ = [
    "BLOCKS_TABLE",
    "LAST_PROCESSED_SLOT",
    "LAST_STATS_FOR_SLOT",
    "META_TABLE",
    "STATS_TABLE",
    "TABLE_KEYS",
    "VALIDATORS_TABLE",
    "BeaconRepository",
    "create_supabase_repository",
]
