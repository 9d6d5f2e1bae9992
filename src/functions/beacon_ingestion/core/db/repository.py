"""Table-level persistence for blocks, validators, meta values and stats."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

from src.shared.db.connection import SupabaseConfig, get_supabase_client
from src.shared.db.datastore import Datastore, Filter, SupabaseDatastore

from ..contracts import ACTIVE_ONGOING, BlockRecord, StatsSnapshot, ValidatorRecord
from ..errors import PersistenceError, StartupError

logger = logging.getLogger(__name__)

BLOCKS_TABLE = "beacon_blocks"
VALIDATORS_TABLE = "beacon_validators"
META_TABLE = "ingestion_meta"
STATS_TABLE = "graffiti_stats_history"

TABLE_KEYS = {
    BLOCKS_TABLE: "slot",
    VALIDATORS_TABLE: "validator_index",
    META_TABLE: "key",
}

LAST_PROCESSED_SLOT = "last_processed_slot"
LAST_STATS_FOR_SLOT = "last_stats_for_slot"


class BeaconRepository:
    """Domain reads and writes over a ``Datastore``.

    All writes are upserts keyed by slot / validator index, so replaying
    any item yields the same stored row.
    """

    def __init__(self, datastore: Datastore) -> None:
        self.datastore = datastore

    async def ping(self) -> None:
        """Fail fast when the datastore cannot be reached.

        Raises:
            StartupError: If a trivial query fails
        """
        try:
            await self.datastore.count(META_TABLE)
        except Exception as exc:
            raise StartupError(f"Datastore unreachable: {exc}") from exc

    async def upsert_block(self, record: BlockRecord) -> None:
        try:
            await self.datastore.upsert(BLOCKS_TABLE, record.slot, record.to_fields())
        except Exception as exc:
            raise PersistenceError(BLOCKS_TABLE, record.slot, exc) from exc

    async def upsert_validator(self, record: ValidatorRecord) -> None:
        try:
            await self.datastore.upsert(VALIDATORS_TABLE, record.validator_index, record.to_fields())
        except Exception as exc:
            raise PersistenceError(VALIDATORS_TABLE, record.validator_index, exc) from exc

    async def get_meta(self, key: str) -> Optional[str]:
        row = await self.datastore.get(META_TABLE, key)
        return row.get("value") if row else None

    async def set_meta(self, key: str, value: str) -> None:
        await self.datastore.upsert(META_TABLE, key, {"value": value})

    async def find_graffiti_proposers(self, search: str) -> Set[int]:
        """Distinct proposer indices of blocks whose graffiti contains *search*."""
        rows = await self.datastore.find_many(
            BLOCKS_TABLE,
            [Filter.ilike("graffiti", f"%{search}%")],
            columns=["proposer_index"],
        )
        return {int(row["proposer_index"]) for row in rows if row.get("proposer_index") is not None}

    async def existing_validator_ids(self, validator_ids: Iterable[int]) -> Set[int]:
        ids = list(validator_ids)
        if not ids:
            return set()
        rows = await self.datastore.find_many(
            VALIDATORS_TABLE,
            [Filter.in_("validator_index", ids)],
            columns=["validator_index"],
        )
        return {int(row["validator_index"]) for row in rows}

    async def all_validator_ids(self) -> List[int]:
        rows = await self.datastore.find_many(VALIDATORS_TABLE, columns=["validator_index"])
        return sorted(int(row["validator_index"]) for row in rows)

    async def distinct_withdrawal_addresses(self, validator_ids: Iterable[int]) -> Set[str]:
        ids = list(validator_ids)
        if not ids:
            return set()
        return await self.datastore.distinct(
            VALIDATORS_TABLE,
            "withdrawal_address",
            [Filter.in_("validator_index", ids), Filter.neq("withdrawal_address", "")],
        )

    async def count_active_validators(self) -> int:
        return await self.datastore.count(
            VALIDATORS_TABLE,
            [Filter.eq("last_known_status", ACTIVE_ONGOING)],
        )

    async def insert_stats_snapshot(self, snapshot: StatsSnapshot) -> None:
        await self.datastore.insert(STATS_TABLE, snapshot.to_row())
        logger.debug("Stored stats snapshot for slot %s", snapshot.slot)


def create_supabase_repository(config: Optional[SupabaseConfig] = None) -> BeaconRepository:
    """Build a repository over the configured Supabase project."""
    client = get_supabase_client(config)
    return BeaconRepository(SupabaseDatastore(client, TABLE_KEYS))
