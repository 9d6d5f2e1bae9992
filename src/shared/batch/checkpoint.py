"""Durable high-water mark checkpoint for resumable batch ingestion."""

from __future__ import annotations

import logging
from typing import Optional

from src.shared.db.datastore import Datastore

logger = logging.getLogger(__name__)


class CheckpointStore:
    """Persists the highest contiguous id whose batch fully completed.

    The value lives in a key/value meta table (``key`` -> ``value`` text),
    read once at startup and written once per committed batch. Commits
    never move the checkpoint backwards.

    Example:
        checkpoint = CheckpointStore(datastore, "last_processed_slot")
        start = (await checkpoint.load() or -1) + 1

        for batch_start, batch_end in batches:
            ...
            await checkpoint.commit(batch_end)
    """

    META_TABLE = "ingestion_meta"

    def __init__(self, datastore: Datastore, key: str, *, table: str = META_TABLE):
        self.datastore = datastore
        self.key = key
        self.table = table
        self._value: Optional[int] = None
        self._loaded = False

    @property
    def value(self) -> Optional[int]:
        """Last loaded or committed value (``None`` if nothing recorded)."""
        return self._value

    async def load(self) -> Optional[int]:
        """Read the checkpoint from the datastore."""
        row = await self.datastore.get(self.table, self.key)
        raw = row.get("value") if row else None
        if raw is None or raw == "":
            self._value = None
        else:
            try:
                self._value = int(raw)
            except (TypeError, ValueError):
                raise ValueError(f"Corrupt checkpoint {self.key}={raw!r}") from None
        self._loaded = True
        logger.info("Loaded checkpoint %s=%s", self.key, self._value)
        return self._value

    async def commit(self, value: int) -> bool:
        """Advance the checkpoint to *value*.

        Returns:
            False (and writes nothing) when *value* would move it backwards
        """
        if not self._loaded:
            await self.load()
        if self._value is not None and value < self._value:
            logger.warning(
                "Refusing to move checkpoint %s backwards (%s -> %s)",
                self.key,
                self._value,
                value,
            )
            return False
        await self.datastore.upsert(self.table, self.key, {"value": str(value)})
        self._value = value
        logger.debug("Checkpoint %s committed at %s", self.key, value)
        return True
