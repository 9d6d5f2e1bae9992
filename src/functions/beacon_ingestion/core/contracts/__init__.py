"""Data contracts for beacon ingestion."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

ACTIVE_ONGOING = "active_ongoing"


@dataclass(frozen=True)
class BlockRecord:
    """Fields kept for one proposed block, keyed by slot."""

    slot: int
    proposer_index: Optional[int]
    graffiti: str = ""

    def to_fields(self) -> Dict[str, Any]:
        """Columns written alongside the ``slot`` key."""
        return {"proposer_index": self.proposer_index, "graffiti": self.graffiti}


@dataclass(frozen=True)
class ValidatorRecord:
    """Latest known state of a validator, keyed by validator index."""

    validator_index: int
    status: str
    withdrawal_credentials: str = ""
    withdrawal_address: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_ONGOING

    def to_fields(self) -> Dict[str, Any]:
        return {
            "withdrawal_credentials": self.withdrawal_credentials,
            "withdrawal_address": self.withdrawal_address,
            "last_known_status": self.status,
        }


@dataclass(frozen=True)
class StatsSnapshot:
    """Aggregate counts appended once per head slot; never updated."""

    slot: int
    unique_proposers: int
    newly_active_ongoing: int
    active_ongoing: int
    unique_operators: int
    graffiti_search: str
    run_ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["run_ts"] = self.run_ts.isoformat()
        return row


__all__ = ["ACTIVE_ONGOING", "BlockRecord", "ValidatorRecord", "StatsSnapshot"]
