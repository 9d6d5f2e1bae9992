"""Hand-written fakes shared by the test suites."""

from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from src.functions.beacon_ingestion.core.contracts import ValidatorRecord
from src.functions.beacon_ingestion.core.errors import HeadSlotError
from src.shared.batch import TransientFetchError
from src.shared.db.datastore import Filter


class FakeDatastore:
    """In-memory ``Datastore`` with the same upsert/filter semantics as Supabase."""

    def __init__(self, key_columns: Mapping[str, str]):
        self.key_columns = dict(key_columns)
        self.keyed: Dict[str, Dict[Any, Dict[str, Any]]] = defaultdict(dict)
        self.appended: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.failing_keys: Set[tuple] = set()
        self.unreachable = False
        self.upsert_calls: List[tuple] = []

    def rows(self, collection: str) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.keyed[collection].values()] + [
            dict(row) for row in self.appended[collection]
        ]

    async def upsert(self, collection, key, fields):
        self.upsert_calls.append((collection, key))
        if (collection, key) in self.failing_keys:
            raise RuntimeError(f"write rejected for {collection}[{key}]")
        key_column = self.key_columns[collection]
        existing = self.keyed[collection].get(key, {})
        self.keyed[collection][key] = {**existing, **fields, key_column: key}

    async def insert(self, collection, fields):
        self.appended[collection].append(dict(fields))

    async def get(self, collection, key) -> Optional[Dict[str, Any]]:
        row = self.keyed[collection].get(key)
        return dict(row) if row is not None else None

    async def find_many(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        matched = [row for row in self.rows(collection) if all(f.matches(row) for f in filters)]
        if columns:
            matched = [{column: row.get(column) for column in columns} for row in matched]
        return matched

    async def distinct(self, collection, column, filters=()):
        rows = await self.find_many(collection, filters, columns=[column])
        return {row[column] for row in rows if row.get(column) is not None}

    async def count(self, collection, filters=()):
        if self.unreachable:
            raise ConnectionError("datastore offline")
        return len(await self.find_many(collection, filters))


def make_block(proposer_index: int, graffiti: str = "") -> Dict:
    raw = graffiti.encode("ascii").ljust(32, b"\x00")
    return {
        "message": {
            "slot": "0",
            "proposer_index": str(proposer_index),
            "body": {"graffiti": "0x" + raw.hex()},
        }
    }


def make_validator(index: int, status: str = "active_ongoing", address: str = "") -> ValidatorRecord:
    credentials = "0x010000000000000000000000" + address[2:] if address else "0x00" + "ab" * 31
    return ValidatorRecord(
        validator_index=index,
        status=status,
        withdrawal_credentials=credentials,
        withdrawal_address=address,
    )


class FakeBeaconClient:
    """Beacon node stand-in: absent keys behave like a 404."""

    def __init__(
        self,
        blocks: Optional[Dict[int, Dict]] = None,
        validators: Optional[Dict[int, ValidatorRecord]] = None,
        head_slot: Optional[int] = None,
    ):
        self.blocks = dict(blocks or {})
        self.validators = dict(validators or {})
        self.head_slot = head_slot
        self.failing_slots = set()
        self.failing_validators = set()
        self.flaky: Counter = Counter()
        self.block_calls: Counter = Counter()
        self.validator_calls: Counter = Counter()
        self.on_block = None

    def fail_slots(self, slots: Iterable[int]) -> None:
        self.failing_slots.update(slots)

    async def get_block(self, slot: int):
        self.block_calls[slot] += 1
        if self.on_block is not None:
            self.on_block(slot)
        if slot in self.failing_slots:
            raise TransientFetchError(f"HTTP status 500 at slot={slot}", status_code=500)
        if self.flaky[("slot", slot)] > 0:
            self.flaky[("slot", slot)] -= 1
            raise TransientFetchError(f"HTTP status 503 at slot={slot}", status_code=503)
        return self.blocks.get(slot)

    async def get_validator(self, validator_index: int):
        self.validator_calls[validator_index] += 1
        if validator_index in self.failing_validators:
            raise TransientFetchError(f"HTTP status 500 at validator={validator_index}", status_code=500)
        return self.validators.get(validator_index)

    async def get_head_slot(self) -> int:
        if self.head_slot is None:
            raise HeadSlotError("No data from /eth/v1/beacon/headers")
        return self.head_slot


