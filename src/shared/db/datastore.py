"""Async key/document datastore boundary backed by Supabase.

Pipelines talk to the datastore only through the small ``Datastore``
protocol (upsert/insert/get/find_many/distinct/count) so they can be unit
tested against an in-memory fake. ``SupabaseDatastore`` implements it on
top of the synchronous supabase-py client; every blocking call runs in a
worker thread so the event loop keeps serving other workers.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set

logger = logging.getLogger(__name__)

FILTER_OPS = ("eq", "neq", "in", "ilike")


@dataclass(frozen=True)
class Filter:
    """Single column predicate understood by every datastore implementation."""

    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op {self.op!r}; expected one of {FILTER_OPS}")

    @classmethod
    def eq(cls, column: str, value: Any) -> "Filter":
        return cls(column, "eq", value)

    @classmethod
    def neq(cls, column: str, value: Any) -> "Filter":
        return cls(column, "neq", value)

    @classmethod
    def in_(cls, column: str, values: Iterable[Any]) -> "Filter":
        return cls(column, "in", tuple(values))

    @classmethod
    def ilike(cls, column: str, pattern: str) -> "Filter":
        return cls(column, "ilike", pattern)

    def matches(self, row: Mapping[str, Any]) -> bool:
        """Evaluate the predicate against a row using SQL semantics (NULL never matches)."""
        actual = row.get(self.column)
        if actual is None:
            return False
        if self.op == "eq":
            return actual == self.value
        if self.op == "neq":
            return actual != self.value
        if self.op == "in":
            return actual in self.value
        return _like_regex(self.value).fullmatch(str(actual)) is not None


def _like_regex(pattern: str) -> "re.Pattern[str]":
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class Datastore(Protocol):
    """Operations the ingestion pipelines need from persistent storage."""

    async def upsert(self, collection: str, key: Any, fields: Mapping[str, Any]) -> None: ...

    async def insert(self, collection: str, fields: Mapping[str, Any]) -> None: ...

    async def get(self, collection: str, key: Any) -> Optional[Dict[str, Any]]: ...

    async def find_many(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]: ...

    async def distinct(self, collection: str, column: str, filters: Sequence[Filter] = ()) -> Set[Any]: ...

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int: ...


class SupabaseDatastore:
    """``Datastore`` implementation using PostgREST tables.

    Args:
        client: supabase-py client (see ``get_supabase_client``)
        key_columns: Mapping of table name to its primary key column
        page_size: Rows per ``.range()`` page when reading
        in_chunk_size: Max values per ``in`` filter request
    """

    PAGE_SIZE = 1000
    IN_CHUNK_SIZE = 500

    def __init__(
        self,
        client,
        key_columns: Mapping[str, str],
        *,
        page_size: int = PAGE_SIZE,
        in_chunk_size: int = IN_CHUNK_SIZE,
    ) -> None:
        self.client = client
        self.key_columns = dict(key_columns)
        self.page_size = page_size
        self.in_chunk_size = in_chunk_size

    def _key_column(self, collection: str) -> str:
        try:
            return self.key_columns[collection]
        except KeyError:
            raise ValueError(f"No key column configured for table {collection!r}") from None

    async def upsert(self, collection: str, key: Any, fields: Mapping[str, Any]) -> None:
        key_column = self._key_column(collection)
        row = {**fields, key_column: key}

        def _upsert() -> None:
            self.client.table(collection).upsert(row, on_conflict=key_column).execute()

        await asyncio.to_thread(_upsert)

    async def insert(self, collection: str, fields: Mapping[str, Any]) -> None:
        row = dict(fields)

        def _insert() -> None:
            self.client.table(collection).insert(row).execute()

        await asyncio.to_thread(_insert)

    async def get(self, collection: str, key: Any) -> Optional[Dict[str, Any]]:
        key_column = self._key_column(collection)

        def _get() -> Optional[Dict[str, Any]]:
            response = (
                self.client.table(collection)
                .select("*")
                .eq(key_column, key)
                .limit(1)
                .execute()
            )
            rows = getattr(response, "data", []) or []
            return rows[0] if rows else None

        return await asyncio.to_thread(_get)

    async def find_many(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for chunk in self._chunk_in_filters(filters):
            rows.extend(await asyncio.to_thread(self._select_all, collection, chunk, columns))
        return rows

    async def distinct(self, collection: str, column: str, filters: Sequence[Filter] = ()) -> Set[Any]:
        rows = await self.find_many(collection, filters, columns=[column])
        return {row[column] for row in rows if row.get(column) is not None}

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        total = 0
        for chunk in self._chunk_in_filters(filters):
            total += await asyncio.to_thread(self._count, collection, chunk)
        return total

    def _select_all(
        self,
        collection: str,
        filters: Sequence[Filter],
        columns: Optional[Sequence[str]],
    ) -> List[Dict[str, Any]]:
        select_clause = ",".join(columns) if columns else "*"
        order_column = self.key_columns.get(collection)
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            query = self.client.table(collection).select(select_clause)
            for flt in filters:
                query = _apply_filter(query, flt)
            if order_column:
                query = query.order(order_column, desc=False)
            response = query.range(offset, offset + self.page_size - 1).execute()
            page = getattr(response, "data", []) or []
            rows.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size
        logger.debug("Fetched %d row(s) from %s", len(rows), collection)
        return rows

    def _count(self, collection: str, filters: Sequence[Filter]) -> int:
        query = self.client.table(collection).select("*", count="exact", head=True)
        for flt in filters:
            query = _apply_filter(query, flt)
        response = query.execute()
        return getattr(response, "count", None) or 0

    def _chunk_in_filters(self, filters: Sequence[Filter]) -> List[List[Filter]]:
        """Split the first large ``in`` filter so request URLs stay bounded."""
        filters = list(filters)
        for position, flt in enumerate(filters):
            if flt.op == "in" and len(flt.value) > self.in_chunk_size:
                values = list(flt.value)
                chunks = []
                for start in range(0, len(values), self.in_chunk_size):
                    chunked = Filter.in_(flt.column, values[start:start + self.in_chunk_size])
                    chunks.append(filters[:position] + [chunked] + filters[position + 1:])
                return chunks
        return [filters]


def _apply_filter(query, flt: Filter):
    if flt.op == "eq":
        return query.eq(flt.column, flt.value)
    if flt.op == "neq":
        return query.neq(flt.column, flt.value)
    if flt.op == "in":
        return query.in_(flt.column, list(flt.value))
    return query.ilike(flt.column, flt.value)
