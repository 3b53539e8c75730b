"""Query description shared by every store back end and fetch strategy.

A `Query` is plain data: the in-memory store evaluates it directly, the
Firestore client translates it into a `structuredQuery`, and the scan
strategies reuse `matches` / `sort_records` to replay it client-side.
"""

from __future__ import annotations

from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

from .models import parse_instant

Record = dict[str, Any]

MAX_IN_VALUES = 10


class FieldFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: Literal["==", "in"] = "=="
    value: Any = None

    def test(self, record: Record) -> bool:
        actual = record.get(self.field)
        if self.op == "in":
            return actual in list(self.value or [])
        return actual == self.value


class OrderBy(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    descending: bool = False


class Query(BaseModel):
    model_config = ConfigDict(frozen=True)

    collection: str
    filters: tuple[FieldFilter, ...] = Field(default_factory=tuple)
    order_by: OrderBy | None = None
    limit: int | None = None

    def without_order(self) -> Query:
        return self.model_copy(update={"order_by": None, "limit": None})

    def unfiltered(self) -> Query:
        return Query(collection=self.collection)

    def describe(self) -> str:
        parts = [self.collection]
        for f in self.filters:
            shown = f"[{len(f.value)} values]" if f.op == "in" else repr(f.value)
            parts.append(f"{f.field} {f.op} {shown}")
        if self.order_by:
            direction = "desc" if self.order_by.descending else "asc"
            parts.append(f"order by {self.order_by.field} {direction}")
        if self.limit is not None:
            parts.append(f"limit {self.limit}")
        return " | ".join(parts)


class DocumentStore(Protocol):
    """Async read-only document store.

    Implementations raise the `weekly_arena.storage.exceptions` family and
    return records as dicts that include the document id under ``"id"``
    (unless the stored document already carries one).
    """

    async def run_query(self, query: Query) -> list[Record]: ...

    async def get_document(self, collection: str, doc_id: str) -> Record | None: ...


def matches(record: Record, filters: tuple[FieldFilter, ...]) -> bool:
    return all(f.test(record) for f in filters)


def _sort_key(value: Any) -> tuple[int, Any]:
    # Bare numbers and instants share one scale: epoch milliseconds.
    if isinstance(value, (bool, int, float)):
        return (0, float(value))
    try:
        instant = parse_instant(value)
    except (TypeError, ValueError, OverflowError):
        instant = None
    if instant is not None:
        return (0, instant.timestamp() * 1000)
    return (1, str(value))


def sort_records(records: list[Record], order: OrderBy | None) -> list[Record]:
    """Stable in-memory sort; records without the key always go last."""
    if order is None:
        return list(records)

    present = [r for r in records if r.get(order.field) is not None]
    missing = [r for r in records if r.get(order.field) is None]
    present.sort(key=lambda r: _sort_key(r[order.field]), reverse=order.descending)
    return present + missing


def apply_query(records: list[Record], query: Query, *, filtered: bool = False) -> list[Record]:
    """Filter (unless already filtered), sort and limit records in memory."""
    rows = records if filtered else [r for r in records if matches(r, query.filters)]
    rows = sort_records(rows, query.order_by)
    if query.limit is not None:
        rows = rows[: query.limit]
    return rows
