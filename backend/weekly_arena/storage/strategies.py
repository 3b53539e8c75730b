"""Degrading fetch ladder over a `DocumentStore`.

Each strategy implements the same ``fetch(store, query)`` contract. The planner
turns a request into an ordered list of strategies and `ResilientFetcher`
walks it top-down, moving on when a tier raises a store error or comes back
empty:

1. IndexedQuery               filters + order + limit on the server
2. ScanQuery(server_filter)   filters on the server, sort/limit in memory
3. ScanQuery(full scan)       read the whole collection, filter/sort/limit in memory
4. KeyLookupQuery             point reads of ``{weekId}_{uid}`` document ids
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar, Literal, Sequence

from .exceptions import (
    IndexUnavailable,
    InvalidQuery,
    NotFound,
    PermissionDenied,
    StoreError,
)
from .query import DocumentStore, FieldFilter, OrderBy, Query, Record, apply_query

logger = logging.getLogger(__name__)

Tier = Literal["indexed", "filtered_scan", "full_scan", "key_lookup"]


@dataclass(frozen=True)
class IndexedQuery:
    tier: ClassVar[Tier] = "indexed"

    async def fetch(self, store: DocumentStore, query: Query) -> list[Record]:
        return await store.run_query(query)


@dataclass(frozen=True)
class ScanQuery:
    server_filter: bool = True

    @property
    def tier(self) -> Tier:
        return "filtered_scan" if self.server_filter else "full_scan"

    async def fetch(self, store: DocumentStore, query: Query) -> list[Record]:
        if self.server_filter:
            rows = await store.run_query(query.without_order())
            return apply_query(rows, query, filtered=True)
        rows = await store.run_query(query.unfiltered())
        return apply_query(rows, query)


@dataclass(frozen=True)
class KeyLookupQuery:
    """Direct reads of deterministic document ids.

    Unreadable or missing candidates are skipped; only a denial of every
    candidate surfaces as `PermissionDenied`.
    """

    doc_ids: tuple[str, ...]
    tier: ClassVar[Tier] = "key_lookup"

    async def fetch(self, store: DocumentStore, query: Query) -> list[Record]:
        rows: list[Record] = []
        denied = 0
        for doc_id in self.doc_ids:
            try:
                record = await store.get_document(query.collection, doc_id)
            except PermissionDenied:
                denied += 1
                continue
            except NotFound:
                continue
            if record is not None:
                rows.append(record)

        if self.doc_ids and denied == len(self.doc_ids):
            raise PermissionDenied(f"All key lookups denied on {query.collection}")
        return apply_query(rows, query)


Strategy = IndexedQuery | ScanQuery | KeyLookupQuery


def week_user_keys(week_ids: Sequence[str], uid: str) -> tuple[str, ...]:
    """Candidate ``{weekId}_{uid}`` ids for per-user, per-week collections."""
    return tuple(f"{week_id}_{uid}" for week_id in week_ids if week_id)


def plan_strategies(query: Query, key_candidates: Sequence[str] | None = None) -> list[Strategy]:
    plan: list[Strategy] = []
    if query.order_by is not None:
        plan.append(IndexedQuery())
    if query.filters or query.order_by is not None:
        plan.append(ScanQuery(server_filter=True))
    plan.append(ScanQuery(server_filter=False))
    if key_candidates:
        plan.append(KeyLookupQuery(doc_ids=tuple(key_candidates)))
    return plan


@dataclass
class FallbackEvent:
    collection: str
    tier: Tier
    reason: str
    next_tier: Tier | None


@dataclass
class FetchResult:
    rows: list[Record]
    served_by: Tier | None
    fallbacks: list[FallbackEvent] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.fallbacks)


class ResilientFetcher:
    """Runs the degradation ladder against an explicitly passed-in store."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def fetch(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order: OrderBy | None = None,
        limit: int | None = None,
        key_candidates: Sequence[str] | None = None,
    ) -> list[Record]:
        """Fetch an ordered list of records; never raises for denial or missing index."""
        query = Query(collection=collection, filters=tuple(filters), order_by=order, limit=limit)
        result = await self.fetch_with_trace(query, key_candidates=key_candidates)
        return result.rows

    async def fetch_with_trace(
        self,
        query: Query,
        key_candidates: Sequence[str] | None = None,
    ) -> FetchResult:
        plan = plan_strategies(query, key_candidates)
        fallbacks: list[FallbackEvent] = []

        for i, strategy in enumerate(plan):
            next_tier = plan[i + 1].tier if i + 1 < len(plan) else None
            try:
                rows = await strategy.fetch(self.store, query)
            except PermissionDenied as e:
                reason = f"permission denied: {e}"
            except IndexUnavailable as e:
                reason = f"index unavailable: {e}"
            except InvalidQuery as e:
                reason = f"invalid query: {e}"
            except NotFound:
                reason = "not found"
            except StoreError as e:
                reason = f"store error: {e}"
            else:
                if rows:
                    logger.debug(f"{query.describe()} served by {strategy.tier} ({len(rows)} rows)")
                    return FetchResult(rows=rows, served_by=strategy.tier, fallbacks=fallbacks)
                reason = "empty result"

            fallbacks.append(
                FallbackEvent(
                    collection=query.collection,
                    tier=strategy.tier,
                    reason=reason,
                    next_tier=next_tier,
                )
            )
            if next_tier is not None:
                logger.warning(
                    f"Fetch fallback on {query.collection}: {strategy.tier} -> {next_tier} ({reason})"
                )

        logger.info(f"{query.describe()} returned no rows after {len(plan)} tiers")
        return FetchResult(rows=[], served_by=None, fallbacks=fallbacks)
