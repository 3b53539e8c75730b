"""Analytics snapshots: fetch once per request, derive many views in memory.

`SnapshotLoader` is the only component that talks to the store. Each loader
method fetches the collections a request needs concurrently, waits for every
fetch to finish its fallback ladder, and returns an immutable-by-convention
`AnalyticsSnapshot` that the pure analytics functions consume.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from weekly_arena.config import RankingConfig

from .exceptions import PermissionDenied, StoreError
from .market import MarketData
from .models import (
    Allocation,
    Balance,
    MalformedRecord,
    User,
    Week,
    WeekStatus,
    WeeklyBalance,
    parse_records,
)
from .query import DocumentStore, FieldFilter, OrderBy, Query, Record
from .strategies import FetchResult, ResilientFetcher, week_user_keys

logger = logging.getLogger(__name__)

WEEKS = "weeks"
ALLOCATIONS = "allocations"
WEEKLY_BALANCES = "weeklyBalances"
BALANCES = "balances"
USERS = "users"
MARKET_DATA = "marketData"


@dataclass
class AnalyticsSnapshot:
    weeks: list[Week] = field(default_factory=list)
    allocations: list[Allocation] = field(default_factory=list)
    weekly_balances: list[WeeklyBalance] = field(default_factory=list)
    balances: list[Balance] = field(default_factory=list)
    users: list[User] = field(default_factory=list)
    traces: dict[str, FetchResult] = field(default_factory=dict)

    def display_names(self) -> dict[str, str]:
        return {user.uid: user.display_name for user in self.users}

    def display_name(self, uid: str) -> str:
        for user in self.users:
            if user.uid == uid:
                return user.display_name
        return uid

    @property
    def degraded_collections(self) -> list[str]:
        return [name for name, trace in self.traces.items() if trace.degraded]


def _chunks(values: Sequence[str], size: int) -> list[list[str]]:
    return [list(values[i : i + size]) for i in range(0, len(values), size)]


class SnapshotLoader:
    def __init__(self, store: DocumentStore, config: RankingConfig | None = None):
        self.store = store
        self.config = config or RankingConfig()
        self.fetcher = ResilientFetcher(store)

    async def _fetch(self, query: Query, key_candidates: Sequence[str] | None = None) -> FetchResult:
        return await self.fetcher.fetch_with_trace(query, key_candidates=key_candidates)

    # ------------------------------------------------------------------
    # Individual reads
    # ------------------------------------------------------------------

    async def recent_settled_weeks(self, k: int) -> tuple[list[Week], FetchResult]:
        """The ``k`` most recently settled weeks, newest first."""
        if k < 1:
            raise ValueError(f"window size must be at least 1, got {k}")
        trace = await self._fetch(
            Query(
                collection=WEEKS,
                filters=(FieldFilter(field="status", value=WeekStatus.SETTLED.value),),
                order_by=OrderBy(field="endDate", descending=True),
                limit=k,
            )
        )
        weeks = [w for w in parse_records(Week, trace.rows) if w.is_settled]
        # Store order is trusted only for the indexed tier; re-sort on parsed instants
        weeks.sort(key=lambda w: w.end_timestamp, reverse=True)
        return weeks[:k], trace

    async def weekly_balances_for_weeks(self, week_ids: Sequence[str]) -> tuple[list[Record], FetchResult]:
        """Batched "in" reads; one query per ``batch_size`` week ids, run concurrently."""
        if not week_ids:
            return [], FetchResult(rows=[], served_by=None)

        batches = _chunks(list(week_ids), self.config.batch_size)
        traces = await asyncio.gather(
            *(
                self._fetch(
                    Query(
                        collection=WEEKLY_BALANCES,
                        filters=(FieldFilter(field="weekId", op="in", value=batch),),
                    )
                )
                for batch in batches
            )
        )
        if len(batches) > 1:
            logger.info(f"Read weekly balances for {len(week_ids)} weeks in {len(batches)} batches")

        rows = [row for trace in traces for row in trace.rows]
        merged = FetchResult(
            rows=rows,
            served_by=next((t.served_by for t in traces if t.served_by), None),
            fallbacks=[event for t in traces for event in t.fallbacks],
        )
        return rows, merged

    async def weekly_balances_for_week(self, week_id: str, limit: int | None = None) -> FetchResult:
        return await self._fetch(
            Query(
                collection=WEEKLY_BALANCES,
                filters=(FieldFilter(field="weekId", value=week_id),),
                order_by=OrderBy(field="resultReturnPct", descending=True),
                limit=limit,
            )
        )

    async def _collection(self, name: str) -> FetchResult:
        return await self._fetch(Query(collection=name))

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def load(self) -> AnalyticsSnapshot:
        """Full snapshot of the five source collections, fetched concurrently."""
        names = (WEEKS, ALLOCATIONS, WEEKLY_BALANCES, BALANCES, USERS)
        traces = await asyncio.gather(*(self._collection(name) for name in names))
        by_name = dict(zip(names, traces))

        snapshot = AnalyticsSnapshot(
            weeks=parse_records(Week, by_name[WEEKS].rows),
            allocations=parse_records(Allocation, by_name[ALLOCATIONS].rows),
            weekly_balances=parse_records(WeeklyBalance, by_name[WEEKLY_BALANCES].rows),
            balances=parse_records(Balance, by_name[BALANCES].rows, id_field="uid"),
            users=parse_records(User, by_name[USERS].rows, id_field="uid"),
            traces=by_name,
        )
        logger.info(
            f"Loaded snapshot: weeks={len(snapshot.weeks)} "
            f"allocations={len(snapshot.allocations)} "
            f"weeklyBalances={len(snapshot.weekly_balances)} "
            f"balances={len(snapshot.balances)} users={len(snapshot.users)}"
        )
        if snapshot.degraded_collections:
            logger.warning(f"Snapshot degraded for: {', '.join(snapshot.degraded_collections)}")
        return snapshot

    async def load_window(self, k: int) -> AnalyticsSnapshot:
        """Last ``k`` settled weeks with their weekly balances, plus users."""

        async def window() -> tuple[list[Week], list[Record], FetchResult, FetchResult]:
            weeks, weeks_trace = await self.recent_settled_weeks(k)
            rows, rows_trace = await self.weekly_balances_for_weeks([w.id for w in weeks])
            return weeks, rows, weeks_trace, rows_trace

        (weeks, rows, weeks_trace, rows_trace), users_trace = await asyncio.gather(
            window(), self._collection(USERS)
        )
        return AnalyticsSnapshot(
            weeks=weeks,
            weekly_balances=parse_records(WeeklyBalance, rows),
            users=parse_records(User, users_trace.rows, id_field="uid"),
            traces={WEEKS: weeks_trace, WEEKLY_BALANCES: rows_trace, USERS: users_trace},
        )

    async def load_latest_week(self, limit: int | None = None) -> AnalyticsSnapshot:
        async def latest() -> tuple[list[Week], FetchResult, FetchResult | None]:
            weeks, weeks_trace = await self.recent_settled_weeks(1)
            if not weeks:
                return [], weeks_trace, None
            return weeks, weeks_trace, await self.weekly_balances_for_week(weeks[0].id, limit)

        (weeks, weeks_trace, rows_trace), users_trace = await asyncio.gather(
            latest(), self._collection(USERS)
        )
        traces = {WEEKS: weeks_trace, USERS: users_trace}
        if rows_trace is not None:
            traces[WEEKLY_BALANCES] = rows_trace
        return AnalyticsSnapshot(
            weeks=weeks,
            weekly_balances=parse_records(WeeklyBalance, rows_trace.rows if rows_trace else []),
            users=parse_records(User, users_trace.rows, id_field="uid"),
            traces=traces,
        )

    async def load_week(self, week_id: str, limit: int | None = None) -> AnalyticsSnapshot:
        rows_trace, users_trace = await asyncio.gather(
            self.weekly_balances_for_week(week_id, limit), self._collection(USERS)
        )
        return AnalyticsSnapshot(
            weekly_balances=parse_records(WeeklyBalance, rows_trace.rows),
            users=parse_records(User, users_trace.rows, id_field="uid"),
            traces={WEEKLY_BALANCES: rows_trace, USERS: users_trace},
        )

    async def load_balances(self) -> AnalyticsSnapshot:
        users_trace, balances_trace = await asyncio.gather(
            self._collection(USERS), self._collection(BALANCES)
        )
        return AnalyticsSnapshot(
            users=parse_records(User, users_trace.rows, id_field="uid"),
            balances=parse_records(Balance, balances_trace.rows, id_field="uid"),
            traces={USERS: users_trace, BALANCES: balances_trace},
        )

    async def user_history(self, uid: str, limit: int | None = None) -> list[WeeklyBalance]:
        """One user's weekly balances, oldest first.

        The last tier reads ``{weekId}_{uid}`` documents directly for the most
        recent settled weeks.
        """
        limit = limit or self.config.history_limit
        recent, _ = await self.recent_settled_weeks(min(limit, self.config.key_lookup_weeks))
        trace = await self._fetch(
            Query(
                collection=WEEKLY_BALANCES,
                filters=(FieldFilter(field="uid", value=uid),),
                order_by=OrderBy(field="weekId"),
                limit=limit,
            ),
            key_candidates=week_user_keys([w.id for w in recent], uid),
        )
        return parse_records(WeeklyBalance, trace.rows)

    async def market_data(self, week_id: str) -> MarketData | None:
        try:
            document = await self.store.get_document(MARKET_DATA, week_id)
        except PermissionDenied:
            logger.warning(f"Market data for {week_id} is not readable")
            return None
        except StoreError as e:
            logger.warning(f"Market data for {week_id} unavailable: {e}")
            return None
        if document is None:
            return None
        try:
            return MarketData.from_document(week_id, document)
        except MalformedRecord as e:
            logger.warning(f"Ignoring malformed market data: {e}")
            return None
