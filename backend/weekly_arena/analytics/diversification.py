"""Diversification and concentration-risk analytics over allocation records.

Everything here is a single pass (plus a sort) over the allocation set. An
instrument counts as "used" by an allocation when its weight is > 0.
"""

from __future__ import annotations

from collections import defaultdict
from enum import Enum
from typing import Iterable, Sequence

from pydantic import BaseModel

from weekly_arena.config import RiskConfig
from weekly_arena.instruments import get_instrument_by_code
from weekly_arena.storage.models import Allocation


class RiskTier(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InstrumentPopularity(BaseModel):
    code: str
    total_weight: float
    count: int
    avg_weight: float
    name: str | None = None
    category: str | None = None


class DiversificationRow(BaseModel):
    uid: str
    avg_instrument_count: float | None
    allocations: int


class RiskRow(BaseModel):
    uid: str
    max_single_weight: float
    risk_tier: RiskTier


class ConcentrationSummary(BaseModel):
    unique_instruments: int
    total_usage: int
    top3_share: float
    concentration_index: float


class PreferenceRow(BaseModel):
    uid: str
    total_weight: float


def instrument_count(allocation: Allocation) -> int:
    return len(allocation.held)


def avg_instrument_count(user_allocations: Sequence[Allocation]) -> float | None:
    """Mean number of held instruments per allocation; None without allocations."""
    if not user_allocations:
        return None
    return sum(instrument_count(a) for a in user_allocations) / len(user_allocations)


def usage_counts(allocations: Iterable[Allocation]) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for allocation in allocations:
        for code in allocation.held:
            counts[code] += 1
    return dict(counts)


def usage_counts_by_week(allocations: Iterable[Allocation]) -> dict[str, dict[str, int]]:
    by_week: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for allocation in allocations:
        week = by_week[allocation.week_id]
        for code in allocation.held:
            week[code] += 1
    return {week_id: dict(counts) for week_id, counts in by_week.items()}


def instrument_popularity(allocations: Iterable[Allocation]) -> dict[str, InstrumentPopularity]:
    totals: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    for allocation in allocations:
        for code, weight in allocation.held.items():
            totals[code] += weight
            counts[code] += 1

    return {
        code: InstrumentPopularity(
            code=code,
            total_weight=totals[code],
            count=counts[code],
            avg_weight=totals[code] / counts[code],
        )
        for code in counts
    }


def herfindahl_index(counts: Iterable[int]) -> float:
    """Sum of squared usage shares * 100 (25 for four equal instruments, 100 for one)."""
    values = [c for c in counts if c > 0]
    total = sum(values)
    if total == 0:
        return 0.0
    return sum((c / total) ** 2 for c in values) * 100


def concentration_index(allocations: Iterable[Allocation]) -> float:
    """Usage-count weighted Herfindahl index; allocation weights are ignored."""
    return herfindahl_index(usage_counts(allocations).values())


def top_share(counts: Iterable[int], n: int = 3) -> float:
    values = sorted(counts, reverse=True)
    total = sum(values)
    if total == 0:
        return 0.0
    return sum(values[:n]) / total * 100


def top3_share(allocations: Iterable[Allocation]) -> float:
    return top_share(usage_counts(allocations).values(), 3)


def risk_tier(max_single_weight: float, thresholds: RiskConfig | None = None) -> RiskTier:
    t = thresholds or RiskConfig()
    if max_single_weight > t.high_threshold:
        return RiskTier.HIGH
    if max_single_weight > t.medium_threshold:
        return RiskTier.MEDIUM
    if max_single_weight > t.low_threshold:
        return RiskTier.LOW
    return RiskTier.NONE


def _group_by_user(allocations: Iterable[Allocation]) -> dict[str, list[Allocation]]:
    grouped: dict[str, list[Allocation]] = defaultdict(list)
    for allocation in allocations:
        grouped[allocation.uid].append(allocation)
    return grouped


def diversification_table(
    allocations: Iterable[Allocation],
    uids: Iterable[str] | None = None,
) -> list[DiversificationRow]:
    """Per-user average instrument count.

    Users listed in ``uids`` without any allocation get ``None``: there is no
    observation to average.
    """
    grouped = _group_by_user(allocations)
    ordered = list(grouped)
    if uids is not None:
        ordered += [uid for uid in uids if uid not in grouped]

    return [
        DiversificationRow(
            uid=uid,
            avg_instrument_count=avg_instrument_count(grouped.get(uid, [])),
            allocations=len(grouped.get(uid, [])),
        )
        for uid in ordered
    ]


def diversification_by_week(allocations: Iterable[Allocation]) -> dict[str, list[DiversificationRow]]:
    """Per-week diversification rows, newest week id first.

    Each user has one allocation per week, so a row's average is simply that
    week's instrument count.
    """
    by_week: dict[str, list[Allocation]] = defaultdict(list)
    for allocation in allocations:
        if allocation.week_id:
            by_week[allocation.week_id].append(allocation)

    return {
        week_id: diversification_table(by_week[week_id])
        for week_id in sorted(by_week, reverse=True)
    }


def most_diverse(rows: Sequence[DiversificationRow], n: int = 3) -> list[DiversificationRow]:
    scored = [r for r in rows if r.avg_instrument_count is not None]
    return sorted(scored, key=lambda r: r.avg_instrument_count, reverse=True)[:n]


def least_diverse(rows: Sequence[DiversificationRow], n: int = 3) -> list[DiversificationRow]:
    scored = [r for r in rows if r.avg_instrument_count is not None]
    return sorted(scored, key=lambda r: r.avg_instrument_count)[:n]


def risk_table(
    allocations: Iterable[Allocation],
    thresholds: RiskConfig | None = None,
) -> list[RiskRow]:
    """Per-user maximum single-instrument weight across any allocation, riskiest first."""
    max_weights: dict[str, float] = {}
    for allocation in allocations:
        current = max_weights.get(allocation.uid, 0.0)
        max_weights[allocation.uid] = max(current, allocation.max_weight)

    rows = [
        RiskRow(uid=uid, max_single_weight=weight, risk_tier=risk_tier(weight, thresholds))
        for uid, weight in max_weights.items()
    ]
    return sorted(rows, key=lambda r: r.max_single_weight, reverse=True)


def concentration_summary(allocations: Iterable[Allocation]) -> ConcentrationSummary:
    counts = usage_counts(allocations)
    return ConcentrationSummary(
        unique_instruments=len(counts),
        total_usage=sum(counts.values()),
        top3_share=top_share(counts.values(), 3),
        concentration_index=herfindahl_index(counts.values()),
    )


def popularity_table(allocations: Iterable[Allocation]) -> list[InstrumentPopularity]:
    """Popularity decorated with catalog name/category, most used first."""
    rows = []
    for code, popularity in instrument_popularity(allocations).items():
        instrument = get_instrument_by_code(code)
        if instrument is not None:
            popularity = popularity.model_copy(
                update={"name": instrument.name, "category": instrument.category}
            )
        rows.append(popularity)
    return sorted(rows, key=lambda r: (r.count, r.total_weight), reverse=True)


def instrument_preference(allocations: Iterable[Allocation], code: str) -> list[PreferenceRow]:
    """Total weight each user put on one instrument across all weeks."""
    totals: dict[str, float] = defaultdict(float)
    for allocation in allocations:
        weight = allocation.pairs.get(code, 0.0)
        if weight > 0:
            totals[allocation.uid] += weight

    rows = [PreferenceRow(uid=uid, total_weight=total) for uid, total in totals.items()]
    return sorted(rows, key=lambda r: r.total_weight, reverse=True)
