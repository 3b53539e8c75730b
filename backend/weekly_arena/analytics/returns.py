"""Return aggregation over weekly percentage returns.

Every function takes the weekly ``resultReturnPct`` values of one user (or one
cross-user bucket). Missing values (``None``, NaN) are skipped before
computing: a week without a settled return neither dilutes an average nor
breaks a compounding product. Empty input yields ``None`` rather than 0.
"""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterable, Sequence

from pydantic import BaseModel

from weekly_arena.storage.models import WeeklyBalance

WEEKS_PER_YEAR = 52


def _defined(returns: Iterable[float | None]) -> list[float]:
    return [float(r) for r in returns if r is not None and math.isfinite(r)]


def compounded_return(returns: Sequence[float | None]) -> float | None:
    """Geometric period return: (prod(1 + r/100) - 1) * 100."""
    values = _defined(returns)
    if not values:
        return None
    if len(values) == 1:
        return values[0]

    product = 1.0
    for r in values:
        product *= 1 + r / 100
    return (product - 1) * 100


def win_rate(returns: Sequence[float | None]) -> float | None:
    """Share of weeks with a strictly positive return, in percent.

    A flat (exactly 0) week counts toward the total but is not a win.
    """
    values = _defined(returns)
    if not values:
        return None
    wins = sum(1 for r in values if r > 0)
    return wins / len(values) * 100


def mean_return(returns: Sequence[float | None]) -> float | None:
    values = _defined(returns)
    if not values:
        return None
    return sum(values) / len(values)


def annualized_return(returns: Sequence[float | None]) -> float | None:
    """Linear annualization: mean weekly return * 52 (no compounding)."""
    mean = mean_return(returns)
    return None if mean is None else mean * WEEKS_PER_YEAR


def returns_by_user(
    weekly_balances: Iterable[WeeklyBalance],
    week_ids: Iterable[str] | None = None,
) -> dict[str, list[float]]:
    """Group defined returns per user, ascending by week id, in one pass."""
    allowed = set(week_ids) if week_ids is not None else None
    grouped: dict[str, list[tuple[str, float]]] = defaultdict(list)

    for wb in weekly_balances:
        if wb.result_return_pct is None:
            continue
        if allowed is not None and wb.week_id not in allowed:
            continue
        grouped[wb.uid].append((wb.week_id, wb.result_return_pct))

    # dict preserves first-seen user order, which ranking relies on for ties
    return {
        uid: [r for _, r in sorted(rows, key=lambda item: item[0])]
        for uid, rows in grouped.items()
    }


class ReturnSummary(BaseModel):
    average: float | None
    positive: int
    negative: int
    observations: int


def summarize_returns(weekly_balances: Iterable[WeeklyBalance]) -> ReturnSummary | None:
    """Average of all defined records, plus users whose own average is positive / negative."""
    balances = list(weekly_balances)
    per_user = returns_by_user(balances)
    if not per_user:
        return None

    all_returns = [wb.result_return_pct for wb in balances]
    positive = negative = 0
    for returns in per_user.values():
        user_avg = mean_return(returns)
        if user_avg is None:
            continue
        if user_avg > 0:
            positive += 1
        elif user_avg < 0:
            negative += 1

    return ReturnSummary(
        average=mean_return(all_returns),
        positive=positive,
        negative=negative,
        observations=len(_defined(all_returns)),
    )


def summarize_returns_by_week(weekly_balances: Iterable[WeeklyBalance]) -> dict[str, ReturnSummary]:
    """Per week: average return and count of positive / negative records."""
    by_week: dict[str, list[float]] = defaultdict(list)
    for wb in weekly_balances:
        if wb.result_return_pct is not None:
            by_week[wb.week_id].append(wb.result_return_pct)

    return {
        week_id: ReturnSummary(
            average=mean_return(returns),
            positive=sum(1 for r in returns if r > 0),
            negative=sum(1 for r in returns if r < 0),
            observations=len(returns),
        )
        for week_id, returns in sorted(by_week.items(), reverse=True)
    }
