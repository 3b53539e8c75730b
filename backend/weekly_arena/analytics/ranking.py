"""Leaderboard modes computed over an `AnalyticsSnapshot`.

The engine is pure: it never touches the store. Every mode returns rows sorted
by ``metric`` descending. Ties keep snapshot (fetch) order; there is no
secondary sort key.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Iterable, Sequence

from pydantic import BaseModel, Field

from weekly_arena.config import RankingConfig
from weekly_arena.storage.models import Week, WeekStatus
from weekly_arena.storage.snapshot import AnalyticsSnapshot

from .returns import annualized_return, compounded_return, returns_by_user, win_rate

logger = logging.getLogger(__name__)


class LeaderboardMode(str, Enum):
    LATEST_WEEK = "latest-week"
    OVERALL = "overall"
    RECENT_WEEKS = "recent-weeks"
    BY_WEEK = "by-week"
    WIN_RATE = "win-rate"
    ANNUALIZED = "annualized"


class LeaderboardRow(BaseModel):
    uid: str
    display_name: str
    metric: float
    weeks: int | None = None
    base_balance: float | None = None
    end_balance: float | None = None
    latest_balance: float | None = None
    latest_week_id: str | None = None


class Leaderboard(BaseModel):
    mode: LeaderboardMode
    week_id: str | None = None
    week_ids: list[str] = Field(default_factory=list)
    rows: list[LeaderboardRow] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rows


def rank_rows(rows: Iterable[LeaderboardRow], limit: int | None = None) -> list[LeaderboardRow]:
    # list.sort is stable with reverse=True, so equal metrics keep input order
    ranked = sorted(rows, key=lambda r: r.metric, reverse=True)
    return ranked if limit is None else ranked[:limit]


def window_size(k: int | None, default: int) -> int:
    """Resolve a window size in settled weeks; ``None`` means ``default``."""
    size = default if k is None else k
    if size < 1:
        raise ValueError(f"window size must be at least 1, got {size}")
    return size


def _epoch(value) -> float:
    return value.timestamp() if value is not None else float("inf")


class RankingEngine:
    def __init__(self, snapshot: AnalyticsSnapshot, config: RankingConfig | None = None):
        self.snapshot = snapshot
        self.config = config or RankingConfig()
        self._names = snapshot.display_names()

    def _name(self, uid: str) -> str:
        return self._names.get(uid, uid)

    # ------------------------------------------------------------------
    # Week selection
    # ------------------------------------------------------------------

    def settled_weeks(self) -> list[Week]:
        """Settled weeks, most recent ``endDate`` first."""
        settled = [w for w in self.snapshot.weeks if w.is_settled]
        return sorted(settled, key=lambda w: w.end_timestamp, reverse=True)

    def latest_settled_week(self) -> Week | None:
        settled = self.settled_weeks()
        return settled[0] if settled else None

    def recent_week_ids(self, k: int) -> list[str]:
        if k < 1:
            raise ValueError(f"window size must be at least 1, got {k}")
        return [w.id for w in self.settled_weeks()[:k]]

    def week_ids(self) -> list[str]:
        """All known week ids, newest first (week picker)."""
        ordered = sorted(self.snapshot.weeks, key=lambda w: w.end_timestamp, reverse=True)
        return [w.id for w in ordered]

    def current_week(self) -> Week | None:
        """Open week closing soonest, else next upcoming, else most recently closed."""
        weeks = self.snapshot.weeks

        open_weeks = [w for w in weeks if w.status == WeekStatus.OPEN]
        if open_weeks:
            return min(open_weeks, key=lambda w: _epoch(w.end_date))

        upcoming = [w for w in weeks if w.status == WeekStatus.UPCOMING and w.open_at is not None]
        if upcoming:
            return min(upcoming, key=lambda w: _epoch(w.open_at))

        closed = [w for w in weeks if w.status == WeekStatus.CLOSED]
        if closed:
            return max(closed, key=lambda w: w.end_timestamp)
        return None

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def _week_rows(self, week_id: str) -> list[LeaderboardRow]:
        return [
            LeaderboardRow(
                uid=wb.uid,
                display_name=self._name(wb.uid),
                metric=wb.result_return_pct,
                base_balance=wb.base_balance,
                end_balance=wb.end_balance,
            )
            for wb in self.snapshot.weekly_balances
            if wb.week_id == week_id and wb.result_return_pct is not None
        ]

    def latest_week(self, limit: int | None = None) -> Leaderboard:
        latest = self.latest_settled_week()
        if latest is None:
            logger.warning("No settled week found for latest-week leaderboard")
            return Leaderboard(mode=LeaderboardMode.LATEST_WEEK)

        return Leaderboard(
            mode=LeaderboardMode.LATEST_WEEK,
            week_id=latest.id,
            rows=rank_rows(self._week_rows(latest.id), limit or self.config.default_limit),
        )

    def by_week(self, week_id: str, limit: int | None = None) -> Leaderboard:
        rows = self._week_rows(week_id)
        if not rows:
            logger.info(f"No weekly balances with a return for week {week_id}")
        return Leaderboard(
            mode=LeaderboardMode.BY_WEEK,
            week_id=week_id,
            rows=rank_rows(rows, limit or self.config.by_week_limit),
        )

    def overall_balance(self, limit: int | None = None) -> Leaderboard:
        """Latest balance per user; users without a balance record hold the seed capital."""
        balances = {b.uid: b for b in self.snapshot.balances}

        # Users first, then balance holders missing from users (unreadable users collection)
        uids = list(dict.fromkeys([u.uid for u in self.snapshot.users] + list(balances)))

        rows = []
        for uid in uids:
            balance = balances.get(uid)
            latest = balance.latest_balance if balance else None
            value = latest if latest is not None else self.config.initial_balance
            rows.append(
                LeaderboardRow(
                    uid=uid,
                    display_name=self._name(uid),
                    metric=value,
                    latest_balance=value,
                    latest_week_id=balance.latest_week_id if balance else None,
                )
            )

        return Leaderboard(
            mode=LeaderboardMode.OVERALL,
            rows=rank_rows(rows, limit or self.config.default_limit),
        )

    def _window(
        self,
        mode: LeaderboardMode,
        k: int,
        metric: Callable[[Sequence[float]], float | None],
        limit: int | None,
        min_weeks: int | None = None,
    ) -> Leaderboard:
        min_weeks = self.config.min_weeks if min_weeks is None else min_weeks
        if min_weeks < 0:
            raise ValueError(f"min_weeks must not be negative, got {min_weeks}")

        week_ids = self.recent_week_ids(k)
        if not week_ids:
            logger.warning(f"No settled weeks found for {mode.value} leaderboard")
            return Leaderboard(mode=mode)

        rows = []
        for uid, returns in returns_by_user(self.snapshot.weekly_balances, week_ids).items():
            if len(returns) < min_weeks:
                continue
            value = metric(returns)
            if value is None:
                continue
            rows.append(
                LeaderboardRow(uid=uid, display_name=self._name(uid), metric=value, weeks=len(returns))
            )

        return Leaderboard(
            mode=mode,
            week_ids=week_ids,
            rows=rank_rows(rows, limit or self.config.default_limit),
        )

    def recent_weeks(
        self, k: int | None = None, limit: int | None = None, min_weeks: int | None = None
    ) -> Leaderboard:
        """Compounded return over the last ``k`` settled weeks."""
        return self._window(
            LeaderboardMode.RECENT_WEEKS,
            window_size(k, self.config.recent_weeks),
            compounded_return,
            limit,
            min_weeks,
        )

    def win_rate(
        self, k: int | None = None, limit: int | None = None, min_weeks: int | None = None
    ) -> Leaderboard:
        return self._window(
            LeaderboardMode.WIN_RATE,
            window_size(k, self.config.win_rate_weeks),
            win_rate,
            limit,
            min_weeks,
        )

    def annualized_return(
        self, k: int | None = None, limit: int | None = None, min_weeks: int | None = None
    ) -> Leaderboard:
        """Mean weekly return * 52 over the last ``k`` settled weeks (linear, not compounded)."""
        return self._window(
            LeaderboardMode.ANNUALIZED,
            window_size(k, self.config.annualized_lookback_weeks),
            annualized_return,
            limit,
            min_weeks,
        )
