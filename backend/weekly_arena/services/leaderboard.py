"""Leaderboard and analytics report service."""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from weekly_arena.analytics.diversification import (
    ConcentrationSummary,
    DiversificationRow,
    InstrumentPopularity,
    RiskRow,
    concentration_summary,
    diversification_by_week,
    diversification_table,
    least_diverse,
    most_diverse,
    popularity_table,
    risk_table,
    usage_counts_by_week,
)
from weekly_arena.analytics.ranking import Leaderboard, LeaderboardMode, RankingEngine, window_size
from weekly_arena.analytics.returns import (
    ReturnSummary,
    compounded_return,
    summarize_returns,
    summarize_returns_by_week,
    win_rate,
)
from weekly_arena.config import RankingConfig, RiskConfig
from weekly_arena.storage.market import top_movers
from weekly_arena.storage.models import WeeklyBalance
from weekly_arena.storage.query import DocumentStore
from weekly_arena.storage.snapshot import AnalyticsSnapshot, SnapshotLoader

logger = logging.getLogger(__name__)


class UserAnalytics(BaseModel):
    uid: str
    display_name: str
    diversification: DiversificationRow | None = None
    risk: RiskRow | None = None
    returns: ReturnSummary | None = None
    compounded_return: float | None = None
    win_rate: float | None = None


class AnalyticsReport(BaseModel):
    generated_at: datetime
    current_week_id: str | None = None
    latest_week_id: str | None = None
    degraded_collections: list[str] = Field(default_factory=list)
    leaderboards: dict[str, Leaderboard] = Field(default_factory=dict)
    diversification: list[DiversificationRow] = Field(default_factory=list)
    most_diverse: list[DiversificationRow] = Field(default_factory=list)
    least_diverse: list[DiversificationRow] = Field(default_factory=list)
    diversification_by_week: dict[str, list[DiversificationRow]] = Field(default_factory=dict)
    usage_by_week: dict[str, dict[str, int]] = Field(default_factory=dict)
    popularity: list[InstrumentPopularity] = Field(default_factory=list)
    concentration: ConcentrationSummary
    risk: list[RiskRow] = Field(default_factory=list)
    returns: ReturnSummary | None = None
    returns_by_week: dict[str, ReturnSummary] = Field(default_factory=dict)
    top_movers: dict[str, list[tuple[str, float]]] | None = None
    user: UserAnalytics | None = None


class LeaderboardService:
    """
    Loads the smallest snapshot each request needs and ranks it in memory.

    The store is passed in by the caller; the service never owns a client.
    """

    def __init__(
        self,
        store: DocumentStore,
        ranking: RankingConfig | None = None,
        risk: RiskConfig | None = None,
    ):
        self.ranking = ranking or RankingConfig()
        self.risk = risk or RiskConfig()
        self.loader = SnapshotLoader(store, self.ranking)

    def _engine(self, snapshot: AnalyticsSnapshot) -> RankingEngine:
        return RankingEngine(snapshot, self.ranking)

    async def latest_week(self, limit: int | None = None) -> Leaderboard:
        snapshot = await self.loader.load_latest_week()
        return self._engine(snapshot).latest_week(limit)

    async def overall_balance(self, limit: int | None = None) -> Leaderboard:
        snapshot = await self.loader.load_balances()
        return self._engine(snapshot).overall_balance(limit)

    async def by_week(self, week_id: str, limit: int | None = None) -> Leaderboard:
        snapshot = await self.loader.load_week(week_id)
        return self._engine(snapshot).by_week(week_id, limit)

    async def recent_weeks(
        self, k: int | None = None, limit: int | None = None, min_weeks: int | None = None
    ) -> Leaderboard:
        k = window_size(k, self.ranking.recent_weeks)
        snapshot = await self.loader.load_window(k)
        return self._engine(snapshot).recent_weeks(k, limit, min_weeks)

    async def win_rate(
        self, k: int | None = None, limit: int | None = None, min_weeks: int | None = None
    ) -> Leaderboard:
        k = window_size(k, self.ranking.win_rate_weeks)
        snapshot = await self.loader.load_window(k)
        return self._engine(snapshot).win_rate(k, limit, min_weeks)

    async def annualized_return(
        self, k: int | None = None, limit: int | None = None, min_weeks: int | None = None
    ) -> Leaderboard:
        k = window_size(k, self.ranking.annualized_lookback_weeks)
        snapshot = await self.loader.load_window(k)
        return self._engine(snapshot).annualized_return(k, limit, min_weeks)

    async def leaderboard(
        self,
        mode: LeaderboardMode,
        k: int | None = None,
        week_id: str | None = None,
        limit: int | None = None,
        min_weeks: int | None = None,
    ) -> Leaderboard:
        mode = LeaderboardMode(mode)
        if mode == LeaderboardMode.LATEST_WEEK:
            return await self.latest_week(limit)
        if mode == LeaderboardMode.OVERALL:
            return await self.overall_balance(limit)
        if mode == LeaderboardMode.BY_WEEK:
            if not week_id:
                raise ValueError("week_id is required for the by-week leaderboard")
            return await self.by_week(week_id, limit)
        if mode == LeaderboardMode.RECENT_WEEKS:
            return await self.recent_weeks(k, limit, min_weeks)
        if mode == LeaderboardMode.WIN_RATE:
            return await self.win_rate(k, limit, min_weeks)
        return await self.annualized_return(k, limit, min_weeks)

    async def user_history(self, uid: str, limit: int | None = None) -> list[WeeklyBalance]:
        return await self.loader.user_history(uid, limit)

    async def analytics_report(self, uid: str | None = None) -> AnalyticsReport:
        """
        Build every table from one consolidated snapshot.

        Leaderboards and tables are always global; ``uid`` adds a per-user
        section next to them.
        """
        snapshot = await self.loader.load()
        engine = self._engine(snapshot)

        latest = engine.latest_settled_week()
        current = engine.current_week()

        leaderboards = {
            LeaderboardMode.LATEST_WEEK.value: engine.latest_week(),
            LeaderboardMode.OVERALL.value: engine.overall_balance(),
            LeaderboardMode.RECENT_WEEKS.value: engine.recent_weeks(),
            LeaderboardMode.WIN_RATE.value: engine.win_rate(),
            LeaderboardMode.ANNUALIZED.value: engine.annualized_return(),
        }

        diversification = diversification_table(
            snapshot.allocations, uids=[u.uid for u in snapshot.users]
        )

        movers = None
        if latest is not None:
            market = await self.loader.market_data(latest.id)
            if market is not None and market.has_returns:
                movers = top_movers(market)

        report = AnalyticsReport(
            generated_at=datetime.now(timezone.utc),
            current_week_id=current.id if current else None,
            latest_week_id=latest.id if latest else None,
            degraded_collections=snapshot.degraded_collections,
            leaderboards=leaderboards,
            diversification=diversification,
            most_diverse=most_diverse(diversification),
            least_diverse=least_diverse(diversification),
            diversification_by_week=diversification_by_week(snapshot.allocations),
            usage_by_week=usage_counts_by_week(snapshot.allocations),
            popularity=popularity_table(snapshot.allocations),
            concentration=concentration_summary(snapshot.allocations),
            risk=risk_table(snapshot.allocations, self.risk),
            returns=summarize_returns(snapshot.weekly_balances),
            returns_by_week=summarize_returns_by_week(snapshot.weekly_balances),
            top_movers=movers,
            user=self._user_analytics(snapshot, uid, diversification) if uid else None,
        )

        logger.info(
            f"Built analytics report: {len(diversification)} users, "
            f"{len(report.popularity)} instruments, latest week {report.latest_week_id}"
        )
        return report

    def _user_analytics(
        self,
        snapshot: AnalyticsSnapshot,
        uid: str,
        diversification: list[DiversificationRow],
    ) -> UserAnalytics:
        own_balances = [wb for wb in snapshot.weekly_balances if wb.uid == uid]
        own_returns = [wb.result_return_pct for wb in sorted(own_balances, key=lambda wb: wb.week_id)]
        own_risk = risk_table([a for a in snapshot.allocations if a.uid == uid], self.risk)

        if not own_balances and not any(r.uid == uid for r in diversification):
            logger.warning(f"No allocations or weekly balances found for {uid}")

        return UserAnalytics(
            uid=uid,
            display_name=snapshot.display_name(uid),
            diversification=next((r for r in diversification if r.uid == uid), None),
            risk=own_risk[0] if own_risk else None,
            returns=summarize_returns(own_balances),
            compounded_return=compounded_return(own_returns),
            win_rate=win_rate(own_returns),
        )
