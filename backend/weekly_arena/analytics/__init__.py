from .diversification import (
    ConcentrationSummary,
    DiversificationRow,
    InstrumentPopularity,
    PreferenceRow,
    RiskRow,
    RiskTier,
    avg_instrument_count,
    concentration_index,
    concentration_summary,
    diversification_by_week,
    diversification_table,
    herfindahl_index,
    instrument_popularity,
    instrument_preference,
    least_diverse,
    most_diverse,
    popularity_table,
    risk_table,
    risk_tier,
    top3_share,
    usage_counts,
    usage_counts_by_week,
)
from .ranking import (
    Leaderboard,
    LeaderboardMode,
    LeaderboardRow,
    RankingEngine,
    rank_rows,
    window_size,
)
from .returns import (
    ReturnSummary,
    annualized_return,
    compounded_return,
    mean_return,
    returns_by_user,
    summarize_returns,
    summarize_returns_by_week,
    win_rate,
)

__all__ = [
    "ConcentrationSummary",
    "DiversificationRow",
    "InstrumentPopularity",
    "PreferenceRow",
    "RiskRow",
    "RiskTier",
    "avg_instrument_count",
    "concentration_index",
    "concentration_summary",
    "diversification_by_week",
    "diversification_table",
    "herfindahl_index",
    "instrument_popularity",
    "instrument_preference",
    "least_diverse",
    "most_diverse",
    "popularity_table",
    "risk_table",
    "risk_tier",
    "top3_share",
    "usage_counts",
    "usage_counts_by_week",
    "Leaderboard",
    "LeaderboardMode",
    "LeaderboardRow",
    "RankingEngine",
    "rank_rows",
    "window_size",
    "ReturnSummary",
    "annualized_return",
    "compounded_return",
    "mean_return",
    "returns_by_user",
    "summarize_returns",
    "summarize_returns_by_week",
    "win_rate",
]
