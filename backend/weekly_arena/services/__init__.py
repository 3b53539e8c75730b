from .leaderboard import AnalyticsReport, LeaderboardService, UserAnalytics

__all__ = [
    "AnalyticsReport",
    "LeaderboardService",
    "UserAnalytics",
]
