"""Tests for the leaderboard modes over in-memory snapshots."""

import pytest

from weekly_arena.analytics.ranking import Leaderboard, LeaderboardMode, RankingEngine, rank_rows, window_size
from weekly_arena.analytics.ranking import LeaderboardRow
from weekly_arena.config import RankingConfig
from weekly_arena.storage.models import Balance, User, Week, WeeklyBalance, parse_records
from weekly_arena.storage.snapshot import AnalyticsSnapshot


def _snapshot(collections: dict) -> AnalyticsSnapshot:
    def rows(name: str) -> list[dict]:
        return [{"id": doc_id, **doc} for doc_id, doc in collections[name].items()]

    return AnalyticsSnapshot(
        weeks=parse_records(Week, rows("weeks")),
        weekly_balances=parse_records(WeeklyBalance, rows("weeklyBalances")),
        balances=parse_records(Balance, rows("balances"), id_field="uid"),
        users=parse_records(User, rows("users"), id_field="uid"),
    )


def _assert_descending(board: Leaderboard) -> None:
    metrics = [row.metric for row in board.rows]
    assert metrics == sorted(metrics, reverse=True)


def test_latest_week_end_to_end() -> None:
    snapshot = AnalyticsSnapshot(
        weeks=[Week(id="2025-W40", status="settled", endDate="2025-10-05T21:00:00Z")],
        weekly_balances=[
            WeeklyBalance(uid="u2", weekId="2025-W40", resultReturnPct=-2),
            WeeklyBalance(uid="u1", weekId="2025-W40", resultReturnPct=5),
        ],
    )

    board = RankingEngine(snapshot).latest_week()

    assert board.mode == LeaderboardMode.LATEST_WEEK
    assert board.week_id == "2025-W40"
    assert [(r.uid, r.metric) for r in board.rows] == [("u1", 5.0), ("u2", -2.0)]


def test_latest_week_uses_most_recent_settled_week(collections) -> None:
    engine = RankingEngine(_snapshot(collections))

    board = engine.latest_week()

    assert board.week_id == "2025-W40"
    # u3 has no usable return and is excluded rather than ranked at 0
    assert [r.uid for r in board.rows] == ["u1", "u2"]
    assert board.rows[0].display_name == "alice"
    assert board.rows[1].display_name == "bob@example.com"
    assert board.rows[0].base_balance == 100000.0


def test_latest_week_without_settled_weeks() -> None:
    snapshot = AnalyticsSnapshot(weeks=[Week(id="2025-W41", status="open")])

    board = RankingEngine(snapshot).latest_week()

    assert board.week_id is None
    assert board.is_empty


def test_overall_balance_defaults_to_seed_capital(collections) -> None:
    board = RankingEngine(_snapshot(collections)).overall_balance()

    assert [(r.uid, r.metric) for r in board.rows] == [
        ("u1", 103950.0),
        ("u2", 100000.0),
        ("u3", 100000.0),
    ]
    assert board.rows[2].latest_week_id is None


def test_overall_balance_includes_balance_holders_without_user_record() -> None:
    snapshot = AnalyticsSnapshot(
        balances=[Balance(uid="ghost", latestBalance=120000)],
        users=[User(uid="u1")],
    )

    board = RankingEngine(snapshot, RankingConfig(initial_balance=1000.0)).overall_balance()

    assert [(r.uid, r.metric) for r in board.rows] == [("ghost", 120000.0), ("u1", 1000.0)]
    assert board.rows[0].display_name == "ghost"


def test_recent_weeks_compounds_window(collections) -> None:
    engine = RankingEngine(_snapshot(collections))

    board = engine.recent_weeks()
    assert board.week_ids == ["2025-W40", "2025-W39", "2025-W38"]
    assert board.rows[0].uid == "u1"
    assert board.rows[0].metric == pytest.approx(3.95)
    assert board.rows[0].weeks == 3
    assert board.rows[1].metric == pytest.approx(-0.04)

    # The last two weeks alone reverse the order
    board = engine.recent_weeks(k=2)
    assert [r.uid for r in board.rows] == ["u2", "u1"]
    assert board.rows[0].metric == pytest.approx(-2.0)
    assert board.rows[1].metric == pytest.approx(-5.5)


def test_win_rate_and_annualized(collections) -> None:
    engine = RankingEngine(_snapshot(collections))

    win = engine.win_rate()
    assert [r.uid for r in win.rows] == ["u1", "u2"]
    assert win.rows[0].metric == pytest.approx(200 / 3)
    assert win.rows[1].metric == pytest.approx(100 / 3)

    annual = engine.annualized_return()
    assert annual.rows[0].metric == pytest.approx(5 / 3 * 52)
    assert annual.rows[1].metric == pytest.approx(0.0)


def test_by_week(collections) -> None:
    engine = RankingEngine(_snapshot(collections))

    board = engine.by_week("2025-W38", limit=1)

    assert board.week_id == "2025-W38"
    assert [r.uid for r in board.rows] == ["u1"]
    assert engine.by_week("1999-W01").is_empty


def test_every_mode_sorted_descending(collections) -> None:
    engine = RankingEngine(_snapshot(collections))

    for board in (
        engine.latest_week(),
        engine.overall_balance(),
        engine.recent_weeks(),
        engine.by_week("2025-W39"),
        engine.win_rate(),
        engine.annualized_return(),
    ):
        _assert_descending(board)


def test_limit_applies_after_sort(collections) -> None:
    board = RankingEngine(_snapshot(collections)).overall_balance(limit=1)

    assert [r.uid for r in board.rows] == ["u1"]


def test_rank_rows_is_stable_for_ties() -> None:
    rows = [
        LeaderboardRow(uid="a", display_name="a", metric=1.0),
        LeaderboardRow(uid="b", display_name="b", metric=2.0),
        LeaderboardRow(uid="c", display_name="c", metric=1.0),
    ]

    assert [r.uid for r in rank_rows(rows)] == ["b", "a", "c"]


def test_week_selection(collections) -> None:
    engine = RankingEngine(_snapshot(collections))

    assert [w.id for w in engine.settled_weeks()] == ["2025-W40", "2025-W39", "2025-W38"]
    assert engine.week_ids()[0] == "2025-W41"
    assert engine.current_week().id == "2025-W41"


def test_current_week_falls_back_to_upcoming_then_closed() -> None:
    upcoming = AnalyticsSnapshot(
        weeks=[
            Week(id="2025-W43", status="upcoming", openAt="2025-10-20T06:00:00Z"),
            Week(id="2025-W42", status="upcoming", openAt="2025-10-13T06:00:00Z"),
            Week(id="2025-W40", status="settled", endDate="2025-10-05T21:00:00Z"),
        ]
    )
    assert RankingEngine(upcoming).current_week().id == "2025-W42"

    closed = AnalyticsSnapshot(
        weeks=[
            Week(id="2025-W39", status="closed", endDate="2025-09-28T21:00:00Z"),
            Week(id="2025-W40", status="closed", endDate="2025-10-05T21:00:00Z"),
        ]
    )
    assert RankingEngine(closed).current_week().id == "2025-W40"

    assert RankingEngine(AnalyticsSnapshot()).current_week() is None


@pytest.mark.parametrize("k", [0, -1])
def test_window_modes_reject_non_positive_sizes(collections, k: int) -> None:
    engine = RankingEngine(_snapshot(collections))

    for mode in (engine.recent_weeks, engine.win_rate, engine.annualized_return):
        with pytest.raises(ValueError, match="window size"):
            mode(k=k)
    with pytest.raises(ValueError):
        engine.recent_week_ids(k)


def test_window_size_resolution() -> None:
    assert window_size(None, 4) == 4
    assert window_size(1, 4) == 1
    with pytest.raises(ValueError):
        window_size(0, 4)


def test_min_weeks_drops_short_histories(collections) -> None:
    collections["weeklyBalances"]["2025-W40_u4"] = {
        "uid": "u4",
        "weekId": "2025-W40",
        "resultReturnPct": 50,
    }
    engine = RankingEngine(_snapshot(collections))

    board = engine.recent_weeks()
    assert board.rows[0].uid == "u4"
    assert board.rows[0].weeks == 1

    for board in (
        engine.recent_weeks(min_weeks=2),
        engine.win_rate(min_weeks=2),
        engine.annualized_return(min_weeks=2),
    ):
        assert [r.uid for r in board.rows] == ["u1", "u2"]
        assert all(r.weeks >= 2 for r in board.rows)

    assert engine.recent_weeks(min_weeks=4).rows == []
    with pytest.raises(ValueError):
        engine.win_rate(min_weeks=-1)


def test_min_weeks_default_comes_from_config(collections) -> None:
    collections["weeklyBalances"]["2025-W40_u4"] = {
        "uid": "u4",
        "weekId": "2025-W40",
        "resultReturnPct": 50,
    }
    engine = RankingEngine(_snapshot(collections), RankingConfig(min_weeks=3))

    assert [r.uid for r in engine.recent_weeks().rows] == ["u1", "u2"]
    assert [r.uid for r in engine.recent_weeks(min_weeks=0).rows][0] == "u4"
