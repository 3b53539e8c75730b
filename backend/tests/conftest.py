"""Shared contest fixtures.

Three settled weeks (2025-W38..W40), one open and one upcoming week, three
users. u3 has no allocations and a null return for 2025-W40.
"""

import copy

import pytest

from weekly_arena.storage.memory import InMemoryStore

INDEXES = [
    ("weeks", ("status",), "endDate"),
    ("weeklyBalances", ("weekId",), "resultReturnPct"),
    ("weeklyBalances", ("uid",), "weekId"),
]

RETURNS = {
    "u1": {"2025-W38": 10.0, "2025-W39": -10.0, "2025-W40": 5.0},
    "u2": {"2025-W38": 2.0, "2025-W39": 0.0, "2025-W40": -2.0},
}


def contest_collections() -> dict[str, dict[str, dict]]:
    weekly_balances: dict[str, dict] = {}
    for uid, by_week in RETURNS.items():
        for week_id, ret in by_week.items():
            weekly_balances[f"{week_id}_{uid}"] = {
                "uid": uid,
                "weekId": week_id,
                "baseBalance": 100000,
                "endBalance": 100000 * (1 + ret / 100),
                "resultReturnPct": ret,
            }
    weekly_balances["2025-W40_u3"] = {
        "uid": "u3",
        "weekId": "2025-W40",
        "baseBalance": "100000",
        "endBalance": None,
        "resultReturnPct": None,
    }

    return copy.deepcopy(
        {
            "weeks": {
                "2025-W38": {"status": "settled", "endDate": "2025-09-21T21:00:00Z"},
                "2025-W39": {"status": "settled", "endDate": "2025-09-28T21:00:00Z"},
                "2025-W40": {"status": "settled", "endDate": "2025-10-05T21:00:00Z"},
                "2025-W41": {
                    "status": "open",
                    "openAt": "2025-10-06T06:00:00Z",
                    "endDate": "2025-10-12T21:00:00Z",
                },
                "2025-W42": {"status": "upcoming", "openAt": "2025-10-13T06:00:00Z"},
            },
            "allocations": {
                "2025-W39_u1": {
                    "uid": "u1",
                    "weekId": "2025-W39",
                    "pairs": {"XU100": 0.25, "USDTRY": 0.25, "XAU": 0.25, "BTC": 0.25},
                },
                "2025-W39_u2": {"uid": "u2", "weekId": "2025-W39", "pairs": {"XAU": 1.0, "BTC": 0}},
                "2025-W40_u1": {
                    "uid": "u1",
                    "weekId": "2025-W40",
                    "pairs": {"XU100": 0.5, "USDTRY": 0.3, "BTC": 0.2},
                },
                "2025-W40_u2": {"uid": "u2", "weekId": "2025-W40", "pairs": {"XAU": 0.9, "XU100": 0.1}},
            },
            "weeklyBalances": weekly_balances,
            "balances": {
                "u1": {"latestBalance": 103950.0, "latestWeekId": "2025-W40"},
                "u2": {"latestBalance": "oops", "latestWeekId": "2025-W40"},
            },
            "users": {
                "u1": {"username": "alice"},
                "u2": {"email": "bob@example.com"},
                "u3": {},
            },
        }
    )


def make_store(indexed: bool = True, **kwargs) -> InMemoryStore:
    return InMemoryStore(
        collections=contest_collections(),
        indexes=INDEXES if indexed else (),
        **kwargs,
    )


@pytest.fixture
def indexed_store() -> InMemoryStore:
    return make_store(indexed=True)


@pytest.fixture
def plain_store() -> InMemoryStore:
    """Same data without any composite index."""
    return make_store(indexed=False)


@pytest.fixture
def store_factory():
    """Build a fresh contest store with custom indexes or denials."""
    return make_store


@pytest.fixture
def collections() -> dict[str, dict[str, dict]]:
    return contest_collections()
