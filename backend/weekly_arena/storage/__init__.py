"""Storage layer for Weekly Arena - read-only access to the contest document store.

This package provides:
- Query description and the `DocumentStore` protocol
- Back ends (in-memory fixtures, Firestore REST)
- The degrading fetch ladder (`ResilientFetcher`)
- Record models and the `SnapshotLoader` that builds analytics snapshots

Nothing here writes to the store.
"""

# Query model
from .query import (
    DocumentStore,
    FieldFilter,
    OrderBy,
    Query,
    Record,
    apply_query,
    sort_records,
)

# Errors
from .exceptions import (
    IndexUnavailable,
    InvalidQuery,
    NotFound,
    PermissionDenied,
    StoreError,
)

# Back ends
from .firestore import FirestoreClient
from .memory import InMemoryStore

# Fetch ladder
from .strategies import (
    FallbackEvent,
    FetchResult,
    IndexedQuery,
    KeyLookupQuery,
    ResilientFetcher,
    ScanQuery,
    plan_strategies,
    week_user_keys,
)

# Records and snapshots
from .market import MarketData, top_movers
from .models import (
    Allocation,
    Balance,
    MalformedRecord,
    User,
    Week,
    WeeklyBalance,
    WeekStatus,
    parse_records,
)
from .snapshot import AnalyticsSnapshot, SnapshotLoader

__all__ = [
    # Query model
    "DocumentStore",
    "FieldFilter",
    "OrderBy",
    "Query",
    "Record",
    "apply_query",
    "sort_records",
    # Errors
    "IndexUnavailable",
    "InvalidQuery",
    "NotFound",
    "PermissionDenied",
    "StoreError",
    # Back ends
    "FirestoreClient",
    "InMemoryStore",
    # Fetch ladder
    "FallbackEvent",
    "FetchResult",
    "IndexedQuery",
    "KeyLookupQuery",
    "ResilientFetcher",
    "ScanQuery",
    "plan_strategies",
    "week_user_keys",
    # Records and snapshots
    "MarketData",
    "top_movers",
    "Allocation",
    "Balance",
    "MalformedRecord",
    "User",
    "Week",
    "WeeklyBalance",
    "WeekStatus",
    "parse_records",
    "AnalyticsSnapshot",
    "SnapshotLoader",
]
