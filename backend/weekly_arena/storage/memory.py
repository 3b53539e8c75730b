"""In-memory document store with Firestore-like query rules.

Used for fixtures, offline dumps and tests. It reproduces the two failure modes
the fetch ladder exists for: composite-index requirements and security-rule
denials.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Iterable

import yaml

from .exceptions import IndexUnavailable, InvalidQuery, PermissionDenied
from .query import MAX_IN_VALUES, Query, Record, apply_query

logger = logging.getLogger(__name__)

# (collection, filter fields, order field)
CompositeIndex = tuple[str, tuple[str, ...], str]


class InMemoryStore:
    def __init__(
        self,
        collections: dict[str, dict[str, Record]] | None = None,
        indexes: Iterable[CompositeIndex] = (),
        deny_queries: Iterable[str] = (),
        deny_reads: Iterable[str] = (),
    ):
        self._collections: dict[str, dict[str, Record]] = {}
        for name, docs in (collections or {}).items():
            for doc_id, data in docs.items():
                self.put(name, doc_id, data)

        self.indexes: set[CompositeIndex] = {
            (collection, tuple(sorted(fields)), order) for collection, fields, order in indexes
        }
        self.deny_queries = set(deny_queries)
        self.deny_reads = set(deny_reads)
        self.query_log: list[Query] = []
        self.read_log: list[tuple[str, str]] = []

    def put(self, collection: str, doc_id: str, data: Record) -> None:
        """Seed a document (fixture setup only; the engine never writes)."""
        self._collections.setdefault(collection, {})[doc_id] = dict(data)

    def _require_index(self, query: Query) -> None:
        if query.order_by is None or not query.filters:
            return
        filter_fields = tuple(sorted({f.field for f in query.filters}))
        # Single-field ordering on the only filtered field needs no composite index
        if filter_fields == (query.order_by.field,):
            return
        key = (query.collection, filter_fields, query.order_by.field)
        if key not in self.indexes:
            raise IndexUnavailable(
                f"The query requires a composite index on {query.collection} "
                f"({', '.join(filter_fields)}, {query.order_by.field})",
                status_code=400,
            )

    async def run_query(self, query: Query) -> list[Record]:
        self.query_log.append(query)

        if query.collection in self.deny_queries:
            raise PermissionDenied(
                f"Missing or insufficient permissions to query {query.collection}",
                status_code=403,
            )
        for f in query.filters:
            if f.op == "in" and len(f.value or []) > MAX_IN_VALUES:
                raise InvalidQuery(
                    f"'in' filters support a maximum of {MAX_IN_VALUES} values, "
                    f"got {len(f.value)}",
                    status_code=400,
                )
        self._require_index(query)

        docs = [
            self._with_id(doc_id, data)
            for doc_id, data in self._collections.get(query.collection, {}).items()
        ]
        return apply_query(docs, query)

    async def get_document(self, collection: str, doc_id: str) -> Record | None:
        self.read_log.append((collection, doc_id))

        if collection in self.deny_reads:
            raise PermissionDenied(
                f"Missing or insufficient permissions to read {collection}/{doc_id}",
                status_code=403,
            )
        data = self._collections.get(collection, {}).get(doc_id)
        return None if data is None else self._with_id(doc_id, data)

    @staticmethod
    def _with_id(doc_id: str, data: Record) -> Record:
        record = copy.deepcopy(data)
        record.setdefault("id", doc_id)
        return record

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> "InMemoryStore":
        """Load a YAML or JSON dump.

        Accepted shapes per collection: ``{doc_id: {...}}`` or a list of
        documents carrying an ``id`` field.
        """
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)

        if not raw:
            logger.warning(f"Empty fixture file: {path}")
            return cls(**kwargs)
        if not isinstance(raw, dict):
            raise ValueError(f"Fixture root must be a mapping of collections: {path}")

        collections: dict[str, dict[str, Record]] = {}
        for name, docs in raw.items():
            if isinstance(docs, list):
                collections[name] = {}
                for i, doc in enumerate(docs):
                    doc_id = str(doc.get("id") or _derive_id(name, doc) or i)
                    collections[name][doc_id] = doc
            elif isinstance(docs, dict):
                collections[name] = {str(k): v for k, v in docs.items()}
            else:
                raise ValueError(f"Collection {name!r} must be a list or mapping")

        store = cls(collections=collections, **kwargs)
        logger.info(
            f"Loaded fixture {path}: "
            + ", ".join(f"{k}={len(v)}" for k, v in collections.items())
        )
        return store


def _derive_id(collection: str, doc: Record) -> str | None:
    """Deterministic document ids used by the contest collections."""
    if collection in ("allocations", "weeklyBalances"):
        if doc.get("weekId") and doc.get("uid"):
            return f"{doc['weekId']}_{doc['uid']}"
    if collection in ("balances", "users"):
        return doc.get("uid")
    return None
