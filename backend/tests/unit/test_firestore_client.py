"""Tests for the Firestore REST client against a mocked transport."""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from weekly_arena.config import StoreConfig
from weekly_arena.storage.exceptions import IndexUnavailable, PermissionDenied, StoreError
from weekly_arena.storage.firestore import (
    FirestoreClient,
    build_structured_query,
    decode_value,
    encode_value,
)
from weekly_arena.storage.query import FieldFilter, OrderBy, Query
from weekly_arena.storage.strategies import ResilientFetcher

CONFIG = StoreConfig(backend="firestore", project_id="arena-test")
DOCS = "projects/arena-test/databases/(default)/documents"


def _document(doc_id: str, **fields) -> dict:
    return {"name": f"{DOCS}/weeklyBalances/{doc_id}", "fields": fields}


WEEK_40_DOCS = [
    _document(
        "2025-W40_u2",
        uid={"stringValue": "u2"},
        weekId={"stringValue": "2025-W40"},
        resultReturnPct={"doubleValue": -2.0},
    ),
    _document(
        "2025-W40_u1",
        uid={"stringValue": "u1"},
        weekId={"stringValue": "2025-W40"},
        resultReturnPct={"integerValue": "5"},
    ),
]

WEEK_40 = Query(
    collection="weeklyBalances",
    filters=(FieldFilter(field="weekId", value="2025-W40"),),
    order_by=OrderBy(field="resultReturnPct", descending=True),
    limit=10,
)


def _error(status_code: int, status: str, message: str) -> httpx.Response:
    return httpx.Response(
        status_code,
        json=[{"error": {"code": status_code, "status": status, "message": message}}],
    )


def test_decode_value_types() -> None:
    assert decode_value({"integerValue": "42"}) == 42
    assert decode_value({"doubleValue": 1.5}) == 1.5
    assert decode_value({"nullValue": None}) is None
    assert decode_value({"booleanValue": True}) is True
    assert decode_value({"timestampValue": "2025-10-05T21:00:00Z"}) == datetime(
        2025, 10, 5, 21, 0, tzinfo=timezone.utc
    )
    assert decode_value(
        {"mapValue": {"fields": {"XAU": {"doubleValue": 0.5}, "BTC": {"integerValue": "0"}}}}
    ) == {"XAU": 0.5, "BTC": 0}
    assert decode_value({"arrayValue": {"values": [{"stringValue": "a"}]}}) == ["a"]
    assert decode_value({"arrayValue": {}}) == []


def test_encode_value_types() -> None:
    assert encode_value("2025-W40") == {"stringValue": "2025-W40"}
    assert encode_value(3) == {"integerValue": "3"}
    assert encode_value(True) == {"booleanValue": True}
    assert encode_value(["a", "b"]) == {
        "arrayValue": {"values": [{"stringValue": "a"}, {"stringValue": "b"}]}
    }


def test_build_structured_query() -> None:
    structured = build_structured_query(WEEK_40)

    assert structured["from"] == [{"collectionId": "weeklyBalances"}]
    assert structured["where"]["fieldFilter"]["op"] == "EQUAL"
    assert structured["orderBy"] == [
        {"field": {"fieldPath": "resultReturnPct"}, "direction": "DESCENDING"}
    ]
    assert structured["limit"] == 10


def test_build_structured_query_composite_filter() -> None:
    query = Query(
        collection="weeklyBalances",
        filters=(
            FieldFilter(field="uid", value="u1"),
            FieldFilter(field="weekId", op="in", value=["2025-W39", "2025-W40"]),
        ),
    )

    structured = build_structured_query(query)

    composite = structured["where"]["compositeFilter"]
    assert composite["op"] == "AND"
    assert [f["fieldFilter"]["op"] for f in composite["filters"]] == ["EQUAL", "IN"]
    assert "orderBy" not in structured
    assert "limit" not in structured


def test_client_requires_project_id() -> None:
    with pytest.raises(ValueError):
        FirestoreClient(StoreConfig(backend="firestore"))


def test_client_requires_context_manager() -> None:
    client = FirestoreClient(CONFIG)

    with pytest.raises(RuntimeError):
        asyncio.run(client.run_query(WEEK_40))


def test_run_query_decodes_documents() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        # runQuery also streams items that carry only a readTime
        return httpx.Response(200, json=[{"document": d} for d in WEEK_40_DOCS] + [{"readTime": "x"}])

    async def run() -> list[dict]:
        async with FirestoreClient(
            CONFIG, access_token="token-123", transport=httpx.MockTransport(handler)
        ) as client:
            return await client.run_query(WEEK_40)

    rows = asyncio.run(run())

    assert [r["id"] for r in rows] == ["2025-W40_u2", "2025-W40_u1"]
    assert rows[1]["resultReturnPct"] == 5
    assert seen[0].method == "POST"
    assert seen[0].url.path.endswith("/documents:runQuery")
    assert seen[0].headers["Authorization"] == "Bearer token-123"
    body = json.loads(seen[0].content)
    assert body["structuredQuery"]["from"] == [{"collectionId": "weeklyBalances"}]


def test_api_key_is_sent_as_query_param() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    async def run() -> None:
        async with FirestoreClient(
            CONFIG, api_key="key-abc", transport=httpx.MockTransport(handler)
        ) as client:
            await client.run_query(Query(collection="users"))

    asyncio.run(run())

    assert seen[0].url.params["key"] == "key-abc"
    assert "Authorization" not in seen[0].headers


@pytest.mark.parametrize(
    "response,expected",
    [
        (_error(403, "PERMISSION_DENIED", "Missing or insufficient permissions."), PermissionDenied),
        (_error(400, "FAILED_PRECONDITION", "The query requires an index."), IndexUnavailable),
        (_error(500, "INTERNAL", "boom"), StoreError),
    ],
)
def test_error_status_mapping(response: httpx.Response, expected: type) -> None:
    async def run() -> None:
        async with FirestoreClient(
            CONFIG, transport=httpx.MockTransport(lambda request: response)
        ) as client:
            await client.run_query(WEEK_40)

    with pytest.raises(expected) as exc_info:
        asyncio.run(run())

    assert exc_info.value.status_code == response.status_code


def test_network_error_becomes_store_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def run() -> None:
        async with FirestoreClient(CONFIG, transport=httpx.MockTransport(handler)) as client:
            await client.run_query(WEEK_40)

    with pytest.raises(StoreError):
        asyncio.run(run())


def test_get_document() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/marketData/2025-W40"):
            return httpx.Response(
                200,
                json={
                    "name": f"{DOCS}/marketData/2025-W40",
                    "fields": {"XAU": {"mapValue": {"fields": {"returnPct": {"doubleValue": 1.2}}}}},
                },
            )
        return httpx.Response(404, json={"error": {"code": 404, "status": "NOT_FOUND", "message": "missing"}})

    async def run() -> tuple:
        async with FirestoreClient(CONFIG, transport=httpx.MockTransport(handler)) as client:
            found = await client.get_document("marketData", "2025-W40")
            missing = await client.get_document("marketData", "1999-W01")
            return found, missing

    found, missing = asyncio.run(run())

    assert found == {"XAU": {"returnPct": 1.2}, "id": "2025-W40"}
    assert missing is None


def test_missing_index_degrades_to_filtered_scan() -> None:
    structured_queries: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        structured = json.loads(request.content)["structuredQuery"]
        structured_queries.append(structured)
        if "orderBy" in structured:
            return _error(400, "FAILED_PRECONDITION", "The query requires an index.")
        return httpx.Response(200, json=[{"document": d} for d in WEEK_40_DOCS])

    async def run():
        async with FirestoreClient(CONFIG, transport=httpx.MockTransport(handler)) as client:
            return await ResilientFetcher(client).fetch_with_trace(WEEK_40)

    result = asyncio.run(run())

    assert result.served_by == "filtered_scan"
    assert [r["uid"] for r in result.rows] == ["u1", "u2"]
    assert "orderBy" not in structured_queries[1]
    assert "limit" not in structured_queries[1]
