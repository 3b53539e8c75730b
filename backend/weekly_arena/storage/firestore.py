"""Firestore REST client implementing the `DocumentStore` protocol."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from weekly_arena.config import StoreConfig

from .exceptions import (
    IndexUnavailable,
    InvalidQuery,
    NotFound,
    PermissionDenied,
    StoreError,
)
from .models import parse_instant
from .query import Query, Record

logger = logging.getLogger(__name__)

_OPS = {"==": "EQUAL", "in": "IN"}


def decode_value(value: dict[str, Any]) -> Any:
    """Convert a Firestore typed value into a plain Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return parse_instant(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    logger.debug(f"Unsupported Firestore value type: {list(value)}")
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {name: decode_value(v) for name, v in fields.items()}


def encode_value(value: Any) -> dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": value.isoformat()}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {k: encode_value(v) for k, v in value.items()}}}
    return {"stringValue": str(value)}


def build_structured_query(query: Query) -> dict[str, Any]:
    structured: dict[str, Any] = {"from": [{"collectionId": query.collection}]}

    field_filters = [
        {
            "fieldFilter": {
                "field": {"fieldPath": f.field},
                "op": _OPS[f.op],
                "value": encode_value(f.value),
            }
        }
        for f in query.filters
    ]
    if len(field_filters) == 1:
        structured["where"] = field_filters[0]
    elif field_filters:
        structured["where"] = {"compositeFilter": {"op": "AND", "filters": field_filters}}

    if query.order_by is not None:
        structured["orderBy"] = [
            {
                "field": {"fieldPath": query.order_by.field},
                "direction": "DESCENDING" if query.order_by.descending else "ASCENDING",
            }
        ]
    if query.limit is not None:
        structured["limit"] = query.limit
    return structured


def _document_to_record(document: dict[str, Any]) -> Record:
    record = decode_fields(document.get("fields", {}))
    record.setdefault("id", document.get("name", "").rsplit("/", 1)[-1])
    return record


class FirestoreClient:
    def __init__(
        self,
        config: StoreConfig | None = None,
        access_token: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or StoreConfig()
        self.access_token = access_token
        self.api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if not self.config.project_id:
            raise ValueError("store.project_id is required for the firestore backend")

        logger.info(
            f"Initialized FirestoreClient (project={self.config.project_id}, "
            f"auth={'token' if access_token else 'api_key' if api_key else 'none'})"
        )

    @property
    def documents_path(self) -> str:
        return f"projects/{self.config.project_id}/databases/{self.config.database}/documents"

    async def __aenter__(self) -> FirestoreClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        headers = {"Authorization": f"Bearer {self.access_token}"} if self.access_token else {}
        params = {"key": self.api_key} if self.api_key else {}
        self._client = httpx.AsyncClient(
            base_url=f"{self.config.base_url.rstrip('/')}/",
            timeout=self.config.timeout_seconds,
            limits=limits,
            headers=headers,
            params=params,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed FirestoreClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("FirestoreClient must be used as async context manager")
        return self._client

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self.client.request(method, endpoint, json=json_data)
        except httpx.RequestError as e:
            raise StoreError(f"Network error calling Firestore: {e}") from e

        if response.status_code < 400:
            return response.json()

        status, message = _error_details(response)
        if response.status_code == 403 or status == "PERMISSION_DENIED":
            raise PermissionDenied(message, status_code=response.status_code)
        if response.status_code == 404 or status == "NOT_FOUND":
            raise NotFound(message, status_code=response.status_code)
        if status == "FAILED_PRECONDITION":
            raise IndexUnavailable(message, status_code=response.status_code)
        if status == "INVALID_ARGUMENT":
            raise InvalidQuery(message, status_code=response.status_code)
        raise StoreError(
            f"Firestore error {response.status_code} {status or ''}: {message}".strip(),
            status_code=response.status_code,
        )

    async def run_query(self, query: Query) -> list[Record]:
        payload = await self._request(
            "POST",
            f"{self.documents_path}:runQuery",
            json_data={"structuredQuery": build_structured_query(query)},
        )
        # runQuery streams one item per result plus bare readTime items
        return [_document_to_record(item["document"]) for item in payload if "document" in item]

    async def get_document(self, collection: str, doc_id: str) -> Record | None:
        try:
            document = await self._request("GET", f"{self.documents_path}/{collection}/{doc_id}")
        except NotFound:
            return None
        return _document_to_record(document)


def _error_details(response: httpx.Response) -> tuple[str | None, str]:
    try:
        body = response.json()
    except ValueError:
        return None, response.text or response.reason_phrase
    # runQuery wraps errors in a one-element array
    if isinstance(body, list):
        body = body[0] if body else {}
    error = body.get("error", {}) if isinstance(body, dict) else {}
    return error.get("status"), error.get("message", response.reason_phrase)
