"""Weekly market data with an explicit schema.

Documents used to mix metadata keys (``window``, ``fetchedAt``...) with
arbitrary instrument codes at the top level. `MarketData` keeps metadata in a
fixed sub-object and quotes in ``instruments``; `from_document` performs the
split once, at the read boundary, and rejects instrument entries that are not
quotes.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import MalformedRecord, parse_instant, to_float

logger = logging.getLogger(__name__)

METADATA_KEYS = frozenset({"window", "fetchedAt", "createdAt", "updatedAt"})


class MarketWindow(BaseModel):
    period1: datetime | None = None
    period2: datetime | None = None
    tz: str = "UTC"
    sources: list[str] = Field(default_factory=list)

    @field_validator("period1", "period2", mode="before")
    @classmethod
    def parse_period(cls, v: Any) -> datetime | None:
        return parse_instant(v)


class MarketDataMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    window: MarketWindow | None = None
    fetched_at: datetime | None = Field(default=None, alias="fetchedAt")

    @field_validator("fetched_at", mode="before")
    @classmethod
    def parse_fetched_at(cls, v: Any) -> datetime | None:
        return parse_instant(v)


class InstrumentQuote(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    open: float | None = None
    close: float | None = None
    return_pct: float | None = Field(default=None, alias="returnPct")

    @field_validator("open", "close", "return_pct", mode="before")
    @classmethod
    def parse_number(cls, v: Any) -> float | None:
        return to_float(v)


class MarketData(BaseModel):
    week_id: str
    meta: MarketDataMeta = Field(default_factory=MarketDataMeta)
    instruments: dict[str, InstrumentQuote] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, week_id: str, document: dict[str, Any]) -> MarketData:
        """Build from either the explicit schema or the legacy flat layout."""
        if "instruments" in document:
            raw_meta = document.get("meta") or {}
            raw_quotes = document.get("instruments") or {}
        else:
            raw_meta = {k: v for k, v in document.items() if k in METADATA_KEYS}
            raw_quotes = {
                k: v for k, v in document.items() if k not in METADATA_KEYS and k != "id"
            }

        quotes: dict[str, InstrumentQuote] = {}
        for code, raw in raw_quotes.items():
            if not isinstance(raw, dict):
                raise MalformedRecord(
                    f"Market data {week_id}: entry {code!r} is not a quote", record_id=week_id
                )
            try:
                quotes[code] = InstrumentQuote.model_validate(raw)
            except ValidationError as e:
                raise MalformedRecord(
                    f"Market data {week_id}: invalid quote for {code!r}: {e}", record_id=week_id
                ) from e

        try:
            meta = MarketDataMeta.model_validate(raw_meta)
        except ValidationError as e:
            raise MalformedRecord(f"Market data {week_id}: invalid metadata: {e}", record_id=week_id) from e

        return cls(week_id=week_id, meta=meta, instruments=quotes)

    @property
    def has_returns(self) -> bool:
        return any(q.return_pct is not None for q in self.instruments.values())


def top_movers(market: MarketData, n: int = 5) -> dict[str, list[tuple[str, float]]]:
    """Best and worst ``n`` instruments by weekly return."""
    priced = [(code, q.return_pct) for code, q in market.instruments.items() if q.return_pct is not None]
    ranked = sorted(priced, key=lambda item: item[1], reverse=True)
    return {
        "gainers": [item for item in ranked[:n] if item[1] > 0],
        "losers": [item for item in reversed(ranked) if item[1] < 0][:n],
    }
