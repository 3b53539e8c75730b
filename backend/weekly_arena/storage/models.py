"""Pydantic models for the records written by the settlement pipeline.

Field names follow the store's camelCase keys through aliases. Numeric fields
are coerced defensively where a default is harmless; ``resultReturnPct`` is
never defaulted, an unusable value parses to ``None``.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class MalformedRecord(ValueError):
    """A stored record cannot be interpreted, even with defensive coercion."""

    def __init__(self, message: str, record_id: str | None = None):
        super().__init__(message)
        self.record_id = record_id


def to_float(value: Any) -> float | None:
    """Parse a finite float or return None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_instant(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds, as exported by the web client
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, dict) and "seconds" in value:
        return datetime.fromtimestamp(float(value["seconds"]), tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class _StoreModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class WeekStatus(str, Enum):
    UPCOMING = "upcoming"
    OPEN = "open"
    CLOSED = "closed"
    SETTLED = "settled"


class Week(_StoreModel):
    id: str
    status: WeekStatus = WeekStatus.UPCOMING
    open_at: datetime | None = Field(default=None, alias="openAt")
    close_at: datetime | None = Field(default=None, alias="closeAt")
    start_date: datetime | None = Field(default=None, alias="startDate")
    end_date: datetime | None = Field(default=None, alias="endDate")

    @field_validator("open_at", "close_at", "start_date", "end_date", mode="before")
    @classmethod
    def parse_instants(cls, v: Any) -> datetime | None:
        return parse_instant(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> Any:
        if v is None:
            return WeekStatus.UPCOMING
        if isinstance(v, WeekStatus):
            return v
        return str(v).lower()

    @property
    def is_settled(self) -> bool:
        return self.status == WeekStatus.SETTLED

    @property
    def end_timestamp(self) -> float:
        return self.end_date.timestamp() if self.end_date else float("-inf")


class Allocation(_StoreModel):
    uid: str
    week_id: str = Field(alias="weekId")
    pairs: dict[str, float] = Field(default_factory=dict)

    @field_validator("pairs", mode="before")
    @classmethod
    def coerce_weights(cls, v: Any) -> dict[str, float]:
        if not isinstance(v, dict):
            return {}
        return {str(code): to_float(weight) or 0.0 for code, weight in v.items()}

    @property
    def held(self) -> dict[str, float]:
        """Instruments with a positive weight."""
        return {code: w for code, w in self.pairs.items() if w > 0}

    @property
    def max_weight(self) -> float:
        return max(self.pairs.values(), default=0.0)


class WeeklyBalance(_StoreModel):
    uid: str
    week_id: str = Field(alias="weekId")
    base_balance: float = Field(default=0.0, alias="baseBalance")
    end_balance: float = Field(default=0.0, alias="endBalance")
    result_return_pct: float | None = Field(default=None, alias="resultReturnPct")

    @field_validator("base_balance", "end_balance", mode="before")
    @classmethod
    def coerce_balance(cls, v: Any) -> float:
        return to_float(v) or 0.0

    @field_validator("result_return_pct", mode="before")
    @classmethod
    def parse_return(cls, v: Any) -> float | None:
        return to_float(v)


class Balance(_StoreModel):
    uid: str
    latest_balance: float | None = Field(default=None, alias="latestBalance")
    latest_week_id: str | None = Field(default=None, alias="latestWeekId")

    @field_validator("latest_balance", mode="before")
    @classmethod
    def parse_balance(cls, v: Any) -> float | None:
        return to_float(v)


class User(_StoreModel):
    uid: str
    username: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return self.username or self.email or self.uid


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_records(
    model: type[ModelT],
    rows: Iterable[dict[str, Any]],
    id_field: str | None = None,
) -> list[ModelT]:
    """Validate raw store records, skipping the ones that cannot be read.

    ``id_field`` copies the document id into that field when the document body
    lacks it (balances and users are keyed by uid).
    """
    parsed: list[ModelT] = []
    skipped = 0
    for row in rows:
        data = dict(row)
        if id_field and not data.get(id_field) and data.get("id"):
            data[id_field] = data["id"]
        try:
            parsed.append(model.model_validate(data))
        except ValidationError as e:
            skipped += 1
            logger.warning(
                f"Skipping malformed {model.__name__} record {row.get('id', '?')}: "
                f"{e.error_count()} validation error(s)"
            )
    if skipped:
        logger.info(f"Parsed {len(parsed)} {model.__name__} records, skipped {skipped}")
    return parsed
