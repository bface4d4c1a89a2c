from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, field_validator, model_validator

from fapiclient.core.utils import datetime_to_epoch_ms

# Wire position of every consumed kline field. The exchange sends 12 values per
# row; positions 7-11 (quote volume, trade count, taker volumes, ignore)
# are not modelled.
KLINE_FIELDS: dict[str, int] = {
    "open_time": 0,
    "open_price": 1,
    "high_price": 2,
    "low_price": 3,
    "close_price": 4,
    "volume": 5,
    "close_time": 6,
}
KLINE_MIN_WIDTH = max(KLINE_FIELDS.values()) + 1

PRICE_FIELDS = ("open_price", "high_price", "low_price", "close_price")

KLINE_INTERVALS = (
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w", "1M",
)


class RawCandleRow(NamedTuple):
    open_time: Any
    open_price: Any
    high_price: Any
    low_price: Any
    close_price: Any
    volume: Any
    close_time: Any

    @classmethod
    def from_wire(cls, row: list[Any]) -> RawCandleRow:
        return cls(**{name: row[index] for name, index in KLINE_FIELDS.items()})


@dataclass(slots=True, frozen=True)
class Candle:
    symbol: str
    open_time: datetime
    close_time: datetime
    open_price: float
    close_price: float
    high_price: float
    low_price: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "open_time": self.open_time.isoformat(),
            "close_time": self.close_time.isoformat(),
            "open": self.open_price,
            "high": self.high_price,
            "low": self.low_price,
            "close": self.close_price,
            "volume": self.volume,
        }


class KlineQuery(BaseModel):
    model_config = {"frozen": True}

    interval: str = "1m"
    limit: int | None = Field(default=None, ge=1, le=1500)
    start_time: int | None = None
    end_time: int | None = None

    @field_validator("interval")
    @classmethod
    def _known_interval(cls, value: str) -> str:
        if value not in KLINE_INTERVALS:
            raise ValueError(f"unsupported interval {value!r}, expected one of {', '.join(KLINE_INTERVALS)}")
        return value

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _to_epoch_ms(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return datetime_to_epoch_ms(value)
        return value

    @model_validator(mode="after")
    def _ordered_window(self) -> KlineQuery:
        if self.start_time is not None and self.end_time is not None and self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self

    def to_params(self) -> dict[str, str]:
        params = {"interval": self.interval}
        if self.limit is not None:
            params["limit"] = str(self.limit)
        if self.start_time is not None:
            params["startTime"] = str(self.start_time)
        if self.end_time is not None:
            params["endTime"] = str(self.end_time)
        return params
