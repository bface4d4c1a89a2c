from __future__ import annotations

import json
import math
import re
from datetime import datetime
from typing import Any

from fapiclient.core.logging import get_logger, safe_json
from fapiclient.core.utils import epoch_ms_to_datetime
from fapiclient.exchange.errors import (
    DecodeError,
    InvalidFieldError,
    MalformedPayloadError,
    MalformedRowError,
)
from fapiclient.exchange.models import KLINE_MIN_WIDTH, PRICE_FIELDS, Candle, RawCandleRow

_log = get_logger(__name__)

_DECIMAL_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def _parse_time(field: str, row: int, value: Any) -> datetime:
    # bool is an int subclass but never a valid timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidFieldError(field, row, value, "expected epoch milliseconds as a JSON number")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidFieldError(field, row, value, "non-finite timestamp")
    try:
        return epoch_ms_to_datetime(int(value))
    except OverflowError as exc:
        raise InvalidFieldError(field, row, value, "timestamp out of range") from exc


def _parse_decimal(field: str, row: int, value: Any) -> float:
    if not isinstance(value, str):
        raise InvalidFieldError(field, row, value, "expected a decimal string")
    if not _DECIMAL_RE.fullmatch(value):
        raise InvalidFieldError(field, row, value, "not a decimal literal")
    parsed = float(value)
    if not math.isfinite(parsed):
        raise InvalidFieldError(field, row, value, "decimal out of range")
    if field in PRICE_FIELDS and parsed <= 0:
        raise InvalidFieldError(field, row, value, "price must be positive")
    if parsed < 0:
        raise InvalidFieldError(field, row, value, "volume must not be negative")
    return parsed


def decode_row(symbol: str, row: int, item: list[Any]) -> Candle:
    if len(item) < KLINE_MIN_WIDTH:
        raise MalformedRowError(row, item)
    raw = RawCandleRow.from_wire(item)

    open_time = _parse_time("open_time", row, raw.open_time)
    close_time = _parse_time("close_time", row, raw.close_time)
    if open_time > close_time:
        raise InvalidFieldError("close_time", row, raw.close_time, "close time before open time")

    return Candle(
        symbol=symbol,
        open_time=open_time,
        close_time=close_time,
        open_price=_parse_decimal("open_price", row, raw.open_price),
        high_price=_parse_decimal("high_price", row, raw.high_price),
        low_price=_parse_decimal("low_price", row, raw.low_price),
        close_price=_parse_decimal("close_price", row, raw.close_price),
        volume=_parse_decimal("volume", row, raw.volume),
    )


def decode_candles(symbol: str, payload: bytes | str, *, strict: bool = True) -> list[Candle]:
    """Decode a ``/fapi/v1/klines`` response body into candles.

    Rows are read by wire position and returned in payload order. In strict mode
    the first bad row raises and nothing is returned; with ``strict=False`` bad
    rows are logged and skipped, but a payload that is not a list of lists
    still raises.
    """
    try:
        results = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedPayloadError(f"invalid JSON: {exc}") from exc
    if not isinstance(results, list):
        raise MalformedPayloadError(f"expected a JSON array, got {type(results).__name__}")

    candles: list[Candle] = []
    for row, item in enumerate(results):
        if not isinstance(item, list):
            raise MalformedPayloadError(f"expected a JSON array, got {type(item).__name__}", row=row)
        try:
            candles.append(decode_row(symbol, row, item))
        except DecodeError as exc:
            if strict:
                raise
            _log.warning("Skipping kline row %s", safe_json({"symbol": symbol, "row": row, "error": str(exc)}))

    _log.debug("Decoded klines %s", safe_json({"symbol": symbol, "rows": len(results), "candles": len(candles)}))
    return candles
