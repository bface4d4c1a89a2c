from __future__ import annotations

from typing import Any


class FuturesClientError(Exception):
    pass


class TransportError(FuturesClientError):
    """Connection failure, timeout or error status while talking to the exchange."""


class RequestTimeoutError(TransportError):
    pass


class ExchangeAPIError(TransportError):
    def __init__(self, status: int, message: str, code: int | None = None) -> None:
        self.status = status
        self.message = message
        self.code = code
        detail = f"code={code}, msg={message}" if code is not None else message
        super().__init__(f"HTTP {status}: {detail}")


class DecodeError(FuturesClientError):
    """The kline payload could not be turned into candles."""


class MalformedPayloadError(DecodeError):
    def __init__(self, reason: str, row: int | None = None) -> None:
        self.reason = reason
        self.row = row
        where = f" at row {row}" if row is not None else ""
        super().__init__(f"malformed kline payload{where}: {reason}")


class MalformedRowError(DecodeError):
    def __init__(self, row: int, raw: list[Any], reason: str = "") -> None:
        self.row = row
        self.raw = raw
        self.reason = reason or f"expected at least 7 fields, got {len(raw)}"
        super().__init__(f"malformed kline row {row}: {self.reason}: {raw!r}")


class InvalidFieldError(DecodeError):
    def __init__(self, field: str, row: int, value: Any, reason: str = "") -> None:
        self.field = field
        self.row = row
        self.value = value
        self.reason = reason
        suffix = f" ({reason})" if reason else ""
        super().__init__(f"invalid {field} in kline row {row}: {value!r}{suffix}")
