from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import aiohttp

from fapiclient.core.config import ClientConfig
from fapiclient.core.logging import get_logger, mask_api_key, safe_json
from fapiclient.exchange.candles import decode_candles
from fapiclient.exchange.endpoints import KLINES_PATH
from fapiclient.exchange.models import Candle, KlineQuery
from fapiclient.exchange.rest_client import FuturesRestClient


def build_klines_path(symbol: str, params: Mapping[str, Any] | KlineQuery | None = None) -> str:
    symbol = (symbol or "").strip()
    if not symbol:
        raise ValueError("symbol must not be empty")
    if isinstance(params, KlineQuery):
        params = params.to_params()
    query = [("symbol", symbol)]
    query.extend((str(key), str(val)) for key, val in (params or {}).items() if key != "symbol")
    return f"{KLINES_PATH}?{urlencode(query)}"


class FuturesClient:
    def __init__(
        self,
        api_key: str,
        secret_key: str,
        base_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.config = ClientConfig(
            api_key=api_key,
            secret_key=secret_key,
            base_url=base_url,
            timeout_seconds=timeout_seconds,
        )
        self.rest = FuturesRestClient(
            base_url=self.config.base_url,
            api_key=self.config.api_key,
            timeout_seconds=self.config.timeout_seconds,
            session=session,
        )
        self._log = get_logger(__name__)
        self._log.info(
            "FuturesClient init %s",
            safe_json({"base_url": self.config.base_url, "api_key": mask_api_key(self.config.api_key)}),
        )

    @classmethod
    def from_config(cls, config: ClientConfig, session: aiohttp.ClientSession | None = None) -> FuturesClient:
        return cls(
            config.api_key,
            config.secret_key,
            config.base_url,
            session=session,
            timeout_seconds=config.timeout_seconds,
        )

    async def get(self, path_and_query: str, *, timeout: float | None = None) -> bytes:
        return await self.rest.get(path_and_query, timeout=timeout)

    async def load_candles(
        self,
        symbol: str,
        params: Mapping[str, Any] | KlineQuery | None = None,
        *,
        timeout: float | None = None,
        strict: bool = True,
    ) -> list[Candle]:
        """Fetch ``/fapi/v1/klines`` for ``symbol`` and decode the rows.

        Raises ``TransportError`` for network and HTTP failures and
        ``DecodeError`` for a payload that does not match the kline row layout.
        """
        path = build_klines_path(symbol, params)
        body = await self.get(path, timeout=timeout)
        return decode_candles(symbol, body, strict=strict)

    async def close(self) -> None:
        await self.rest.close()

    async def __aenter__(self) -> FuturesClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
