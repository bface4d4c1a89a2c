import asyncio
import json
import socket
import threading
from urllib.parse import parse_qsl, urlsplit

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as MockServer

from fapiclient.core.config import ClientConfig
from fapiclient.exchange.endpoints import API_KEY_HEADER
from fapiclient.exchange.errors import ExchangeAPIError, InvalidFieldError
from fapiclient.exchange.futures_client import FuturesClient, build_klines_path
from fapiclient.exchange.models import KlineQuery

API_KEY = "test-api-key"


def _kline(open_ms: int, price: str) -> list:
    return [open_ms, price, price, price, price, "10", open_ms + 59_999, "0", 1, "0", "0", "0"]


def _app(seen: list) -> web.Application:
    # The price encodes the symbol so responses can be matched to their request
    prices = {"BTCUSDT": "50000.5", "ETHUSDT": "3000.25", "SOLUSDT": "150.75", "XRPUSDT": "0.5", "BNBUSDT": "600"}

    async def klines(request: web.Request) -> web.Response:
        seen.append({"headers": request.headers.copy(), "query": dict(request.query), "body": await request.read()})
        symbol = request.query.get("symbol", "")
        if symbol not in prices:
            return web.json_response("-1121: Invalid symbol.", status=400)
        await asyncio.sleep(0.01 * (len(seen) % 3))
        limit = int(request.query.get("limit", "2"))
        rows = [_kline(1_700_000_000_000 + i * 60_000, prices[symbol]) for i in range(limit)]
        return web.json_response(rows)

    app = web.Application()
    app.router.add_get("/fapi/v1/klines", klines)
    return app


def _with_server(fn):
    seen: list = []

    async def _run():
        server = MockServer(_app(seen))
        await server.start_server()
        client = FuturesClient(API_KEY, "secret", f"http://{server.host}:{server.port}")
        try:
            return await fn(client)
        finally:
            await client.close()
            await server.close()

    return asyncio.run(_run()), seen


def test_build_klines_path_puts_symbol_first():
    path = build_klines_path("BTCUSDT", {"interval": "1h", "limit": 5})
    parts = urlsplit(path)
    assert parts.path == "/fapi/v1/klines"
    assert parse_qsl(parts.query) == [("symbol", "BTCUSDT"), ("interval", "1h"), ("limit", "5")]


def test_build_klines_path_accepts_query_model():
    path = build_klines_path("ETHUSDT", KlineQuery(interval="5m", start_time=1, end_time=2))
    assert dict(parse_qsl(urlsplit(path).query)) == {"symbol": "ETHUSDT", "interval": "5m", "startTime": "1", "endTime": "2"}


def test_build_klines_path_rejects_empty_symbol():
    with pytest.raises(ValueError):
        build_klines_path("  ", {})


def test_load_candles_against_mock_server():
    candles, seen = _with_server(lambda client: client.load_candles("BTCUSDT", {"interval": "1m", "limit": 3}))

    assert [c.open_price for c in candles] == [50000.5] * 3
    assert all(c.symbol == "BTCUSDT" for c in candles)
    assert seen[0]["query"] == {"symbol": "BTCUSDT", "interval": "1m", "limit": "3"}
    assert seen[0]["headers"][API_KEY_HEADER] == API_KEY
    assert seen[0]["headers"]["User-Agent"].startswith("binance-futures-client/")
    assert seen[0]["body"] == b""


def test_exchange_error_surfaces_message():
    async def call(client):
        with pytest.raises(ExchangeAPIError) as excinfo:
            await client.load_candles("NOPE")
        return excinfo.value

    error, _ = _with_server(call)
    assert error.status == 400
    assert error.message == "-1121: Invalid symbol."


def test_concurrent_calls_get_their_own_response():
    symbols = ["BTCUSDT", "ETHUSDT", "SOLUSDT", "XRPUSDT", "BNBUSDT"] * 4

    async def call(client):
        return await asyncio.gather(*(client.load_candles(s, {"limit": 2}) for s in symbols))

    results, seen = _with_server(call)
    expected = {"BTCUSDT": 50000.5, "ETHUSDT": 3000.25, "SOLUSDT": 150.75, "XRPUSDT": 0.5, "BNBUSDT": 600.0}
    assert len(seen) == len(symbols)
    for symbol, candles in zip(symbols, results):
        assert len(candles) == 2
        assert {c.symbol for c in candles} == {symbol}
        assert {c.close_price for c in candles} == {expected[symbol]}


def test_load_candles_decode_error_propagates():
    class _Rest:
        async def get(self, path_and_query, *, timeout=None):
            return json.dumps([_kline(1, "1"), [1, 1.0, "1", "1", "1", "1", 2]]).encode()

        async def close(self):
            pass

    client = FuturesClient("k", "s", "https://example.test")
    client.rest = _Rest()

    with pytest.raises(InvalidFieldError) as excinfo:
        asyncio.run(client.load_candles("BTCUSDT"))
    assert excinfo.value.row == 1
    assert excinfo.value.field == "open_price"


def test_from_config_keeps_settings():
    config = ClientConfig(api_key="k", secret_key="s", base_url="https://example.test/", timeout_seconds=3)
    client = FuturesClient.from_config(config)
    assert client.config == config
    assert client.rest.base_url == "https://example.test"
    assert client.rest.timeout_seconds == 3


def _serve_in_thread(app: web.Application):
    loop = asyncio.new_event_loop()
    runner = web.AppRunner(app)
    loop.run_until_complete(runner.setup())
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    loop.run_until_complete(web.SockSite(runner, sock).start())
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()

    def stop() -> None:
        asyncio.run_coroutine_threadsafe(runner.cleanup(), loop).result(timeout=5)
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=5)
        loop.close()

    return sock.getsockname()[1], stop


def test_client_survives_separate_asyncio_run_calls():
    seen: list = []
    port, stop = _serve_in_thread(_app(seen))
    client = FuturesClient(API_KEY, "secret", f"http://127.0.0.1:{port}")
    try:
        first = asyncio.run(client.load_candles("BTCUSDT", {"limit": 1}))
        second = asyncio.run(client.load_candles("ETHUSDT", {"limit": 1}))
        asyncio.run(client.close())
    finally:
        stop()

    assert [c.close_price for c in first] == [50000.5]
    assert [c.close_price for c in second] == [3000.25]
    assert len(seen) == 2
