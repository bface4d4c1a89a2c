from __future__ import annotations

LIVE_REST = "https://fapi.binance.com"
TESTNET_REST = "https://testnet.binancefuture.com"

KLINES_PATH = "/fapi/v1/klines"

API_KEY_HEADER = "X-MBX-APIKEY"
CLIENT_NAME = "binance-futures-client"
CLIENT_VERSION = "0.1.0"
USER_AGENT = f"{CLIENT_NAME}/{CLIENT_VERSION}"
