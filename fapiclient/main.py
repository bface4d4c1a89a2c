from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from fapiclient.core.config import Mode, load_config
from fapiclient.core.logging import setup_logging
from fapiclient.exchange.errors import FuturesClientError
from fapiclient.exchange.futures_client import FuturesClient
from fapiclient.exchange.models import KlineQuery

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fapiclient", description="Fetch Binance USD-M futures klines.")
    parser.add_argument("--symbol", required=True)
    parser.add_argument("--interval", default=None)
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--start-time", type=int, default=None, help="epoch milliseconds")
    parser.add_argument("--end-time", type=int, default=None, help="epoch milliseconds")
    parser.add_argument("--config", default="config.toml")
    parser.add_argument("--mode", choices=[m.value for m in Mode], default=None)
    parser.add_argument("--lenient", action="store_true", help="skip malformed rows instead of failing")
    parser.add_argument("--log-level", default=None)
    return parser


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if args.log_level is None:
        setup_logging(config.log_level)
    if args.mode:
        config = config.model_copy(update={"mode": Mode(args.mode)})
    query = KlineQuery(
        interval=args.interval or config.default_interval,
        limit=args.limit if args.limit is not None else config.default_limit,
        start_time=args.start_time,
        end_time=args.end_time,
    )
    async with FuturesClient.from_config(config.client_config()) as client:
        candles = await client.load_candles(args.symbol.upper(), query, strict=not args.lenient)
    for candle in candles:
        sys.stdout.write(json.dumps(candle.to_dict()) + "\n")
    logger.info("Fetched %s candles for %s", len(candles), args.symbol.upper())
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or "INFO")
    try:
        return asyncio.run(run(args))
    except ValueError as exc:
        logger.error("Invalid query: %s", exc)
        return 2
    except (FuturesClientError, RuntimeError) as exc:
        logger.error("Kline fetch failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
