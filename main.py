"""
NEUFIN — Main Entry Point
Runs the API service, or one-shot jobs against the configured store.

    python main.py serve
    python main.py update-alpha AAPL MSFT
    python main.py quote BTC EURUSD
"""
import argparse
import asyncio
import json
import os
from typing import List, Optional

import uvicorn

from neufin.api.container import build_services
from neufin.config.settings import get_settings
from neufin.utils.logger import get_logger, setup_logging

logger = get_logger("main")


def apply_log_level(level: Optional[str]) -> None:
    """Make a --log-level override stick for the app lifespan and reloader workers."""
    if not level:
        return
    os.environ["LOG_LEVEL"] = level.upper()
    get_settings().log_level = level.upper()


def run_api() -> None:
    """Run the FastAPI application."""
    settings = get_settings()
    logger.info("starting_neufin", version=settings.version, host=settings.host, port=settings.port)
    uvicorn.run(
        "neufin.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


async def update_alpha(symbols: List[str]) -> None:
    """Refresh prices and recompute alpha signatures once, then exit."""
    services = await build_services()
    await services.start()
    try:
        targets = symbols or services.tracked_symbols
        signatures = await services.alpha.update_all_alpha_signatures(targets, refresh_prices=True)
        for signature in signatures:
            print(f"{signature.symbol:<10} {signature.alpha_score:>5.1f}  {signature.signal.value}")
    finally:
        await services.stop()


async def print_quotes(symbols: List[str]) -> None:
    services = await build_services()
    await services.start()
    try:
        quotes = await services.resolver.resolve_many(symbols)
        print(json.dumps([q.model_dump(mode="json") for q in quotes], indent=2))
    finally:
        await services.stop()


def main() -> None:
    parser = argparse.ArgumentParser(prog="neufin", description="NEUFIN market data & scoring service")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the HTTP API (default)")
    alpha = sub.add_parser("update-alpha", help="Recompute alpha signatures")
    alpha.add_argument("symbols", nargs="*", help="Defaults to TRACKED_SYMBOLS")
    quote = sub.add_parser("quote", help="Resolve quotes and print them as JSON")
    quote.add_argument("symbols", nargs="+")

    args = parser.parse_args()
    apply_log_level(args.log_level)
    setup_logging()

    if args.command == "update-alpha":
        asyncio.run(update_alpha(args.symbols))
    elif args.command == "quote":
        asyncio.run(print_quotes(args.symbols))
    else:
        run_api()


if __name__ == "__main__":
    main()
