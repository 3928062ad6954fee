"""Command line entry point for the trading engine HTTP server."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Optional

import uvicorn

from .account_clients import BrokerAccountConfig, CCXTBroker
from .configuration import Settings, configure_default_logging, load_trading_config
from .signal_client import HttpSignalService
from .trading.engine import TradingDecisionEngine
from .web import create_app

logger = logging.getLogger(__name__)


def build_engine(args: argparse.Namespace, settings: Settings) -> TradingDecisionEngine:
    credentials = {
        "apiKey": os.environ.get("BROKER_API_KEY"),
        "secret": os.environ.get("BROKER_SECRET"),
    }
    broker = CCXTBroker(
        BrokerAccountConfig(
            name=args.account_name,
            exchange=args.exchange,
            credentials={key: value for key, value in credentials.items() if value},
            quote_currency=args.quote_currency,
        )
    )
    signals = HttpSignalService(
        args.signals_url,
        api_key=os.environ.get("SIGNALS_API_KEY"),
        timeout=settings.trading.request_timeout_seconds,
    )
    return TradingDecisionEngine(broker, signals, settings.trading)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Launch the AI trading engine control API")
    parser.add_argument("--config", type=Path, help="Path to a trading configuration JSON file")
    parser.add_argument("--exchange", required=True, help="ccxt exchange id used as the broker")
    parser.add_argument("--account-name", default="primary", help="Label used in broker log lines")
    parser.add_argument("--quote-currency", default="KRW", help="Cash currency of the brokerage account")
    parser.add_argument("--signals-url", required=True, help="Base URL of the AI signal service")
    parser.add_argument("--host", default="127.0.0.1", help="Host address for the web server")
    parser.add_argument("--port", type=int, default=8000, help="Port for the web server")
    args = parser.parse_args(argv)

    base = load_trading_config(args.config) if args.config else None
    settings = Settings.from_environment(base=base)
    configure_default_logging(settings.debug_level)

    engine = build_engine(args, settings)
    app = create_app(engine)
    logger.info("Starting trading engine API", extra={"host": args.host, "port": args.port, "exchange": args.exchange})
    uvicorn.run(app, host=args.host, port=args.port, log_level="debug" if settings.debug_level > 1 else "info")


if __name__ == "__main__":
    main()
