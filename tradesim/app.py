"""
Application entry point.

This module defines a simple command-line interface for running the
trading program in different modes (backtest, paper, live).  It loads
the configuration, builds the configured strategy, and either replays
historical or synthetic bars through the backtest engine or starts the
live engine against a MetaTrader 5 terminal.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
from typing import List, Optional

from .config.schema import Config, load_config
from .data.bars import Bar, bars_from_frame
from .data.csv_data import CSVDataLoader
from .data.mt5_data import MT5DataFeed
from .data.synthetic import generate_trending_market
from .execution.backtest_exec import BacktestEngine
from .execution.live_exec import LiveEngine
from .execution.mt5_exec import MT5OrderClient
from .reporting.report import generate_backtest_report
from .strategy.catalog import STRATEGY_NAMES, build_strategy


logger = logging.getLogger(__name__)

DEFAULT_CONFIG = 'config.yaml'


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def _load(args: argparse.Namespace) -> Config:
    if args.config and os.path.exists(args.config):
        config = load_config(args.config)
    elif args.config != DEFAULT_CONFIG:
        raise FileNotFoundError(f"Configuration file not found: {args.config}")
    else:
        logger.info("No %s found, using default configuration", args.config)
        config = Config()
    config.mode = args.mode
    if args.strategy:
        config.strategy = args.strategy
    return config


def _backtest_bars(config: Config, args: argparse.Namespace) -> List[Bar]:
    if args.synthetic:
        logger.info("Generating %d synthetic bars (seed=%s)", args.synthetic, args.seed)
        df = generate_trending_market(
            num_bars=args.synthetic, seed=args.seed, timezone=config.data.timezone
        )
        return bars_from_frame(df)
    symbol = args.csv or config.data.symbol
    loader = CSVDataLoader(config.data.csv_dir, config.data.timezone)
    return bars_from_frame(loader.load(symbol))


def run_backtest(config: Config, args: argparse.Namespace) -> None:
    strategy = build_strategy(config.strategy, config.strategies)
    bars = _backtest_bars(config, args)
    result = BacktestEngine(config, strategy).run(bars)
    out_dir = args.out_dir or config.backtest.out_dir
    generate_backtest_report(result, out_dir=out_dir)
    logger.info("Backtest complete. Results saved to the '%s' directory.", out_dir)


def run_live(config: Config) -> None:
    strategy = build_strategy(config.strategy, config.strategies)
    feed = MT5DataFeed(config.mt5, config.data.symbol, config.data.timezone)
    try:
        feed.connect()
    except RuntimeError as exc:
        logger.error("Failed to connect to MetaTrader 5: %s", exc)
        return
    order_client = MT5OrderClient(config.data.symbol) if config.mode == 'live' else None
    engine = LiveEngine(config, strategy, feed, order_client=order_client)
    signal.signal(signal.SIGTERM, lambda *_: engine.stop())
    try:
        engine.run_forever()
    except KeyboardInterrupt:
        engine.stop()
    finally:
        feed.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trading simulation and risk engine")
    parser.add_argument('mode', choices=['backtest', 'paper', 'live'], help="Operating mode")
    parser.add_argument('--config', default=DEFAULT_CONFIG, help="Path to configuration YAML file")
    source = parser.add_mutually_exclusive_group()
    source.add_argument('--csv', metavar='SYMBOL', help="Backtest on {csv_dir}/SYMBOL.csv")
    source.add_argument('--synthetic', type=int, metavar='N', help="Backtest on N synthetic bars")
    parser.add_argument('--seed', type=int, default=None, help="Seed for synthetic data")
    parser.add_argument('--strategy', choices=STRATEGY_NAMES, help="Override the configured strategy")
    parser.add_argument('--out-dir', help="Override the report directory")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Parse command-line arguments and dispatch to the appropriate mode."""
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    config = _load(args)

    if args.mode == 'backtest':
        logger.info("Running backtest...")
        run_backtest(config, args)
    else:
        logger.info("Starting %s trading via MetaTrader 5...", args.mode)
        run_live(config)


if __name__ == '__main__':
    main()
