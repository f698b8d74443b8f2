# forecast_lab/cli.py
from __future__ import annotations

import argparse
import logging
from pathlib import Path

import pandas as pd

from .analysis import view_history
from .config import Config
from .data_fetcher import fetch_rates
from .database import Database
from .errors import ForecastLabError
from .forecast import forecast_latest
from .manager import GenerationCoordinator


def _normalize_pair(pair: str) -> str:
    """Ensures a pair is in the format BASE/QUOTE."""
    if "/" in pair:
        return pair.upper()
    for quote in ["USDT", "BUSD", "BTC", "ETH", "USD", "JPY", "EUR"]:
        if pair.upper().endswith(quote) and len(pair) > len(quote):
            return f"{pair[:-len(quote)]}/{quote}".upper()
    return pair.upper()


def _setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - %(message)s")


def _run_train(args: argparse.Namespace, cfg: Config, db: Database) -> None:
    """Handler for the 'train' command."""
    coordinator = GenerationCoordinator(cfg, db, logging.getLogger())
    try:
        result = coordinator.run()
    except ForecastLabError as e:
        logging.error(f"Training aborted for {cfg['currency_pair']}: {e}")
        return

    print("--- Training Result ---")
    print(f"Run: {result.run_id}")
    print(f"Generations: {result.generations} ({result.stop_reason})")
    for gen in result.history:
        best = f"{gen.best_mse:.6f}" if gen.best_mse is not None else "-"
        print(f"  gen {gen.generation}: best_mse={best}, diversity={gen.diversity:.3f}")
    print(f"Promoted: {result.promoted}")


def _run_forecast(args: argparse.Namespace, cfg: Config, db: Database) -> None:
    """Handler for the 'forecast' command."""
    try:
        value = forecast_latest(cfg, db)
    except ForecastLabError as e:
        logging.error(f"Forecast failed for {cfg['currency_pair']}: {e}")
        return
    if value is None:
        print("No forecast model available.")
        return
    print(f"{cfg['currency_pair']}: {value:.6f}")


def _run_fetch_data(args: argparse.Namespace, db: Database) -> None:
    """Handler for the 'fetch-data' command."""
    latest_ts = db.get_latest_timestamp(args.pair)
    if latest_ts:
        start_ts = latest_ts + 1
        print(
            f"Last rate for {args.pair} found at "
            f"{pd.to_datetime(latest_ts, unit='ms', utc=True)}. Fetching new data..."
        )
    else:
        start_ts = int(pd.to_datetime(args.since, utc=True).timestamp() * 1000)
        print(f"No existing data for {args.pair}. Fetching since {args.since}...")

    rates_df = fetch_rates(args.exchange, args.pair, args.timeframe, start_ts)
    if rates_df.empty:
        print("No new data to fetch.")
        return
    print(f"Fetched {len(rates_df)} new rates. Saving to database...")
    db.save_rates(rates_df)
    print("Data saved successfully.")


def _run_analyze(args: argparse.Namespace, cfg: Config, db: Database) -> None:
    """Handler for the 'analyze' command."""
    view_history(db, args.pair or cfg["currency_pair"], visualize=args.visualize, output_dir=Path(args.output_dir))


def main() -> None:  # pragma: no cover
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Genetic search over forecast feature parameters")
    parser.add_argument("--db", default="forecast_lab.db", help="Path to the SQLite database file.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- Train command ---
    train_parser = subparsers.add_parser("train", help="Run one generational search and promote the winner")
    train_parser.add_argument("--config", default="config.json", help="Path to configuration file")
    train_parser.set_defaults(func=_run_train, needs_config=True)

    # --- Forecast command ---
    forecast_parser = subparsers.add_parser("forecast", help="Predict with the promoted model")
    forecast_parser.add_argument("--config", default="config.json", help="Path to configuration file")
    forecast_parser.set_defaults(func=_run_forecast, needs_config=True)

    # --- Analyze command ---
    analyze_parser = subparsers.add_parser("analyze", help="Show stored models and generation history")
    analyze_parser.add_argument("--config", default="config.json", help="Path to configuration file")
    analyze_parser.add_argument("--pair", type=str, help="Pair to analyze (defaults to the configured pair)")
    analyze_parser.add_argument("--visualize", action="store_true", help="Generate and save history plots")
    analyze_parser.add_argument("--output-dir", default="analysis_plots", help="Directory for saved plots")
    analyze_parser.set_defaults(func=_run_analyze, needs_config=True)

    # --- Fetch Data command ---
    fetch_parser = subparsers.add_parser("fetch-data", help="Fetch close prices from an exchange")
    fetch_parser.add_argument("--exchange", type=str, default="binance", help="Exchange name (e.g., binance)")
    fetch_parser.add_argument("--pair", type=str, required=True, help="Pair to fetch (e.g., BTC/USDT)")
    fetch_parser.add_argument("--timeframe", type=str, default="1m", help="Timeframe (e.g., 1m, 5m, 1h)")
    fetch_parser.add_argument("--since", type=str, default="2024-01-01", help="Start date to fetch from (YYYY-MM-DD)")
    fetch_parser.set_defaults(func=_run_fetch_data, needs_config=False)

    args = parser.parse_args()

    if not hasattr(args, "func") or not args.command:
        parser.print_help()
        return

    if getattr(args, "pair", None):
        args.pair = _normalize_pair(args.pair)

    _setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    db = Database(args.db)
    try:
        if args.needs_config:
            args.func(args, Config(Path(args.config)), db)
        else:
            args.func(args, db)
    finally:
        db.close()


if __name__ == "__main__":  # pragma: no cover
    main()
