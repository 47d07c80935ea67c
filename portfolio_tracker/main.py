from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import pandas as pd

from portfolio_tracker.config import get_settings
from portfolio_tracker.data_pipeline.compute import recompute_snapshot
from portfolio_tracker.data_pipeline.defaults import default_positions
from portfolio_tracker.data_pipeline.market_fetch import MockQuoteSource, build_quote_source
from portfolio_tracker.data_pipeline.parser import load_holdings
from portfolio_tracker.data_pipeline.refresh import QuoteRefresher
from portfolio_tracker.data_pipeline.schema import PortfolioSnapshot
from portfolio_tracker.errors import RefreshError
from portfolio_tracker.logging_config import setup_logging


SUMMARY_COLUMNS = [
    "particulars",
    "symbol",
    "quantity",
    "purchase_price",
    "current_price",
    "present_value",
    "gain_loss",
    "portfolio_pct",
    "pe_ratio",
    "quote_status",
]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh and summarise an equity holdings sheet.")
    parser.add_argument("path", nargs="?", help="holdings .xlsx/.csv (defaults to DEFAULT_HOLDINGS_PATH)")
    parser.add_argument("--offline", action="store_true", help="use synthetic quotes only")
    parser.add_argument("--no-refresh", action="store_true", help="skip the quote refresh")
    return parser.parse_args(argv)


def load_positions(path: str) -> pd.DataFrame:
    if not Path(path).exists():
        print(f"{path} not found; using the default portfolio")
        return default_positions()
    result = load_holdings(path)
    if result.message:
        print(result.message)
    return result.positions


def print_snapshot(snapshot: PortfolioSnapshot) -> None:
    with pd.option_context("display.width", 160, "display.max_columns", None):
        print(snapshot.positions[SUMMARY_COLUMNS])
        print(snapshot.sector_summaries.drop(columns=["member_ids"]))
    print(
        f"Investment {snapshot.total_investment:,.2f} | "
        f"Present value {snapshot.total_present_value:,.2f} | "
        f"Gain/Loss {snapshot.total_gain_loss:+,.2f}"
    )
    if snapshot.fallback_symbols:
        print(f"Synthetic prices: {', '.join(snapshot.fallback_symbols)}")


async def run(args: argparse.Namespace) -> PortfolioSnapshot:
    settings = get_settings()
    positions = load_positions(args.path or settings.DEFAULT_HOLDINGS_PATH)
    snapshot = recompute_snapshot(positions)
    if args.no_refresh:
        return snapshot

    source = MockQuoteSource() if args.offline else build_quote_source(settings)
    refresher = QuoteRefresher(source, rate_limit_delay=settings.QUOTE_RATE_LIMIT_DELAY_SECONDS)
    try:
        return await refresher.refresh(snapshot.positions)
    except RefreshError as exc:
        print(f"Refresh skipped: {exc}")
        return snapshot


def main(argv: list[str] | None = None) -> None:
    setup_logging(get_settings().LOG_LEVEL)
    snapshot = asyncio.run(run(parse_args(argv)))
    print_snapshot(snapshot)


if __name__ == "__main__":
    main()
