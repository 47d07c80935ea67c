"""
Quote sources for the refresh pipeline.

YahooQuoteSource talks to Yahoo Finance through yfinance (blocking calls are
pushed onto a worker thread). MockQuoteSource serves synthetic quotes built
from the same tables the refresher uses when a live lookup fails.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from datetime import datetime, timezone
from typing import Protocol, Sequence

import pandas as pd
import yfinance as yf

from portfolio_tracker.config import Settings
from portfolio_tracker.errors import QuoteFetchError

logger = logging.getLogger(__name__)


# ─── Synthetic quote tables ──────────────────────────────────────────────────
# symbol → (base price, full width of the random band around it)
MOCK_PRICE_BASES = {
    "RELIANCE.NS":   (2680.0, 100.0),
    "TCS.NS":        (3920.0, 150.0),
    "HDFCBANK.NS":   (1620.0, 80.0),
    "INFY.NS":       (1380.0, 70.0),
    "ICICIBANK.NS":  (1050.0, 50.0),
    "BHARTIARTL.NS": (850.0, 40.0),
    "SBIN.NS":       (550.0, 30.0),
    "ITC.NS":        (410.0, 20.0),
    "HINDUNILVR.NS": (2650.0, 120.0),
    "KOTAKBANK.NS":  (1750.0, 90.0),
}
# symbol → (base P/E, band width, latest earnings)
MOCK_METRICS = {
    "RELIANCE.NS":  (14.2, 2.0, "Q3 FY24: ₹18,951 Cr"),
    "TCS.NS":       (28.5, 3.0, "Q3 FY24: ₹11,735 Cr"),
    "HDFCBANK.NS":  (19.8, 2.0, "Q3 FY24: ₹16,511 Cr"),
    "INFY.NS":      (25.1, 2.0, "Q3 FY24: ₹6,586 Cr"),
    "ICICIBANK.NS": (16.7, 2.0, "Q3 FY24: ₹10,261 Cr"),
}
UNKNOWN_PRICE_BASE = 1000.0
UNKNOWN_PRICE_SPREAD = 500.0
LAST_PRICE_BAND = 0.04  # ±2% around the last known price


class QuoteSource(Protocol):
    async def get_price(self, symbol: str) -> dict:
        ...

    async def get_metrics(self, symbol: str) -> dict:
        ...

    async def get_batch(self, symbols: Sequence[str]) -> list[dict]:
        ...


def synthetic_price(symbol: str, rng: random.Random, last_price: float | None = None) -> float:
    if symbol in MOCK_PRICE_BASES:
        base, spread = MOCK_PRICE_BASES[symbol]
        price = base + (rng.random() - 0.5) * spread
    elif last_price and last_price > 0:
        price = last_price * (1 + (rng.random() - 0.5) * LAST_PRICE_BAND)
    else:
        price = UNKNOWN_PRICE_BASE + rng.random() * UNKNOWN_PRICE_SPREAD
    return round(price, 2)


def synthetic_metrics(symbol: str, rng: random.Random) -> dict:
    if symbol in MOCK_METRICS:
        base, spread, earnings = MOCK_METRICS[symbol]
        pe_ratio = base + (rng.random() - 0.5) * spread
    else:
        pe_ratio = 15 + rng.random() * 10
        earnings = "Q3 FY24: N/A"
    return {"pe_ratio": round(pe_ratio, 2), "earnings": earnings}


class MockQuoteSource:
    """Offline source; every lookup succeeds with synthetic data flagged as fallback."""

    def __init__(self, rng: random.Random | None = None, latency: float = 0.0):
        self.rng = rng or random.Random()
        self.latency = latency

    async def get_price(self, symbol: str) -> dict:
        await asyncio.sleep(self.latency)
        return {"price": synthetic_price(symbol, self.rng), "fallback": True}

    async def get_metrics(self, symbol: str) -> dict:
        await asyncio.sleep(self.latency)
        return synthetic_metrics(symbol, self.rng)

    async def get_batch(self, symbols: Sequence[str]) -> list[dict]:
        results = []
        for symbol in symbols:
            price = await self.get_price(symbol)
            metrics = await self.get_metrics(symbol)
            results.append({"symbol": symbol, **price, **metrics})
        return results


def _extract_close_series(batch_df: pd.DataFrame, ticker: str, multi_ticker: bool) -> pd.Series:
    if batch_df.empty:
        return pd.Series(dtype=float)

    if multi_ticker:
        if ticker not in batch_df.columns.get_level_values(0):
            return pd.Series(dtype=float)
        if "Close" not in batch_df[ticker].columns:
            return pd.Series(dtype=float)
        return batch_df[ticker]["Close"].dropna()

    if "Close" not in batch_df.columns:
        return pd.Series(dtype=float)
    return batch_df["Close"].dropna()


def _finite_or_none(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) and number != 0 else None


def _metrics_from_info(info: dict) -> dict:
    pe_ratio = _finite_or_none(info.get("trailingPE")) or _finite_or_none(info.get("forwardPE"))

    earnings = None
    eps = _finite_or_none(info.get("trailingEps"))
    if eps is not None:
        quarter = info.get("mostRecentQuarter")
        label = (
            datetime.fromtimestamp(quarter, tz=timezone.utc).strftime("Quarter to %b %Y")
            if isinstance(quarter, (int, float))
            else "Trailing"
        )
        earnings = f"{label}: EPS {eps:,.2f}"

    return {"pe_ratio": pe_ratio, "earnings": earnings}


class YahooQuoteSource:
    """
    Yahoo Finance quotes via yfinance.

    get_batch prices every symbol with a single yf.download call; symbols with
    no usable close are left out of the result rather than raising.
    """

    def __init__(self, history_period: str = "5d", fetch_fundamentals: bool = True):
        self.history_period = history_period
        self.fetch_fundamentals = fetch_fundamentals

    def _download_closes(self, symbols: Sequence[str]) -> dict[str, float]:
        unique_symbols = list(dict.fromkeys(symbols))
        raw = yf.download(
            unique_symbols,
            period=self.history_period,
            interval="1d",
            group_by="ticker",
            progress=False,
            auto_adjust=False,
        )
        if raw is None or raw.empty:
            raise QuoteFetchError(",".join(unique_symbols), "Yahoo Finance returned no data")

        multi_ticker = isinstance(raw.columns, pd.MultiIndex)
        prices: dict[str, float] = {}
        for symbol in unique_symbols:
            closes = _extract_close_series(raw, symbol, multi_ticker)
            if closes.empty:
                continue
            price = float(closes.iloc[-1])
            if price > 0:
                prices[symbol] = price
        return prices

    def _ticker_info(self, symbol: str) -> dict:
        return yf.Ticker(symbol).info or {}

    async def get_price(self, symbol: str) -> dict:
        prices = await asyncio.to_thread(self._download_closes, [symbol])
        if symbol not in prices:
            raise QuoteFetchError(symbol, "no price data")
        return {"price": prices[symbol]}

    async def get_metrics(self, symbol: str) -> dict:
        try:
            info = await asyncio.to_thread(self._ticker_info, symbol)
        except Exception as exc:
            raise QuoteFetchError(symbol, f"fundamentals unavailable ({exc})") from exc
        return _metrics_from_info(info)

    async def get_batch(self, symbols: Sequence[str]) -> list[dict]:
        prices = await asyncio.to_thread(self._download_closes, symbols)

        results: list[dict] = []
        for symbol, price in prices.items():
            entry = {"symbol": symbol, "price": price, "pe_ratio": None, "earnings": None}
            if self.fetch_fundamentals:
                try:
                    entry.update(await self.get_metrics(symbol))
                except QuoteFetchError as exc:
                    logger.debug("Batch fundamentals skipped: %s", exc)
            results.append(entry)
        return results


def build_quote_source(settings: Settings) -> QuoteSource:
    if not settings.USE_LIVE_QUOTES:
        logger.info("Live quotes disabled; serving synthetic data")
        return MockQuoteSource()
    return YahooQuoteSource(
        history_period=settings.PRICE_HISTORY_PERIOD,
        fetch_fundamentals=settings.FETCH_FUNDAMENTALS,
    )
