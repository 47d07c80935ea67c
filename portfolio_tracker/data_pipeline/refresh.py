from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import pandas as pd

from portfolio_tracker.data_pipeline.compute import recompute_snapshot
from portfolio_tracker.data_pipeline.market_fetch import QuoteSource, synthetic_price
from portfolio_tracker.data_pipeline.schema import PortfolioSnapshot
from portfolio_tracker.data_pipeline.ticker_builder import is_valid_symbol
from portfolio_tracker.errors import RefreshError

logger = logging.getLogger(__name__)


DEFAULT_RATE_LIMIT_DELAY = 0.2  # seconds between per-symbol requests
SKIPPED_STATUS = "skipped"
_MISSING_EARNINGS = {"", "N/A", "NA", "-"}


class QuoteStatus(str, Enum):
    PENDING = "pending"
    BATCH = "batch"
    INDIVIDUAL = "individual"
    SYNTHETIC = "synthetic"


@dataclass
class SymbolQuote:
    symbol: str
    status: QuoteStatus = QuoteStatus.PENDING
    price: float | None = None
    pe_ratio: float | None = None
    earnings: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is QuoteStatus.PENDING

    @property
    def is_fallback(self) -> bool:
        return self.status is QuoteStatus.SYNTHETIC

    def resolve(self, status: QuoteStatus, price: float, pe_ratio=None, earnings=None) -> None:
        self.status = status
        self.price = round(price, 2)
        self.pe_ratio = _clean_pe_ratio(pe_ratio)
        self.earnings = _clean_earnings(earnings)


def _usable_price(value) -> float | None:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) and price > 0 else None


def _clean_pe_ratio(value) -> float | None:
    try:
        pe_ratio = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(pe_ratio) or pe_ratio == 0:
        return None
    return round(pe_ratio, 2)


def _clean_earnings(value) -> str | None:
    if not isinstance(value, str) or value.strip() in _MISSING_EARNINGS:
        return None
    return value.strip()


def valid_symbols(symbols: Iterable) -> list[str]:
    """Distinct lookup keys in first-seen order; anything unusable is dropped."""
    result: dict[str, None] = {}
    for symbol in symbols:
        if not is_valid_symbol(symbol):
            logger.debug("Ignoring invalid symbol %r", symbol)
            continue
        result.setdefault(symbol.strip(), None)
    return list(result)


def merge_quotes(positions: pd.DataFrame, quotes: dict[str, SymbolQuote]) -> pd.DataFrame:
    """Apply resolved quotes to positions by symbol; quantities never change.

    P/E and earnings are only overwritten when the quote carries a value.
    Rows whose symbol was never looked up keep their data and are marked skipped.
    """
    out = positions.copy()
    for col in ["pe_ratio", "latest_earnings", "quote_status", "is_fallback"]:
        if col not in out.columns:
            out[col] = None

    prices, pe_ratios, earnings, statuses, fallbacks = [], [], [], [], []
    for row in out.itertuples(index=False):
        quote = quotes.get(str(row.symbol).strip())
        if quote is None or quote.is_pending:
            prices.append(row.current_price)
            pe_ratios.append(row.pe_ratio)
            earnings.append(row.latest_earnings)
            statuses.append(SKIPPED_STATUS)
            fallbacks.append(bool(row.is_fallback) if pd.notna(row.is_fallback) else False)
            continue
        prices.append(quote.price)
        pe_ratios.append(quote.pe_ratio if quote.pe_ratio is not None else row.pe_ratio)
        earnings.append(quote.earnings if quote.earnings is not None else row.latest_earnings)
        statuses.append(quote.status.value)
        fallbacks.append(quote.is_fallback)

    out["current_price"] = prices
    out["pe_ratio"] = pd.to_numeric(pd.Series(pe_ratios, index=out.index, dtype=object), errors="coerce")
    out["latest_earnings"] = earnings
    out["quote_status"] = statuses
    out["is_fallback"] = fallbacks
    return out


class QuoteRefresher:
    """
    Refreshes prices and fundamentals for a set of positions.

    Each symbol goes through at most three levels: one batched request for
    everything, then sequential per-symbol requests spaced by
    ``rate_limit_delay``, then a synthetic quote. A refresh never fails because
    a lookup failed; it only raises RefreshError when there is nothing to look up.
    """

    def __init__(
        self,
        source: QuoteSource,
        rate_limit_delay: float = DEFAULT_RATE_LIMIT_DELAY,
        rng: random.Random | None = None,
    ):
        self.source = source
        self.rate_limit_delay = rate_limit_delay
        self.rng = rng or random.Random()
        self.last_quotes: dict[str, SymbolQuote] = {}

    async def refresh(self, positions: pd.DataFrame) -> PortfolioSnapshot:
        if positions is None or positions.empty:
            raise RefreshError("No portfolio stocks available")

        symbols = valid_symbols(positions["symbol"])
        if not symbols:
            raise RefreshError("No valid stock symbols in portfolio")

        quotes = {symbol: SymbolQuote(symbol) for symbol in symbols}
        await self._resolve_from_batch(quotes)
        await self._resolve_individually(quotes)
        self._resolve_synthetic(quotes, _last_prices(positions))
        self.last_quotes = quotes

        logger.info(
            "Refreshed %d symbols (%d synthetic)",
            len(quotes),
            sum(q.is_fallback for q in quotes.values()),
        )
        return recompute_snapshot(merge_quotes(positions, quotes))

    async def _resolve_from_batch(self, quotes: dict[str, SymbolQuote]) -> None:
        try:
            entries = await self.source.get_batch(list(quotes))
        except Exception as exc:
            logger.warning("Batch quote request failed; retrying per symbol. Details: %s", exc)
            return

        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            quote = quotes.get(entry.get("symbol"))
            price = _usable_price(entry.get("price"))
            if quote is None or not quote.is_pending or price is None:
                continue
            status = QuoteStatus.SYNTHETIC if entry.get("fallback") else QuoteStatus.BATCH
            quote.resolve(status, price, entry.get("pe_ratio"), entry.get("earnings"))

    async def _resolve_individually(self, quotes: dict[str, SymbolQuote]) -> None:
        pending = [quote for quote in quotes.values() if quote.is_pending]
        for idx, quote in enumerate(pending):
            if idx:
                await asyncio.sleep(self.rate_limit_delay)
            try:
                response = await self.source.get_price(quote.symbol)
            except Exception as exc:
                logger.warning("Price lookup failed for %s: %s", quote.symbol, exc)
                continue
            response = response or {}
            price = _usable_price(response.get("price"))
            if price is None:
                logger.warning("No usable price for %s", quote.symbol)
                continue

            metrics: dict = {}
            try:
                metrics = await self.source.get_metrics(quote.symbol) or {}
            except Exception as exc:
                logger.info("Metrics lookup failed for %s: %s", quote.symbol, exc)
            status = QuoteStatus.SYNTHETIC if response.get("fallback") else QuoteStatus.INDIVIDUAL
            quote.resolve(status, price, metrics.get("pe_ratio"), metrics.get("earnings"))

    def _resolve_synthetic(self, quotes: dict[str, SymbolQuote], last_prices: dict[str, float]) -> None:
        for quote in quotes.values():
            if not quote.is_pending:
                continue
            price = synthetic_price(quote.symbol, self.rng, last_prices.get(quote.symbol))
            # Synthetic fundamentals would overwrite real ones, so only the price is faked.
            quote.resolve(QuoteStatus.SYNTHETIC, price)
            logger.warning("Using synthetic price %.2f for %s", price, quote.symbol)


def _last_prices(positions: pd.DataFrame) -> dict[str, float]:
    prices: dict[str, float] = {}
    for symbol, price in zip(positions["symbol"], positions["current_price"]):
        usable = _usable_price(price)
        if isinstance(symbol, str) and usable is not None:
            prices.setdefault(symbol.strip(), usable)
    return prices
