"""
Portfolio session: owns the current snapshot and serializes refreshes.

Snapshots are replaced, never edited, so readers can keep using whatever
snapshot they grabbed while a refresh is running.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import pandas as pd

from portfolio_tracker.config import Settings, get_settings
from portfolio_tracker.data_pipeline.compute import recompute_snapshot
from portfolio_tracker.data_pipeline.defaults import default_positions, sample_positions
from portfolio_tracker.data_pipeline.market_fetch import QuoteSource, build_quote_source
from portfolio_tracker.data_pipeline.parser import load_holdings
from portfolio_tracker.data_pipeline.refresh import QuoteRefresher
from portfolio_tracker.data_pipeline.schema import PortfolioSnapshot
from portfolio_tracker.errors import RefreshError

logger = logging.getLogger(__name__)


class PortfolioTracker:
    def __init__(
        self,
        source: QuoteSource | None = None,
        settings: Settings | None = None,
        refresher: QuoteRefresher | None = None,
    ):
        self.settings = settings or get_settings()
        self.refresher = refresher or QuoteRefresher(
            source or build_quote_source(self.settings),
            rate_limit_delay=self.settings.QUOTE_RATE_LIMIT_DELAY_SECONDS,
        )
        self.snapshot: PortfolioSnapshot | None = None
        self.last_updated: datetime | None = None
        self.error: str | None = None
        self._refresh_lock = asyncio.Lock()

    async def initialize(self) -> PortfolioSnapshot:
        return await self.load_positions(sample_positions())

    async def load_positions(self, positions: pd.DataFrame | None) -> PortfolioSnapshot:
        """Replace the whole portfolio, then fetch live quotes for it.

        The swap and its refresh run under one lock acquisition; a refresh
        already in flight completes before the new positions are swapped in.
        """
        if positions is None or positions.empty:
            logger.warning("No positions supplied; loading the default portfolio")
            positions = default_positions()
        async with self._refresh_lock:
            self.error = None
            self.snapshot = recompute_snapshot(positions)
            return await self._refresh_current()

    async def load_spreadsheet(self, source, filename: str | None = None) -> PortfolioSnapshot:
        result = load_holdings(source, filename)
        snapshot = await self.load_positions(result.positions)
        if result.message and self.error is None:
            self.error = result.message
        return snapshot

    async def refresh(self) -> PortfolioSnapshot | None:
        async with self._refresh_lock:
            return await self._refresh_current()

    async def _refresh_current(self) -> PortfolioSnapshot | None:
        # Caller holds _refresh_lock.
        if self.snapshot is None:
            self.error = "No portfolio stocks available"
            return None
        try:
            snapshot = await self.refresher.refresh(self.snapshot.positions)
        except RefreshError as exc:
            logger.warning("Refresh skipped: %s", exc)
            self.error = str(exc)
            return self.snapshot

        self.snapshot = snapshot
        self.last_updated = snapshot.as_of
        self.error = None
        return snapshot

    async def run_auto_refresh(
        self,
        interval: float | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        interval = interval if interval is not None else self.settings.AUTO_REFRESH_INTERVAL_SECONDS
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self.refresh()
