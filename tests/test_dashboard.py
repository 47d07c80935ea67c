from __future__ import annotations

import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace

import pandas as pd

from portfolio_tracker import dashboard
from portfolio_tracker.data_pipeline.compute import recompute_snapshot
from portfolio_tracker.data_pipeline.defaults import default_positions
from portfolio_tracker.data_pipeline.schema import SECTOR_COLUMNS, empty_positions


def _stub_streamlit(calls: list) -> SimpleNamespace:
    def record(name):
        return lambda *args, **kwargs: calls.append((name, args, kwargs))

    return SimpleNamespace(
        columns=lambda n: [SimpleNamespace(metric=record("metric")) for _ in range(n)],
        caption=record("caption"),
        warning=record("warning"),
        info=record("info"),
        subheader=record("subheader"),
        dataframe=record("dataframe"),
        plotly_chart=record("plotly_chart"),
    )


class FormattingTests(unittest.TestCase):
    def test_format_inr_uses_indian_grouping(self) -> None:
        self.assertEqual(dashboard.format_inr(1234567.891), "₹12,34,567.89")
        self.assertEqual(dashboard.format_inr(100000), "₹1,00,000.00")
        self.assertEqual(dashboard.format_inr(999), "₹999.00")
        self.assertEqual(dashboard.format_inr(-500), "-₹500.00")
        self.assertEqual(dashboard.format_inr(None), "N/A")
        self.assertEqual(dashboard.format_inr(float("nan")), "N/A")

    def test_format_pct(self) -> None:
        self.assertEqual(dashboard.format_pct(12.3456), "12.35%")
        self.assertEqual(dashboard.format_pct(None), "N/A")

    def test_gain_loss_color(self) -> None:
        self.assertEqual(dashboard.gain_loss_color(10.0), dashboard.GAIN_COLOR)
        self.assertEqual(dashboard.gain_loss_color(-0.01), dashboard.LOSS_COLOR)
        self.assertEqual(dashboard.gain_loss_color(0), dashboard.NEUTRAL_COLOR)

    def test_is_stale(self) -> None:
        now = datetime(2024, 1, 1, 12, 0, 0)
        self.assertTrue(dashboard.is_stale(None, 15, now=now))
        self.assertTrue(dashboard.is_stale(now - timedelta(seconds=15), 15, now=now))
        self.assertFalse(dashboard.is_stale(now - timedelta(seconds=5), 15, now=now))


class RenderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls: list = []
        self.original_st = dashboard.st
        dashboard.st = _stub_streamlit(self.calls)

    def tearDown(self) -> None:
        dashboard.st = self.original_st

    def _names(self) -> list[str]:
        return [name for name, _, _ in self.calls]

    def test_render_snapshot_shows_every_section(self) -> None:
        positions = default_positions()
        positions.loc[0, "is_fallback"] = True
        tracker = SimpleNamespace(
            snapshot=recompute_snapshot(positions),
            last_updated=datetime(2024, 1, 1, 9, 30),
            error="Batch quote request failed",
        )
        dashboard.render_snapshot(tracker)

        names = self._names()
        self.assertEqual(names.count("metric"), 3)
        self.assertEqual(names.count("dataframe"), 2)
        self.assertEqual(names.count("plotly_chart"), 2)
        self.assertIn(("warning", ("Batch quote request failed",), {}), self.calls)
        info_text = [args[0] for name, args, _ in self.calls if name == "info"]
        self.assertTrue(any("RELIANCE.NS" in text for text in info_text))

        holdings = [args[0] for name, args, _ in self.calls if name == "dataframe"][0]
        self.assertListEqual(list(holdings.columns), list(dashboard.HOLDINGS_DISPLAY_COLUMNS.values()))

    def test_render_snapshot_without_data(self) -> None:
        dashboard.render_snapshot(SimpleNamespace(snapshot=None, last_updated=None, error=None))
        self.assertListEqual(self._names(), ["info"])

    def test_empty_tables_render_placeholders(self) -> None:
        dashboard.render_holdings_table(empty_positions())
        dashboard.render_sector_summary(pd.DataFrame(columns=SECTOR_COLUMNS))

        self.assertNotIn("dataframe", self._names())
        self.assertEqual(self._names().count("info"), 2)


if __name__ == "__main__":
    unittest.main()
