from __future__ import annotations

import math
import unittest

import pandas as pd

from portfolio_tracker.data_pipeline.compute import (
    apply_position_metrics,
    investment,
    portfolio_weight,
    recompute_snapshot,
)
from portfolio_tracker.data_pipeline.defaults import default_positions
from portfolio_tracker.data_pipeline.schema import POSITION_COLUMNS, SECTOR_COLUMNS


class PositionMathTests(unittest.TestCase):
    def test_investment_rejects_non_finite_inputs(self) -> None:
        self.assertAlmostEqual(investment(2500.0, 10), 25000.0)
        with self.assertRaises(ValueError):
            investment(float("nan"), 10)
        with self.assertRaises(ValueError):
            investment(100.0, float("inf"))
        with self.assertRaises(ValueError):
            investment(pd.Series([1.0, float("nan")]), pd.Series([1, 2]))

    def test_portfolio_weight_zero_total(self) -> None:
        self.assertEqual(portfolio_weight(100.0, 0.0), 0.0)
        weights = portfolio_weight(pd.Series([0.0, 0.0]), 0.0)
        self.assertListEqual(weights.tolist(), [0.0, 0.0])

    def test_apply_position_metrics_fills_missing_columns(self) -> None:
        df = pd.DataFrame(
            {
                "id": ["1"],
                "particulars": ["Infosys Ltd"],
                "purchase_price": ["1300"],
                "quantity": [15],
                "exchange": ["NSE"],
                "current_price": [1380.0],
                "symbol": ["INFY.NS"],
            }
        )
        out = apply_position_metrics(df)
        self.assertAlmostEqual(out.iloc[0]["investment"], 19500.0)
        self.assertAlmostEqual(out.iloc[0]["present_value"], 20700.0)
        self.assertAlmostEqual(out.iloc[0]["gain_loss"], 1200.0)
        self.assertEqual(out.iloc[0]["sector"], "Others")
        self.assertEqual(out.iloc[0]["quote_status"], "initial")
        self.assertFalse(out.iloc[0]["is_fallback"])


class RecomputeSnapshotTests(unittest.TestCase):
    def test_totals_and_weights_for_default_portfolio(self) -> None:
        snapshot = recompute_snapshot(default_positions())

        self.assertListEqual(list(snapshot.positions.columns), POSITION_COLUMNS)
        self.assertListEqual(list(snapshot.sector_summaries.columns), SECTOR_COLUMNS)
        self.assertAlmostEqual(snapshot.total_investment, 103000.0)
        self.assertAlmostEqual(snapshot.total_present_value, 110000.0)
        self.assertAlmostEqual(snapshot.total_gain_loss, 7000.0)
        self.assertAlmostEqual(snapshot.positions["portfolio_pct"].sum(), 100.0, places=6)
        self.assertAlmostEqual(snapshot.positions.iloc[0]["portfolio_pct"], 26800.0 / 110000.0 * 100)

    def test_every_position_satisfies_derived_value_rules(self) -> None:
        positions = default_positions()
        positions.loc[0, "current_price"] = 2000.0
        snapshot = recompute_snapshot(positions)

        for row in snapshot.positions.itertuples(index=False):
            self.assertAlmostEqual(row.investment, row.purchase_price * row.quantity)
            self.assertAlmostEqual(row.present_value, row.current_price * row.quantity)
            self.assertAlmostEqual(row.gain_loss, row.present_value - row.investment)
        self.assertAlmostEqual(snapshot.positions.iloc[0]["gain_loss"], -5000.0)

    def test_stale_sheet_values_are_overwritten(self) -> None:
        positions = default_positions()
        positions["investment"] = 1.0
        positions["portfolio_pct"] = 99.0
        snapshot = recompute_snapshot(positions)

        self.assertAlmostEqual(snapshot.positions.iloc[0]["investment"], 25000.0)
        self.assertAlmostEqual(snapshot.positions["portfolio_pct"].sum(), 100.0, places=6)

    def test_worthless_portfolio_has_zero_weights(self) -> None:
        positions = default_positions()
        positions["current_price"] = 0.0
        snapshot = recompute_snapshot(positions)

        self.assertEqual(snapshot.total_present_value, 0.0)
        self.assertTrue((snapshot.positions["portfolio_pct"] == 0.0).all())
        self.assertFalse(snapshot.positions["portfolio_pct"].isna().any())

    def test_recompute_is_idempotent(self) -> None:
        first = recompute_snapshot(default_positions())
        second = recompute_snapshot(first.positions)

        pd.testing.assert_frame_equal(first.positions, second.positions)
        self.assertEqual(first.total_present_value, second.total_present_value)
        self.assertEqual(first.total_gain_loss, second.total_gain_loss)

    def test_snapshot_is_isolated_from_its_input(self) -> None:
        positions = default_positions()
        snapshot = recompute_snapshot(positions)
        positions.loc[0, "current_price"] = 1.0

        self.assertAlmostEqual(snapshot.positions.iloc[0]["current_price"], 2680.0)
        self.assertTrue(math.isfinite(snapshot.total_present_value))

    def test_fallback_symbols_and_position_lookup(self) -> None:
        positions = default_positions()
        positions.loc[2, "is_fallback"] = True
        snapshot = recompute_snapshot(positions)

        self.assertListEqual(snapshot.fallback_symbols, ["TCS.NS"])
        self.assertEqual(snapshot.position_for("INFY.NS")["particulars"], "Infosys Ltd")
        self.assertIsNone(snapshot.position_for("MISSING.NS"))


if __name__ == "__main__":
    unittest.main()
