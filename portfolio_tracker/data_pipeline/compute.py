from __future__ import annotations

import numpy as np
import pandas as pd

from portfolio_tracker.data_pipeline.aggregate import group_by_sector
from portfolio_tracker.data_pipeline.schema import (
    DEFAULT_SECTOR,
    POSITION_COLUMNS,
    PortfolioSnapshot,
)


COLUMN_DEFAULTS = {
    "portfolio_pct": 0.0,
    "pe_ratio": None,
    "latest_earnings": None,
    "sector": DEFAULT_SECTOR,
    "quote_status": "initial",
    "is_fallback": False,
}
NUMERIC_INPUT_COLUMNS = ["purchase_price", "quantity", "current_price"]


def _require_finite(name: str, value) -> None:
    values = np.asarray(value, dtype=float)
    if not np.isfinite(values).all():
        raise ValueError(f"{name} must be finite, got {value!r}")


def investment(purchase_price, quantity):
    _require_finite("purchase_price", purchase_price)
    _require_finite("quantity", quantity)
    return purchase_price * quantity


def present_value(current_price, quantity):
    return current_price * quantity


def gain_loss(present_value, investment):
    return present_value - investment


def portfolio_weight(present_value, total_present_value: float):
    # A worthless portfolio has no meaningful weights; report 0 for everyone.
    if total_present_value <= 0:
        if isinstance(present_value, pd.Series):
            return pd.Series(0.0, index=present_value.index)
        return 0.0
    return present_value / total_present_value * 100


def _ensure_columns(positions: pd.DataFrame) -> pd.DataFrame:
    out = positions.copy()
    for col, default in COLUMN_DEFAULTS.items():
        if col not in out.columns:
            out[col] = default
    out["sector"] = out["sector"].fillna(DEFAULT_SECTOR)
    out["quote_status"] = out["quote_status"].fillna("initial")
    out["is_fallback"] = out["is_fallback"].fillna(False).astype(bool)
    return out


def apply_position_metrics(positions: pd.DataFrame) -> pd.DataFrame:
    out = _ensure_columns(positions)
    for col in NUMERIC_INPUT_COLUMNS:
        out[col] = pd.to_numeric(out[col], errors="coerce").astype(float)

    out["investment"] = investment(out["purchase_price"], out["quantity"])
    out["present_value"] = present_value(out["current_price"], out["quantity"])
    out["gain_loss"] = gain_loss(out["present_value"], out["investment"])
    return out


def recompute_snapshot(positions: pd.DataFrame) -> PortfolioSnapshot:
    """Full pass over ``positions``: derived values, weights, sectors and totals.

    Never patches a previous snapshot. Call it after any price or quantity change.
    """
    df = apply_position_metrics(positions)

    total_investment = float(df["investment"].sum())
    total_present_value = float(df["present_value"].sum())
    df["portfolio_pct"] = portfolio_weight(df["present_value"], total_present_value)

    df = df[POSITION_COLUMNS].reset_index(drop=True)
    return PortfolioSnapshot(
        positions=df,
        sector_summaries=group_by_sector(df),
        total_investment=total_investment,
        total_present_value=total_present_value,
        total_gain_loss=gain_loss(total_present_value, total_investment),
    )
