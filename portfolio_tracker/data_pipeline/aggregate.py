from __future__ import annotations

import pandas as pd

from portfolio_tracker.data_pipeline.schema import SECTOR_COLUMNS


def group_by_sector(positions: pd.DataFrame) -> pd.DataFrame:
    """One row per sector tag, in the order each tag first appears.

    Tags are compared exactly as stored (no case folding or trimming).
    """
    if positions.empty:
        return pd.DataFrame(columns=SECTOR_COLUMNS)

    grouped = (
        positions.groupby("sector", sort=False, dropna=False, as_index=False)
        .agg(
            total_investment=("investment", "sum"),
            total_present_value=("present_value", "sum"),
            position_count=("id", "size"),
            member_ids=("id", list),
        )
    )
    grouped["total_gain_loss"] = grouped["total_present_value"] - grouped["total_investment"]
    return grouped[SECTOR_COLUMNS].reset_index(drop=True)
