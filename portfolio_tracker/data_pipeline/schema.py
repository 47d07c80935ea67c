from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import pandas as pd


EXCHANGE_NSE = "NSE"
EXCHANGE_BSE = "BSE"

DEFAULT_SECTOR = "Others"

POSITION_COLUMNS = [
    "id",
    "particulars",
    "purchase_price",
    "quantity",
    "investment",
    "portfolio_pct",
    "exchange",
    "current_price",
    "present_value",
    "gain_loss",
    "pe_ratio",
    "latest_earnings",
    "sector",
    "symbol",
    "quote_status",
    "is_fallback",
]

SECTOR_COLUMNS = [
    "sector",
    "total_investment",
    "total_present_value",
    "total_gain_loss",
    "position_count",
    "member_ids",
]


def empty_positions() -> pd.DataFrame:
    return pd.DataFrame(columns=POSITION_COLUMNS)


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Positions, their sector summaries and portfolio totals at one point in time.

    Built fresh by every recomputation. The frames are private copies, so a
    snapshot never changes after it is created.
    """

    positions: pd.DataFrame
    sector_summaries: pd.DataFrame
    total_investment: float
    total_present_value: float
    total_gain_loss: float
    as_of: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        object.__setattr__(self, "positions", self.positions.copy())
        object.__setattr__(self, "sector_summaries", self.sector_summaries.copy())

    @property
    def fallback_symbols(self) -> list[str]:
        flagged = self.positions[self.positions["is_fallback"].astype(bool)]
        return list(dict.fromkeys(flagged["symbol"].tolist()))

    def position_for(self, symbol: str) -> pd.Series | None:
        rows = self.positions[self.positions["symbol"] == symbol]
        if rows.empty:
            return None
        return rows.iloc[0]
