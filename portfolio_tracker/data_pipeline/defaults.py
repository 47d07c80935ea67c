from __future__ import annotations

import pandas as pd

from portfolio_tracker.data_pipeline.compute import apply_position_metrics
from portfolio_tracker.data_pipeline.schema import EXCHANGE_NSE, POSITION_COLUMNS


# Used whenever a holdings table yields nothing usable; an empty portfolio is
# never handed to the rest of the pipeline.
DEFAULT_HOLDINGS = [
    {
        "particulars": "Reliance Industries Ltd",
        "purchase_price": 2500.0,
        "quantity": 10,
        "portfolio_pct": 25.0,
        "current_price": 2680.0,
        "pe_ratio": 14.2,
        "latest_earnings": "Q3 FY24: ₹18,951 Cr",
        "sector": "Energy",
        "symbol": "RELIANCE.NS",
    },
    {
        "particulars": "HDFC Bank Ltd",
        "purchase_price": 1500.0,
        "quantity": 20,
        "portfolio_pct": 30.0,
        "current_price": 1620.0,
        "pe_ratio": 19.8,
        "latest_earnings": "Q3 FY24: ₹16,511 Cr",
        "sector": "Banking",
        "symbol": "HDFCBANK.NS",
    },
    {
        "particulars": "Tata Consultancy Services",
        "purchase_price": 3800.0,
        "quantity": 5,
        "portfolio_pct": 19.0,
        "current_price": 3920.0,
        "pe_ratio": 28.5,
        "latest_earnings": "Q3 FY24: ₹11,735 Cr",
        "sector": "IT",
        "symbol": "TCS.NS",
    },
    {
        "particulars": "Infosys Ltd",
        "purchase_price": 1300.0,
        "quantity": 15,
        "portfolio_pct": 19.5,
        "current_price": 1380.0,
        "pe_ratio": 25.1,
        "latest_earnings": "Q3 FY24: ₹6,586 Cr",
        "sector": "IT",
        "symbol": "INFY.NS",
    },
    {
        "particulars": "ICICI Bank Ltd",
        "purchase_price": 950.0,
        "quantity": 10,
        "portfolio_pct": 9.5,
        "current_price": 1050.0,
        "pe_ratio": 16.7,
        "latest_earnings": "Q3 FY24: ₹10,261 Cr",
        "sector": "Banking",
        "symbol": "ICICIBANK.NS",
    },
]


# Initial portfolio shown before any sheet is uploaded.
SAMPLE_HOLDINGS = [
    {
        "particulars": "Reliance Industries Ltd",
        "purchase_price": 2450.0,
        "quantity": 10,
        "portfolio_pct": 25.5,
        "current_price": 2680.0,
        "pe_ratio": 14.2,
        "latest_earnings": "Q3 FY24: ₹18,951 Cr",
        "sector": "Energy",
        "symbol": "RELIANCE.NS",
    },
    {
        "particulars": "Tata Consultancy Services",
        "purchase_price": 3650.0,
        "quantity": 8,
        "portfolio_pct": 30.4,
        "current_price": 3920.0,
        "pe_ratio": 28.5,
        "latest_earnings": "Q3 FY24: ₹11,735 Cr",
        "sector": "Technology",
        "symbol": "TCS.NS",
    },
    {
        "particulars": "HDFC Bank Ltd",
        "purchase_price": 1580.0,
        "quantity": 15,
        "portfolio_pct": 24.7,
        "current_price": 1620.0,
        "pe_ratio": 19.8,
        "latest_earnings": "Q3 FY24: ₹16,511 Cr",
        "sector": "Financials",
        "symbol": "HDFCBANK.NS",
    },
    {
        "particulars": "Infosys Ltd",
        "purchase_price": 1420.0,
        "quantity": 12,
        "portfolio_pct": 17.7,
        "current_price": 1380.0,
        "pe_ratio": 25.1,
        "latest_earnings": "Q3 FY24: ₹6,586 Cr",
        "sector": "Technology",
        "symbol": "INFY.NS",
    },
    {
        "particulars": "ICICI Bank Ltd",
        "purchase_price": 920.0,
        "quantity": 20,
        "portfolio_pct": 19.1,
        "current_price": 1050.0,
        "pe_ratio": 16.7,
        "latest_earnings": "Q3 FY24: ₹10,261 Cr",
        "sector": "Financials",
        "symbol": "ICICIBANK.NS",
    },
]


def _positions_from(holdings: list[dict]) -> pd.DataFrame:
    records = [
        {"id": str(idx + 1), "exchange": EXCHANGE_NSE, **holding}
        for idx, holding in enumerate(holdings)
    ]
    return apply_position_metrics(pd.DataFrame(records))[POSITION_COLUMNS]


def default_positions() -> pd.DataFrame:
    return _positions_from(DEFAULT_HOLDINGS)


def sample_positions() -> pd.DataFrame:
    return _positions_from(SAMPLE_HOLDINGS)
