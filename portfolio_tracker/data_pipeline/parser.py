from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np
import pandas as pd

from portfolio_tracker.data_pipeline.compute import apply_position_metrics
from portfolio_tracker.data_pipeline.defaults import default_positions
from portfolio_tracker.data_pipeline.schema import (
    DEFAULT_SECTOR,
    EXCHANGE_BSE,
    EXCHANGE_NSE,
    POSITION_COLUMNS,
)
from portfolio_tracker.data_pipeline.ticker_builder import build_symbols, has_symbol_shape
from portfolio_tracker.errors import SpreadsheetParseError

logger = logging.getLogger(__name__)


CANONICAL_COLUMNS = [
    "No",
    "Particulars",
    "Purchase Price",
    "Qty",
    "Investment",
    "Portfolio (%)",
    "NSE/BSE",
    "CMP",
    "Present Value",
    "Gain/Loss",
    "P/E Ratio",
    "Latest Earnings",
    "Sector",
    "Symbol",
]
# Headerless sheets start at Particulars: column 0 is Particulars, 12 is Symbol.
POSITIONAL_COLUMNS = CANONICAL_COLUMNS[1:]

LABEL_TOKENS = {"particulars", "no", "total", "grand total"}

# Anonymous header cells as emitted by pandas ("Unnamed: 3") and SheetJS ("__EMPTY_3").
_PLACEHOLDER_LABEL = re.compile(r"^(?:Unnamed: \d+(?:_level_\d+)?|__EMPTY(?:_\d+)?)$")
_LEADING_NUMBER = re.compile(r"^([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")
_NUMERIC_TEXT = r"^\d+\.?\d*$"
_NUMBER_NOISE = r"[,\s₹]"


@dataclass(frozen=True)
class IngestResult:
    positions: pd.DataFrame
    message: str | None = None
    used_default: bool = False


def _is_placeholder(label) -> bool:
    if label is None or (isinstance(label, float) and np.isnan(label)):
        return True
    text = str(label).strip()
    return text == "" or _PLACEHOLDER_LABEL.match(text) is not None


def _as_frame(raw) -> pd.DataFrame:
    if isinstance(raw, pd.DataFrame):
        return raw
    rows = [list(row) for row in raw]
    if not rows:
        return pd.DataFrame()
    width = max(len(row) for row in rows)
    padded = [row + [None] * (width - len(row)) for row in rows]
    # Row 0 is the header row, exactly as a sheet reader would consume it.
    return pd.DataFrame(padded[1:], columns=padded[0])


def _column(frame: pd.DataFrame, name: str) -> pd.Series:
    if name in frame.columns:
        return frame[name]
    return pd.Series([None] * len(frame), index=frame.index, dtype=object)


def _to_number(series: pd.Series) -> pd.Series:
    text = series.astype(str).str.replace(_NUMBER_NOISE, "", regex=True)
    leading = text.str.extract(_LEADING_NUMBER, expand=False)
    numbers = pd.to_numeric(leading, errors="coerce").replace([np.inf, -np.inf], np.nan)
    return numbers.fillna(0.0).astype(float)


def _to_text(series: pd.Series, default: str = "") -> pd.Series:
    text = series.where(series.notna(), "").astype(str).str.strip()
    return text.where(text != "", default)


def _map_placeholder_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Name anonymous columns by position; named columns pass through untouched."""
    mapped: dict[str, pd.Series] = {}
    placeholder_count = 0
    for idx, label in enumerate(frame.columns):
        column = frame.iloc[:, idx]
        if not _is_placeholder(label):
            mapped.setdefault(str(label).strip(), column)
            continue
        if placeholder_count < len(CANONICAL_COLUMNS):
            mapped[CANONICAL_COLUMNS[placeholder_count]] = column
        else:
            mapped[str(label)] = column
        placeholder_count += 1
    return pd.DataFrame(mapped, index=frame.index)


def _normalize_rows(mapped: pd.DataFrame) -> pd.DataFrame:
    purchase_price = _to_number(_column(mapped, "Purchase Price"))
    quantity = np.trunc(_to_number(_column(mapped, "Qty"))).astype(int)

    cmp = _to_number(_column(mapped, "CMP"))
    current_price = cmp.where(cmp != 0, purchase_price)

    investment = _to_number(_column(mapped, "Investment"))
    investment = investment.where(investment != 0, purchase_price * quantity)
    present_value = _to_number(_column(mapped, "Present Value"))
    present_value = present_value.where(present_value != 0, current_price * quantity)

    pe_ratio = _to_number(_column(mapped, "P/E Ratio"))
    earnings = _to_text(_column(mapped, "Latest Earnings"))
    exchange = _to_text(_column(mapped, "NSE/BSE"))

    return pd.DataFrame(
        {
            "particulars": _to_text(_column(mapped, "Particulars")),
            "purchase_price": purchase_price,
            "quantity": quantity,
            "sheet_investment": investment,
            "portfolio_pct": _to_number(_column(mapped, "Portfolio (%)")),
            "exchange": exchange.map(lambda v: EXCHANGE_BSE if v == EXCHANGE_BSE else EXCHANGE_NSE),
            "current_price": current_price,
            "sheet_present_value": present_value,
            "pe_ratio": pe_ratio.where(pe_ratio != 0),
            "latest_earnings": earnings.where(earnings != ""),
            "sector": _to_text(_column(mapped, "Sector"), DEFAULT_SECTOR),
            "symbol": _to_text(_column(mapped, "Symbol")),
        },
        index=mapped.index,
    )


def _holding_row_mask(rows: pd.DataFrame) -> pd.Series:
    particulars = rows["particulars"]
    lowered = particulars.str.lower()
    # Any mention of "sector" marks an embedded summary row, even inside a real name.
    return (
        (particulars != "")
        & ~lowered.isin(LABEL_TOKENS)
        & ~lowered.str.contains("sector", regex=False)
        & ~particulars.str.match(_NUMERIC_TEXT)
        & (rows["purchase_price"] > 0)
        & (rows["quantity"] > 0)
    )


def _log_sheet_discrepancies(positions: pd.DataFrame, rows: pd.DataFrame) -> None:
    for col in ["investment", "present_value"]:
        sheet = rows[f"sheet_{col}"].to_numpy()
        differs = ~np.isclose(positions[col].to_numpy(), sheet, rtol=1e-4)
        for name in positions.loc[differs, "particulars"]:
            logger.debug("Sheet %s for %s disagrees with recomputed value", col, name)


def _build_positions(rows: pd.DataFrame) -> pd.DataFrame | None:
    mask = _holding_row_mask(rows)
    if (~mask).any():
        logger.debug("Skipping %d non-holding rows", int((~mask).sum()))
    kept = build_symbols(rows[mask])

    valid_symbol = kept["symbol"].map(has_symbol_shape).astype(bool)
    for name, symbol in zip(kept.loc[~valid_symbol, "particulars"], kept.loc[~valid_symbol, "symbol"]):
        logger.debug("Dropping %s: unusable symbol %r", name, symbol)
    kept = kept[valid_symbol].reset_index(drop=True)
    if kept.empty:
        return None

    kept["id"] = [str(idx + 1) for idx in range(len(kept))]
    positions = apply_position_metrics(kept)
    _log_sheet_discrepancies(positions, kept)
    return positions[POSITION_COLUMNS]


def _parse_header_mapped(frame: pd.DataFrame) -> pd.DataFrame | None:
    if frame.empty:
        return None
    return _build_positions(_normalize_rows(_map_placeholder_columns(frame)))


def _parse_positional(frame: pd.DataFrame) -> pd.DataFrame | None:
    values = frame.to_numpy(dtype=object)
    if values.size == 0:
        return None
    width = values.shape[1]
    positional = pd.DataFrame(
        {
            name: values[:, idx] if idx < width else [None] * len(values)
            for idx, name in enumerate(POSITIONAL_COLUMNS)
        }
    )
    return _build_positions(_normalize_rows(positional))


PARSE_ATTEMPTS: Sequence[Callable[[pd.DataFrame], pd.DataFrame | None]] = (
    _parse_header_mapped,
    _parse_positional,
)


def _ingest(raw) -> IngestResult:
    try:
        frame = _as_frame(raw)
        for attempt in PARSE_ATTEMPTS:
            positions = attempt(frame)
            if positions is not None:
                logger.info("Parsed %d holdings via %s", len(positions), attempt.__name__)
                return IngestResult(positions=positions)
            logger.info("%s found no usable holdings", attempt.__name__)
    except Exception as exc:
        raise SpreadsheetParseError(f"Failed to parse holdings table: {exc}") from exc

    logger.warning("No valid holdings in table; using the default portfolio")
    return IngestResult(
        positions=default_positions(),
        message="No valid holdings found; showing the default portfolio.",
        used_default=True,
    )


def parse_holdings_table(raw) -> pd.DataFrame:
    """Turn a decoded holdings sheet into validated positions.

    ``raw`` is a DataFrame whose column labels are the sheet's first row, or a
    sequence of rows whose first row is that header. Never returns an empty
    frame: a sheet without usable rows yields the default portfolio.
    """
    return _ingest(raw).positions


def read_holdings_file(source, filename: str | None = None) -> pd.DataFrame:
    name = filename or str(getattr(source, "name", source))
    if name.lower().endswith(".csv"):
        raw = pd.read_csv(source, dtype=object, keep_default_na=False)
    else:
        raw = pd.read_excel(source, sheet_name=0, dtype=object)
    return raw.dropna(how="all")


def load_holdings(source, filename: str | None = None) -> IngestResult:
    try:
        return _ingest(read_holdings_file(source, filename))
    except Exception as exc:
        logger.warning("Could not load holdings; using the default portfolio. Details: %s", exc)
        return IngestResult(positions=default_positions(), message=str(exc), used_default=True)
