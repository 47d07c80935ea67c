from __future__ import annotations

import re

import pandas as pd

from portfolio_tracker.data_pipeline.schema import EXCHANGE_BSE


UNKNOWN_SYMBOL = "UNKNOWN"
UNKNOWN_NSE_SYMBOL = "UNKNOWN.NS"
NSE_SUFFIX = ".NS"
MAX_GENERATED_LENGTH = 10

# Well-known holdings whose ticker cannot be derived from the name. Keys are
# matched case-insensitively against the whole company name.
KNOWN_SYMBOLS = {
    "Reliance Industries Ltd": "RELIANCE",
    "Tata Consultancy Services": "TCS",
    "HDFC Bank Ltd": "HDFCBANK",
    "Infosys Ltd": "INFY",
    "ICICI Bank Ltd": "ICICIBANK",
    "State Bank of India": "SBIN",
    "SBI": "SBIN",
}
_KNOWN_SYMBOLS_LOWER = {name.lower(): symbol for name, symbol in KNOWN_SYMBOLS.items()}

_NUMERIC_NAME = re.compile(r"^\d+(\.\d+)?$")
_NUMERIC_SYMBOL = re.compile(r"^\d+\.?\d*$")
_SYMBOL_PATTERN = re.compile(r"[A-Za-z0-9.-]+")
_CORPORATE_SUFFIX = re.compile(
    r"\b(?:Limited|Ltd|Inc|Corp|Corporation|Company)\b|&\s*Co\b",
    re.IGNORECASE,
)
_PARENTHESIZED = re.compile(r"\([^)]*\)")
_PUNCTUATION = re.compile(r"[-&,.:;]")
_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def _with_exchange(symbol: str, exchange: str) -> str:
    return symbol if exchange == EXCHANGE_BSE else f"{symbol}{NSE_SUFFIX}"


def _generate_symbol(name: str) -> str:
    cleaned = _CORPORATE_SUFFIX.sub("", name)
    cleaned = _PARENTHESIZED.sub("", cleaned)
    cleaned = _PUNCTUATION.sub(" ", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    cleaned = _NON_ALNUM.sub("", cleaned).upper()
    return cleaned[:MAX_GENERATED_LENGTH]


def resolve_symbol(company_name: str | None, exchange: str) -> str:
    """Best-effort ticker for a free-text company name. Never raises."""
    name = str(company_name or "").strip()
    # Blank and numeric names fall back to the NSE sentinel whatever the exchange.
    if not name or _NUMERIC_NAME.match(name):
        return UNKNOWN_NSE_SYMBOL

    known = _KNOWN_SYMBOLS_LOWER.get(name.lower())
    if known:
        return _with_exchange(known, exchange)

    generated = _generate_symbol(name)
    if len(generated) < 2:
        generated = UNKNOWN_SYMBOL
    return _with_exchange(generated, exchange)


def has_symbol_shape(symbol) -> bool:
    if not isinstance(symbol, str):
        return False
    trimmed = symbol.strip()
    return len(trimmed) >= 2 and _SYMBOL_PATTERN.fullmatch(trimmed) is not None


def is_valid_symbol(symbol) -> bool:
    """True when ``symbol`` can be sent to a quote source.

    Stricter than ``has_symbol_shape``: bare numbers such as BSE scrip codes
    are kept as holdings but never looked up.
    """
    return has_symbol_shape(symbol) and not _NUMERIC_SYMBOL.match(symbol.strip())


def build_symbols(df: pd.DataFrame) -> pd.DataFrame:
    """Keep symbols supplied by the sheet, resolve the rest from name and exchange."""
    result = df.copy()
    supplied = result["symbol"].fillna("").astype(str).str.strip()
    resolved = [
        resolve_symbol(name, exchange)
        for name, exchange in zip(result["particulars"], result["exchange"])
    ]
    result["symbol"] = supplied.where(supplied != "", pd.Series(resolved, index=result.index))
    return result
