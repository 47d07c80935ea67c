from __future__ import annotations


class PortfolioError(Exception):
    """Base class for portfolio tracker errors."""


class SpreadsheetParseError(PortfolioError):
    """A holdings table could not be turned into positions."""


class RefreshError(PortfolioError):
    """A refresh was requested with nothing that can be priced.

    Recoverable: the caller keeps its current snapshot and decides whether to retry.
    """


class QuoteFetchError(PortfolioError):
    def __init__(self, symbol: str, message: str) -> None:
        super().__init__(f"{symbol}: {message}")
        self.symbol = symbol
