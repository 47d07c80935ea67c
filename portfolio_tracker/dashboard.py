from __future__ import annotations

import asyncio
from datetime import datetime

import pandas as pd
import plotly.express as px
import streamlit as st

from portfolio_tracker.config import get_settings
from portfolio_tracker.data_pipeline.market_fetch import MockQuoteSource, build_quote_source
from portfolio_tracker.data_pipeline.schema import PortfolioSnapshot
from portfolio_tracker.logging_config import setup_logging
from portfolio_tracker.tracker import PortfolioTracker


HOLDINGS_DISPLAY_COLUMNS = {
    "particulars": "Particulars",
    "purchase_price": "Purchase Price",
    "quantity": "Qty",
    "investment": "Investment",
    "portfolio_pct": "Portfolio (%)",
    "exchange": "NSE/BSE",
    "current_price": "CMP",
    "present_value": "Present Value",
    "gain_loss": "Gain/Loss",
    "pe_ratio": "P/E Ratio",
    "latest_earnings": "Latest Earnings",
    "sector": "Sector",
    "symbol": "Symbol",
    "quote_status": "Quote",
}
SECTOR_DISPLAY_COLUMNS = {
    "sector": "Sector",
    "total_investment": "Investment",
    "total_present_value": "Present Value",
    "total_gain_loss": "Gain/Loss",
    "position_count": "Holdings",
}
GAIN_COLOR = "#0f9f57"
LOSS_COLOR = "#d64545"
NEUTRAL_COLOR = "#2f3646"


def format_inr(v: float | int | None) -> str:
    """Rupee amount with Indian digit grouping, e.g. ₹1,23,456.78."""
    if v is None or pd.isna(v):
        return "N/A"
    sign = "-" if v < 0 else ""
    whole, frac = f"{abs(v):.2f}".split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups: list[str] = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{sign}₹{whole}.{frac}"


def format_pct(v: float | int | None) -> str:
    if v is None or pd.isna(v):
        return "N/A"
    return f"{v:.2f}%"


def gain_loss_color(v: float | int | None) -> str:
    if v is None or pd.isna(v) or v == 0:
        return NEUTRAL_COLOR
    return GAIN_COLOR if v > 0 else LOSS_COLOR


def is_stale(last_updated: datetime | None, max_age_seconds: float, now: datetime | None = None) -> bool:
    if last_updated is None:
        return True
    now = now or datetime.now()
    return (now - last_updated).total_seconds() >= max_age_seconds


def render_kpis(snapshot: PortfolioSnapshot) -> None:
    total_return_pct = (
        snapshot.total_gain_loss / snapshot.total_investment * 100
        if snapshot.total_investment
        else float("nan")
    )
    c1, c2, c3 = st.columns(3)
    c1.metric("Total Investment", format_inr(snapshot.total_investment))
    c2.metric("Present Value", format_inr(snapshot.total_present_value))
    c3.metric(
        "Gain/Loss",
        format_inr(snapshot.total_gain_loss),
        delta=format_pct(total_return_pct),
    )


def render_status(snapshot: PortfolioSnapshot, last_updated: datetime | None, error: str | None) -> None:
    updated_text = last_updated.strftime("%Y-%m-%d %H:%M:%S") if last_updated else "never"
    st.caption(f"{len(snapshot.positions)} holdings | last updated: {updated_text}")
    if error:
        st.warning(error)
    fallback = snapshot.fallback_symbols
    if fallback:
        st.info(f"Live quotes unavailable for {', '.join(fallback)}; showing simulated prices.")


def render_holdings_table(positions: pd.DataFrame) -> None:
    st.subheader("Holdings")
    if positions.empty:
        st.info("No holdings loaded")
        return
    show = positions[list(HOLDINGS_DISPLAY_COLUMNS)].rename(columns=HOLDINGS_DISPLAY_COLUMNS)
    st.dataframe(show, use_container_width=True, hide_index=True)


def render_sector_summary(sectors: pd.DataFrame) -> None:
    st.subheader("Sector Summary")
    if sectors.empty:
        st.info("No sector data available")
        return

    show = sectors[list(SECTOR_DISPLAY_COLUMNS)].rename(columns=SECTOR_DISPLAY_COLUMNS)
    st.dataframe(show, use_container_width=True, hide_index=True)

    fig = px.pie(
        sectors,
        names="sector",
        values="total_present_value",
        hole=0.45,
        title="Allocation by Sector (Present Value)",
    )
    fig.update_traces(textinfo="label+percent")
    st.plotly_chart(fig, use_container_width=True)

    bars = px.bar(sectors, x="sector", y="total_gain_loss", title="Gain/Loss by Sector")
    bars.update_traces(marker_color=[gain_loss_color(v) for v in sectors["total_gain_loss"]])
    bars.update_layout(xaxis_title=None, yaxis_title="₹")
    st.plotly_chart(bars, use_container_width=True)


def render_snapshot(tracker: PortfolioTracker) -> None:
    snapshot = tracker.snapshot
    if snapshot is None:
        st.info("Upload a holdings sheet to get started")
        return
    render_kpis(snapshot)
    render_status(snapshot, tracker.last_updated, tracker.error)
    render_holdings_table(snapshot.positions)
    render_sector_summary(snapshot.sector_summaries)


def _get_tracker(offline: bool) -> PortfolioTracker:
    key = "tracker_offline" if offline else "tracker_live"
    if key not in st.session_state:
        settings = get_settings()
        source = MockQuoteSource() if offline else build_quote_source(settings)
        tracker = PortfolioTracker(source=source, settings=settings)
        asyncio.run(tracker.initialize())
        st.session_state[key] = tracker
    return st.session_state[key]


def main() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    st.set_page_config(page_title="Portfolio Tracker", layout="wide")
    st.title("Portfolio Tracker")

    toolbar_left, toolbar_right = st.columns([3, 1])
    with toolbar_left:
        offline_mode = st.checkbox(
            "Offline mode (simulated quotes)",
            value=not settings.USE_LIVE_QUOTES,
            help="Skip Yahoo Finance and serve simulated prices.",
        )
        uploaded = st.file_uploader("Holdings sheet", type=["xlsx", "xls", "csv"])
    tracker = _get_tracker(offline_mode)

    if uploaded is not None and st.session_state.get("loaded_file") != uploaded.name:
        asyncio.run(tracker.load_spreadsheet(uploaded, uploaded.name))
        st.session_state["loaded_file"] = uploaded.name

    with toolbar_right:
        if st.button("Refresh Prices", use_container_width=True):
            asyncio.run(tracker.refresh())

    @st.fragment(run_every=settings.AUTO_REFRESH_INTERVAL_SECONDS)
    def live_view() -> None:
        if is_stale(tracker.last_updated, settings.AUTO_REFRESH_INTERVAL_SECONDS):
            asyncio.run(tracker.refresh())
        render_snapshot(tracker)

    live_view()


if __name__ == "__main__":
    main()
