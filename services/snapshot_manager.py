# services/snapshot_manager.py
"""
Daily net-worth snapshots: creation, dedupe-per-day, and period slicing.
Snapshot dates are UTC calendar days (YYYY-MM-DD) so string comparison orders them.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Literal, Mapping, Optional

from schemas.portfolio import CustomPrice, NetWorthSnapshot, Position, PriceData
from services.portfolio.portfolio_service import calculate_portfolio_summary

Period = Literal["7d", "30d", "90d", "1y", "all"]

PERIOD_DAYS: Dict[str, int] = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def create_daily_snapshot(
    positions: Iterable[Position],
    prices: Mapping[str, PriceData],
    custom_prices: Optional[Mapping[str, CustomPrice]] = None,
    fx_rates: Optional[Mapping[str, float]] = None,
    today: Optional[date] = None,
) -> NetWorthSnapshot:
    summary = calculate_portfolio_summary(positions, prices, custom_prices, fx_rates)
    return NetWorthSnapshot(
        date=(today or utc_today()).isoformat(),
        total_value=summary.total_value,
        crypto_value=summary.crypto_value,
        stock_value=summary.stock_value,
        cash_value=summary.cash_value,
        manual_value=summary.manual_value,
    )


def should_take_snapshot(snapshots: List[NetWorthSnapshot], today: Optional[date] = None) -> bool:
    """True unless the most recent snapshot is already for today."""
    if not snapshots:
        return True
    return snapshots[-1].date != (today or utc_today()).isoformat()


def get_snapshots_in_range(snapshots: Iterable[NetWorthSnapshot], start_date: str, end_date: str) -> List[NetWorthSnapshot]:
    return [s for s in snapshots if start_date <= s.date <= end_date]


def calculate_performance(start: NetWorthSnapshot, end: NetWorthSnapshot) -> Dict[str, float]:
    absolute = end.total_value - start.total_value
    return {
        "absolute_change": absolute,
        "percent_change": (absolute / start.total_value * 100.0) if start.total_value > 0 else 0.0,
        "crypto_change": end.crypto_value - start.crypto_value,
        "stock_change": end.stock_value - start.stock_value,
        "cash_change": end.cash_value - start.cash_value,
        "manual_change": end.manual_value - start.manual_value,
    }


def get_snapshots_by_period(
    snapshots: List[NetWorthSnapshot],
    period: Period,
    today: Optional[date] = None,
) -> List[NetWorthSnapshot]:
    if period == "all":
        return list(snapshots)
    if period not in PERIOD_DAYS:
        raise ValueError(f"Unknown period: {period}")
    start = ((today or utc_today()) - timedelta(days=PERIOD_DAYS[period])).isoformat()
    return [s for s in snapshots if s.date >= start]
