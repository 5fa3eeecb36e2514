# services/portfolio/performance_metrics.py
"""
Investor metrics over the net-worth snapshot history: total return, CAGR,
max drawdown, annualized volatility and Sharpe.

Pure functions over snapshots; pandas does the series math.
"""
from __future__ import annotations

import math
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from schemas.portfolio import NetWorthSnapshot

TRADING_DAYS_PER_YEAR = 252
DEFAULT_RISK_FREE_RATE = 0.05

MIN_DAYS_FOR_CAGR = 30
RECOMMENDED_DAYS_FOR_CAGR = 365
MIN_POINTS_FOR_VOLATILITY = 30
RECOMMENDED_POINTS_FOR_VOLATILITY = 60
MIN_POINTS_FOR_SHARPE = 60


def _values(snapshots: List[NetWorthSnapshot]) -> pd.Series:
    return pd.Series([float(s.total_value) for s in snapshots], dtype="float64")


def calculate_cagr(start_value: float, end_value: float, period_days: int) -> float:
    """Percent. 0 when the start is non-positive or no time has passed."""
    if start_value <= 0 or period_days <= 0 or end_value < 0:
        return 0.0
    years = period_days / 365.0
    return (math.pow(end_value / start_value, 1.0 / years) - 1.0) * 100.0


def calculate_max_drawdown(snapshots: List[NetWorthSnapshot]) -> Dict[str, Any]:
    if len(snapshots) < 2:
        return {
            "max_drawdown_percent": 0.0,
            "max_drawdown_absolute": 0.0,
            "max_drawdown_date": None,
            "current_drawdown": 0.0,
            "peak": float(snapshots[0].total_value) if snapshots else 0.0,
        }

    values = _values(snapshots)
    peak = values.cummax()
    drawdown_abs = peak - values
    drawdown_pct = (drawdown_abs / peak.where(peak > 0)).fillna(0.0) * 100.0

    worst = int(drawdown_pct.idxmax())
    max_pct = float(drawdown_pct.iloc[worst])
    last_peak = float(peak.iloc[-1])

    return {
        "max_drawdown_percent": max_pct,
        "max_drawdown_absolute": float(drawdown_abs.iloc[worst]) if max_pct > 0 else 0.0,
        "max_drawdown_date": snapshots[worst].date if max_pct > 0 else None,
        "current_drawdown": ((last_peak - float(values.iloc[-1])) / last_peak * 100.0) if last_peak > 0 else 0.0,
        "peak": last_peak,
    }


def calculate_daily_returns(snapshots: List[NetWorthSnapshot]) -> List[float]:
    """Step returns between consecutive snapshots; steps from a non-positive value are skipped."""
    if len(snapshots) < 2:
        return []
    values = _values(snapshots)
    prev = values.shift(1)
    returns = ((values - prev) / prev)[prev > 0]
    return [float(r) for r in returns]


def calculate_volatility(daily_returns: List[float]) -> float:
    """Annualized sample std-dev of returns, in percent."""
    if len(daily_returns) < 2:
        return 0.0
    std = float(pd.Series(daily_returns, dtype="float64").std(ddof=1))
    return std * math.sqrt(TRADING_DAYS_PER_YEAR) * 100.0


def calculate_sharpe_ratio(
    annualized_return: float,
    annualized_volatility: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> float:
    """Inputs are decimals (0.10 == 10%)."""
    if annualized_volatility <= 0:
        return 0.0
    return (annualized_return - risk_free_rate) / annualized_volatility


def _data_quality(period_days: int, points: int) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "cagr_warning": None,
        "volatility_warning": None,
        "sharpe_warning": None,
        "has_insufficient_data": False,
    }
    if period_days < MIN_DAYS_FOR_CAGR:
        out["cagr_warning"] = (
            f"Only {period_days} days of data. CAGR requires at least {MIN_DAYS_FOR_CAGR} days for meaningful results."
        )
        out["has_insufficient_data"] = True
    elif period_days < RECOMMENDED_DAYS_FOR_CAGR:
        out["cagr_warning"] = (
            f"Annualized from {period_days} days. For reliable CAGR, {RECOMMENDED_DAYS_FOR_CAGR}+ days recommended."
        )

    if points < MIN_POINTS_FOR_VOLATILITY:
        out["volatility_warning"] = (
            f"Only {points} data points. Volatility requires at least {MIN_POINTS_FOR_VOLATILITY} days for meaningful results."
        )
        out["has_insufficient_data"] = True
    elif points < RECOMMENDED_POINTS_FOR_VOLATILITY:
        out["volatility_warning"] = (
            f"Based on {points} days. For reliable volatility, {RECOMMENDED_POINTS_FOR_VOLATILITY}+ days recommended."
        )

    if points < MIN_POINTS_FOR_SHARPE:
        out["sharpe_warning"] = f"Insufficient data for reliable Sharpe ratio. Need {MIN_POINTS_FOR_SHARPE}+ days."
        out["has_insufficient_data"] = True
    return out


def calculate_performance_metrics(
    snapshots: List[NetWorthSnapshot],
    risk_free_rate: Optional[float] = None,
) -> Dict[str, Any]:
    rf = DEFAULT_RISK_FREE_RATE if risk_free_rate is None else risk_free_rate

    if len(snapshots) < 2:
        return {
            "total_return": 0.0,
            "total_return_absolute": 0.0,
            "cagr": 0.0,
            "max_drawdown": 0.0,
            "max_drawdown_absolute": 0.0,
            "max_drawdown_date": None,
            "current_drawdown": 0.0,
            "sharpe_ratio": 0.0,
            "volatility": 0.0,
            "period_days": 0,
            "data_points": len(snapshots),
            "data_quality": {
                "cagr_warning": "Insufficient data",
                "volatility_warning": "Insufficient data",
                "sharpe_warning": "Insufficient data",
                "has_insufficient_data": True,
            },
            "risk_free_rate_used": rf,
        }

    start, end = snapshots[0], snapshots[-1]
    period_days = (date.fromisoformat(end.date[:10]) - date.fromisoformat(start.date[:10])).days

    total_abs = end.total_value - start.total_value
    total_pct = (total_abs / start.total_value * 100.0) if start.total_value > 0 else 0.0
    cagr = calculate_cagr(start.total_value, end.total_value, period_days)
    dd = calculate_max_drawdown(snapshots)
    volatility = calculate_volatility(calculate_daily_returns(snapshots))

    return {
        "total_return": total_pct,
        "total_return_absolute": total_abs,
        "cagr": cagr,
        "max_drawdown": dd["max_drawdown_percent"],
        "max_drawdown_absolute": dd["max_drawdown_absolute"],
        "max_drawdown_date": dd["max_drawdown_date"],
        "current_drawdown": dd["current_drawdown"],
        "sharpe_ratio": calculate_sharpe_ratio(cagr / 100.0, volatility / 100.0, rf),
        "volatility": volatility,
        "period_days": period_days,
        "data_points": len(snapshots),
        "data_quality": _data_quality(period_days, len(snapshots)),
        "risk_free_rate_used": rf,
    }
