# services/portfolio/portfolio_service.py
from __future__ import annotations

import logging
from math import fsum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from schemas.metrics import AssetTypeValue, PortfolioSummary
from schemas.portfolio import AssetWithPrice, CustomPrice, Position, PriceData
from services.portfolio.aggregation import aggregate_positions_by_symbol, normalize_alloc
from services.portfolio.valuation import calculate_all_positions_with_prices, is_perp_notional

logger = logging.getLogger(__name__)

TOP_ASSETS_LIMIT = 10

# asset type -> summary field
_TYPE_BUCKETS = {
    "crypto": "crypto",
    "stock": "stock",
    "etf": "stock",
    "cash": "cash",
    "manual": "manual",
}


def summarize_assets(assets: List[AssetWithPrice], position_count: Optional[int] = None) -> PortfolioSummary:
    """
    Portfolio totals over already-valued assets.
    Perp notional is counted as a position but never as value.
    """
    held = [a for a in assets if not is_perp_notional(a)]

    total_value = fsum(a.value for a in held)
    change_24h = fsum(a.change_24h for a in held)
    prev_total = total_value - change_24h
    change_pct = (change_24h / prev_total * 100.0) if prev_total > 0 else 0.0

    gross_assets = fsum(a.value for a in held if a.value > 0)
    total_debts = fsum(abs(a.value) for a in held if a.value < 0)

    by_bucket: Dict[str, List[float]] = {"crypto": [], "stock": [], "cash": [], "manual": []}
    by_type: Dict[str, float] = {}
    for a in held:
        by_bucket[_TYPE_BUCKETS.get(a.type, "manual")].append(a.value)
        by_type[a.type] = by_type.get(a.type, 0.0) + a.value

    positive_types = {k: v for k, v in by_type.items() if v > 0}
    assets_by_type = [
        AssetTypeValue(type=row["key"], value=row["value"], percentage=row["weight"] or 0.0)
        for row in normalize_alloc(positive_types, fsum(positive_types.values()))
    ]

    top_assets = [a for a in aggregate_positions_by_symbol(held) if a.value > 0][:TOP_ASSETS_LIMIT]

    return PortfolioSummary(
        total_value=total_value,
        change_24h=change_24h,
        change_percent_24h=change_pct,
        gross_assets=gross_assets,
        total_debts=total_debts,
        position_count=len(assets) if position_count is None else position_count,
        asset_count=len({a.symbol.lower() for a in assets}),
        crypto_value=fsum(by_bucket["crypto"]),
        stock_value=fsum(by_bucket["stock"]),
        cash_value=fsum(by_bucket["cash"]),
        manual_value=fsum(by_bucket["manual"]),
        top_assets=top_assets,
        assets_by_type=assets_by_type,
    )


def calculate_portfolio_summary(
    positions: Iterable[Position],
    prices: Mapping[str, PriceData],
    custom_prices: Optional[Mapping[str, CustomPrice]] = None,
    fx_rates: Optional[Mapping[str, float]] = None,
) -> PortfolioSummary:
    positions = list(positions)
    assets = calculate_all_positions_with_prices(positions, prices, custom_prices, fx_rates)
    summary = summarize_assets(assets, position_count=len(positions))
    logger.debug(
        "portfolio.summary positions=%s assets=%s total=%.2f",
        summary.position_count, summary.asset_count, summary.total_value,
    )
    return summary


def allocation_by(assets: Iterable[AssetWithPrice], key: str) -> List[Dict[str, Any]]:
    """Weights of net value grouped by a Position attribute (type, chain, account_id, ...)."""
    totals: Dict[str, float] = {}
    for a in assets:
        if is_perp_notional(a):
            continue
        k = str(getattr(a, key, None) or "unspecified").lower()
        totals[k] = totals.get(k, 0.0) + a.value
    return normalize_alloc(totals, fsum(totals.values()))
