# services/portfolio/aggregation.py
from __future__ import annotations

from collections import defaultdict
from math import fsum
from typing import Any, Callable, Dict, List, Literal

from schemas.portfolio import AssetWithPrice
from services.portfolio.valuation import is_perp_notional

SortKey = Literal["value", "amount", "symbol", "change_24h"]
SORT_KEYS = ("value", "amount", "symbol", "change_24h")


def normalize_alloc(d: Dict[str, float], total: float) -> List[Dict[str, Any]]:
    items = sorted(d.items(), key=lambda kv: -kv[1])
    if total <= 0:
        return [{"key": k, "value": round(v, 8), "weight": None} for k, v in items]
    return [{"key": k, "value": round(v, 8), "weight": round(v / total * 100.0, 8)} for k, v in items]


def _symbol_key(asset: AssetWithPrice) -> str:
    key = f"{asset.symbol.lower()}-{asset.type}"
    return f"{key}-perp" if is_perp_notional(asset) else key


def sort_assets(
    assets: List[AssetWithPrice],
    sort_by: SortKey = "value",
    descending: bool = True,
) -> List[AssetWithPrice]:
    """Stable sort; equal keys keep input order in both directions."""
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unsupported sort key: {sort_by}")
    if sort_by == "value" and descending:
        # assets first, then debts; each by size
        return sorted(assets, key=lambda a: (a.value < 0, -abs(a.value)))
    if sort_by == "symbol":
        return sorted(assets, key=lambda a: a.symbol.lower(), reverse=descending)
    return sorted(assets, key=lambda a: getattr(a, sort_by), reverse=descending)


def aggregate_positions_by_symbol(
    assets: List[AssetWithPrice],
    sort_by: SortKey = "value",
    descending: bool = True,
) -> List[AssetWithPrice]:
    """
    Collapse positions sharing a symbol (case-insensitive) and type.

    Debt amounts net against holdings, the blended price is value / amount,
    and allocation is rebased on the total of positive values.
    Perp notional rows aggregate separately and never take allocation.
    """
    groups: Dict[str, List[AssetWithPrice]] = {}
    for a in assets:
        groups.setdefault(_symbol_key(a), []).append(a)

    merged: List[AssetWithPrice] = []
    for rows in groups.values():
        first = rows[0]
        amount = fsum(-r.amount if r.is_debt else r.amount for r in rows)
        value = fsum(r.value for r in rows)
        change = fsum(r.change_24h for r in rows)
        price = value / amount if amount else first.current_price
        merged.append(
            first.model_copy(
                update={
                    "amount": amount,
                    "value": value,
                    "change_24h": change,
                    "current_price": abs(price),
                    "is_debt": value < 0,
                    "has_custom_price": any(r.has_custom_price for r in rows),
                }
            )
        )

    gross = fsum(m.value for m in merged if m.value > 0 and not is_perp_notional(m))
    for m in merged:
        m.allocation = (m.value / gross * 100.0) if gross > 0 and not is_perp_notional(m) else 0.0

    return sort_assets(merged, sort_by, descending)


def group_assets(
    assets: List[AssetWithPrice],
    key_fn: Callable[[AssetWithPrice], str],
) -> List[Dict[str, Any]]:
    """Sum values per key_fn bucket; weights are relative to the net total."""
    values: Dict[str, float] = defaultdict(float)
    counts: Dict[str, int] = defaultdict(int)
    for a in assets:
        if is_perp_notional(a):
            continue
        k = key_fn(a)
        values[k] += a.value
        counts[k] += 1
    total = fsum(values.values())
    out = normalize_alloc(dict(values), total)
    for row in out:
        row["count"] = counts[row["key"]]
    return out
