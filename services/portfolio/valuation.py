# services/portfolio/valuation.py
"""
Price/position join: Position + price map (+ custom overrides, FX) -> AssetWithPrice.

Missing prices never raise; the position simply values at zero.
"""
from __future__ import annotations

import logging
import re
from math import fsum
from typing import Dict, Iterable, List, Mapping, Optional

from schemas.portfolio import AssetWithPrice, CustomPrice, Position, PriceData
from services.category_service import get_category_service
from services.currency_service import get_fx_rate

logger = logging.getLogger(__name__)

DUST_THRESHOLD = 100.0

_CASH_ID_RE = re.compile(r"^CASH_([A-Z]{3,5})_", re.IGNORECASE)
_CCY_ID_RE = re.compile(r"^([A-Z]{3,5})_", re.IGNORECASE)
_CCY_RE = re.compile(r"^[A-Z]{3,5}$", re.IGNORECASE)
_PERP_RE = re.compile(r"\b(long|short)\b\s*(?:\(|$)", re.IGNORECASE)


def get_price_key(position: Position) -> str:
    return position.price_key or position.symbol.lower()


def extract_currency_code(symbol: str) -> str:
    s = (symbol or "").strip()
    m = _CASH_ID_RE.match(s)
    if m:
        return m.group(1).upper()
    m = _CCY_ID_RE.match(s)
    if m:
        return m.group(1).upper()
    if _CCY_RE.match(s):
        return s.upper()
    return s.upper()


def detect_perp_trade(name: Optional[str]) -> Dict[str, object]:
    """'BTC Long (Hyperliquid)' -> {is_perp: True, side: 'long'}."""
    m = _PERP_RE.search(name or "")
    if not m:
        return {"is_perp": False, "side": None}
    return {"is_perp": True, "side": m.group(1).lower()}


def is_perp_notional(asset: Position) -> bool:
    if asset.is_perp_notional:
        return True
    cats = get_category_service()
    return cats.is_perp_protocol(asset.protocol) and bool(detect_perp_trade(asset.name)["is_perp"])


def is_cash_position(position: Position) -> bool:
    """FX pricing applies to cash rows and to manual rows holding a fiat code, never by classification."""
    if position.type == "cash":
        return True
    if position.type != "manual":
        return False
    return get_category_service().is_fiat(extract_currency_code(position.symbol))


def _lookup_custom(custom_prices: Optional[Mapping[str, CustomPrice]], symbol: str) -> Optional[CustomPrice]:
    if not custom_prices:
        return None
    return custom_prices.get(symbol.lower())


def calculate_position_value(
    position: Position,
    prices: Mapping[str, PriceData],
    custom_prices: Optional[Mapping[str, CustomPrice]] = None,
    fx_rates: Optional[Mapping[str, float]] = None,
) -> AssetWithPrice:
    sign = -1.0 if position.is_debt else 1.0
    base = position.model_dump(include=set(Position.model_fields))

    if is_cash_position(position):
        rate = get_fx_rate(extract_currency_code(position.symbol), dict(fx_rates or {}))
        return AssetWithPrice(
            **base,
            current_price=rate,
            value=sign * position.amount * rate,
            change_24h=0.0,
            change_percent_24h=0.0,
        )

    custom = _lookup_custom(custom_prices, position.symbol)
    if custom is not None:
        return AssetWithPrice(
            **base,
            current_price=custom.price,
            value=sign * position.amount * custom.price,
            change_24h=0.0,
            change_percent_24h=0.0,
            has_custom_price=True,
        )

    price_data = prices.get(get_price_key(position))
    price = price_data.price if price_data and price_data.price else 0.0
    if not price and get_category_service().is_stablecoin(position.symbol):
        price = 1.0

    change = (price_data.change_24h if price_data else 0.0) * position.amount
    change_pct = price_data.change_percent_24h if price_data else 0.0

    return AssetWithPrice(
        **base,
        current_price=price,
        value=sign * position.amount * price,
        change_24h=sign * change,
        change_percent_24h=change_pct,
    )


def apply_allocations(assets: List[AssetWithPrice]) -> List[AssetWithPrice]:
    """Allocation = value / gross positive value * 100; debt gets a negative share."""
    gross = fsum(a.value for a in assets if a.value > 0 and not is_perp_notional(a))
    for a in assets:
        if gross > 0 and not is_perp_notional(a):
            a.allocation = a.value / gross * 100.0
        else:
            a.allocation = 0.0
    return assets


def calculate_all_positions_with_prices(
    positions: Iterable[Position],
    prices: Mapping[str, PriceData],
    custom_prices: Optional[Mapping[str, CustomPrice]] = None,
    fx_rates: Optional[Mapping[str, float]] = None,
) -> List[AssetWithPrice]:
    """Values every position; output order matches input order."""
    assets = [calculate_position_value(p, prices, custom_prices, fx_rates) for p in positions]
    missing = sum(1 for a in assets if a.current_price == 0)
    if missing:
        logger.debug("valuation.missing_prices count=%s total=%s", missing, len(assets))
    return apply_allocations(assets)


def calculate_net_worth(assets: Iterable[AssetWithPrice]) -> float:
    return fsum(a.value for a in assets if not is_perp_notional(a))


def calculate_total_nav(positions: Iterable[Position], prices: Mapping[str, PriceData]) -> float:
    terms: List[float] = []
    for p in positions:
        if p.type == "cash":
            terms.append(p.amount)
            continue
        data = prices.get(get_price_key(p))
        price = data.price if data else 0.0
        terms.append(-p.amount * price if p.is_debt else p.amount * price)
    return fsum(terms)


def filter_dust_positions(
    assets: List[AssetWithPrice],
    hide_dust: bool,
    threshold: float = DUST_THRESHOLD,
) -> List[AssetWithPrice]:
    if not hide_dust:
        return list(assets)
    return [a for a in assets if abs(a.value) >= threshold]
