# services/portfolio/breakdowns.py
"""
Chart-ready breakdowns over valued assets.

Every function here drops perp notional (it is exposure, not holdings),
except calculate_perp_page_data, which is about exactly those rows.
Results are plain dicts so routers can return them as-is.
"""
from __future__ import annotations

import re
from collections import defaultdict
from math import fsum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from schemas.portfolio import Account, AssetWithPrice
from services.category_service import MainCategory, SubCategory, get_category_service
from services.portfolio.valuation import detect_perp_trade, extract_currency_code, is_cash_position, is_perp_notional
from utils.common_helpers import capitalize, pct, shorten_address

_ACCOUNT_CCY_RE = re.compile(r"^(.+?)\s*\(([A-Z]{3,5})\)$")

ALLOCATION_CASH = "Cash & Equivalents"
ALLOCATION_CRYPTO = "Crypto"
ALLOCATION_EQUITIES = "Equities"
ALLOCATION_METALS = "Metals"
ALLOCATION_OTHER = "Other"

RISK_CONSERVATIVE = "Conservative"
RISK_MODERATE = "Moderate"
RISK_AGGRESSIVE = "Aggressive"

CUSTODY_PERP_DEX = "Perp DEX"
CUSTODY_DEFI = "DeFi"
CUSTODY_SELF = "Self-Custody"
CUSTODY_CEX = "CEX"
CUSTODY_BANKS = "Banks & Brokers"
CUSTODY_MANUAL = "Manual"


def _held(assets: Iterable[AssetWithPrice]) -> List[AssetWithPrice]:
    return [a for a in assets if not is_perp_notional(a)]


def _accounts_map(accounts: Optional[Iterable[Account] | Mapping[str, Account]]) -> Dict[str, Account]:
    if not accounts:
        return {}
    if isinstance(accounts, Mapping):
        return dict(accounts)
    return {acc.id: acc for acc in accounts}


def _symbol_breakdown(rows: List[AssetWithPrice]) -> List[Dict[str, Any]]:
    by_symbol: Dict[str, float] = defaultdict(float)
    for a in rows:
        by_symbol[a.symbol.upper()] += a.value
    total = fsum(v for v in by_symbol.values() if v > 0)
    items = [
        {"label": sym, "value": v, "percentage": pct(v, total)}
        for sym, v in by_symbol.items()
    ]
    items.sort(key=lambda d: -d["value"])
    return items


def _bucketed(groups: Dict[str, List[AssetWithPrice]], order: List[str]) -> List[Dict[str, Any]]:
    """Net each bucket, drop non-positive ones, and express the rest as a share of what remains."""
    nets = {label: fsum(a.value for a in groups.get(label, [])) for label in order}
    kept = [label for label in order if nets[label] > 0]
    total = fsum(nets[label] for label in kept)
    out = [
        {
            "label": label,
            "value": nets[label],
            "percentage": pct(nets[label], total),
            "breakdown": _symbol_breakdown(groups[label]),
        }
        for label in kept
    ]
    out.sort(key=lambda d: -d["value"])
    return out


# ---------- allocation / risk ----------

def _allocation_label(asset: AssetWithPrice) -> str:
    cats = get_category_service()
    main, _ = cats.classify_position(asset)
    if main == MainCategory.CASH or cats.is_stablecoin(asset.symbol):
        return ALLOCATION_CASH
    if main == MainCategory.CRYPTO:
        return ALLOCATION_CRYPTO
    if main == MainCategory.EQUITIES:
        return ALLOCATION_EQUITIES
    if main == MainCategory.METALS:
        return ALLOCATION_METALS
    return ALLOCATION_OTHER


def calculate_allocation_breakdown(assets: List[AssetWithPrice]) -> List[Dict[str, Any]]:
    groups: Dict[str, List[AssetWithPrice]] = defaultdict(list)
    for a in _held(assets):
        groups[_allocation_label(a)].append(a)
    order = [ALLOCATION_CASH, ALLOCATION_CRYPTO, ALLOCATION_EQUITIES, ALLOCATION_METALS, ALLOCATION_OTHER]
    return _bucketed(groups, order)


def _risk_label(asset: AssetWithPrice) -> str:
    cats = get_category_service()
    main, sub = cats.classify_position(asset)
    if main == MainCategory.CASH or cats.is_stablecoin(asset.symbol):
        return RISK_CONSERVATIVE
    if main == MainCategory.CRYPTO:
        return RISK_MODERATE if sub in (SubCategory.BTC, SubCategory.ETH) else RISK_AGGRESSIVE
    if main in (MainCategory.EQUITIES, MainCategory.METALS):
        return RISK_MODERATE
    return RISK_AGGRESSIVE


def calculate_risk_profile(assets: List[AssetWithPrice]) -> List[Dict[str, Any]]:
    groups: Dict[str, List[AssetWithPrice]] = defaultdict(list)
    for a in _held(assets):
        groups[_risk_label(a)].append(a)
    return _bucketed(groups, [RISK_CONSERVATIVE, RISK_MODERATE, RISK_AGGRESSIVE])


# ---------- perps ----------

def _perp_side(asset: AssetWithPrice) -> Optional[str]:
    trade = detect_perp_trade(asset.name)
    if trade["is_perp"]:
        return str(trade["side"])
    if asset.is_perp_notional:
        return "short" if (asset.is_debt or asset.value < 0) else "long"
    return None


def calculate_perp_page_data(assets: List[AssetWithPrice]) -> Dict[str, Any]:
    cats = get_category_service()
    perp_rows = [a for a in assets if cats.is_perp_protocol(a.protocol)]

    margin: List[AssetWithPrice] = []
    trading: List[AssetWithPrice] = []
    spot: List[AssetWithPrice] = []
    stats: Dict[str, Dict[str, Any]] = {}

    for a in perp_rows:
        exchange = capitalize(a.protocol)
        st = stats.setdefault(exchange, {
            "exchange": exchange,
            "margin": 0.0,
            "spot": 0.0,
            "longs": 0.0,
            "shorts": 0.0,
            "position_count": 0,
        })
        st["position_count"] += 1

        side = _perp_side(a)
        if side is not None:
            trading.append(a)
            st["longs" if side == "long" else "shorts"] += abs(a.value)
        elif cats.is_stablecoin(a.symbol):
            margin.append(a)
            st["margin"] += a.value
        else:
            spot.append(a)
            st["spot"] += a.value

    exchange_stats = []
    for st in stats.values():
        st["account_value"] = st["margin"]
        st["net_exposure"] = st["longs"] - st["shorts"]
        exchange_stats.append(st)
    exchange_stats.sort(key=lambda s: -s["account_value"])

    return {
        "margin_positions": margin,
        "trading_positions": trading,
        "spot_holdings": spot,
        "all_perp_positions": perp_rows,
        "exchange_stats": exchange_stats,
        "has_perps": bool(perp_rows),
    }


# ---------- custody / chains ----------

def _custody_label(asset: AssetWithPrice, accounts: Mapping[str, Account]) -> str:
    cats = get_category_service()
    account = accounts.get(asset.account_id) if asset.account_id else None
    is_wallet = bool(asset.wallet_address) or (account is not None and account.connection.is_wallet)

    if cats.is_perp_protocol(asset.protocol):
        return CUSTODY_PERP_DEX
    if is_wallet and asset.protocol:
        return CUSTODY_DEFI
    if is_wallet:
        return CUSTODY_SELF
    if account is not None and account.connection.is_cex:
        return CUSTODY_CEX
    main = cats.get_main_category(asset.symbol, asset.category_input)
    if main in (MainCategory.EQUITIES, MainCategory.CASH):
        return CUSTODY_BANKS
    return CUSTODY_MANUAL


def calculate_custody_breakdown(
    assets: List[AssetWithPrice],
    accounts: Optional[Iterable[Account] | Mapping[str, Account]] = None,
) -> List[Dict[str, Any]]:
    by_id = _accounts_map(accounts)
    groups: Dict[str, List[AssetWithPrice]] = defaultdict(list)
    for a in _held(assets):
        groups[_custody_label(a, by_id)].append(a)
    order = [CUSTODY_SELF, CUSTODY_DEFI, CUSTODY_CEX, CUSTODY_PERP_DEX, CUSTODY_BANKS, CUSTODY_MANUAL]
    return _bucketed(groups, order)


def _chain_label(asset: AssetWithPrice, accounts: Mapping[str, Account]) -> str:
    account = accounts.get(asset.account_id) if asset.account_id else None
    if account is not None and account.connection.is_cex:
        return capitalize(account.connection.data_source)
    if get_category_service().is_perp_protocol(asset.protocol):
        return capitalize(asset.protocol)
    if asset.chain:
        return capitalize(asset.chain)
    return "Manual"


def calculate_chain_breakdown(
    assets: List[AssetWithPrice],
    accounts: Optional[Iterable[Account] | Mapping[str, Account]] = None,
) -> List[Dict[str, Any]]:
    by_id = _accounts_map(accounts)
    nets: Dict[str, float] = defaultdict(float)
    counts: Dict[str, int] = defaultdict(int)
    for a in _held(assets):
        label = _chain_label(a, by_id)
        nets[label] += a.value
        counts[label] += 1

    kept = {k: v for k, v in nets.items() if v > 0}
    total = fsum(kept.values())
    out = [
        {"label": k, "value": v, "percentage": pct(v, total), "count": counts[k]}
        for k, v in kept.items()
    ]
    out.sort(key=lambda d: -d["value"])
    return out


# ---------- crypto metrics ----------

def calculate_crypto_metrics(assets: List[AssetWithPrice]) -> Dict[str, float]:
    """
    Ratios over the net crypto book. Perp trades count toward the denominator
    but only spot holdings count toward BTC/ETH dominance.
    """
    cats = get_category_service()
    crypto = [
        a for a in assets
        if cats.get_main_category(a.symbol, a.category_input) == MainCategory.CRYPTO
    ]
    total = fsum(a.value for a in crypto)
    if total <= 0:
        return {"stablecoin_ratio": 0.0, "btc_dominance": 0.0, "eth_dominance": 0.0, "defi_exposure": 0.0}

    spot = [a for a in crypto if _perp_side(a) is None]
    stable = fsum(a.value for a in crypto if cats.is_stablecoin(a.symbol))
    btc = fsum(a.value for a in spot if cats.get_sub_category(a.symbol, "crypto") == SubCategory.BTC)
    eth = fsum(a.value for a in spot if cats.get_sub_category(a.symbol, "crypto") == SubCategory.ETH)
    defi = fsum(a.value for a in crypto if a.protocol and not cats.is_perp_protocol(a.protocol))

    return {
        "stablecoin_ratio": pct(stable, total),
        "btc_dominance": pct(btc, total),
        "eth_dominance": pct(eth, total),
        "defi_exposure": pct(defi, total),
    }


# ---------- accounts / cash / equities ----------

def extract_account_name(asset: AssetWithPrice, accounts_by_id: Optional[Mapping[str, Account]] = None) -> str:
    """Best human label for where a position is held."""
    name = (asset.name or "").strip()
    m = _ACCOUNT_CCY_RE.match(name)
    if m:
        return m.group(1).strip()
    if asset.protocol:
        return capitalize(asset.protocol)

    account = (accounts_by_id or {}).get(asset.account_id) if asset.account_id else None
    if account is not None:
        if account.connection.is_cex:
            return capitalize(account.connection.data_source)
        if account.connection.is_wallet and account.connection.address:
            return shorten_address(account.connection.address)

    if asset.chain:
        return capitalize(asset.chain)
    return name or "Manual"


def calculate_cash_breakdown(
    assets: List[AssetWithPrice],
    include_stablecoins: bool = True,
    accounts: Optional[Iterable[Account] | Mapping[str, Account]] = None,
) -> Dict[str, Any]:
    cats = get_category_service()
    by_id = _accounts_map(accounts)

    fiat_rows: List[AssetWithPrice] = []
    stable_rows: List[AssetWithPrice] = []
    for a in _held(assets):
        if cats.is_stablecoin(a.symbol):
            if include_stablecoins:
                stable_rows.append(a)
        elif is_cash_position(a):
            fiat_rows.append(a)

    by_currency: Dict[str, float] = defaultdict(float)
    institutions: Dict[str, Dict[str, Any]] = {}
    tagged = [(a, False) for a in fiat_rows] + [(a, True) for a in stable_rows]
    for a, is_stable in tagged:
        if is_stable:
            ccy = cats.get_underlying_fiat_currency(a.symbol) or "USD"
        else:
            ccy = extract_currency_code(a.symbol)
        by_currency[ccy] += a.value

        inst = extract_account_name(a, by_id)
        row = institutions.setdefault(inst, {"name": inst, "value": 0.0, "currencies": set()})
        row["value"] += a.value
        row["currencies"].add(ccy)

    fiat_value = fsum(a.value for a in fiat_rows)
    stable_value = fsum(a.value for a in stable_rows)
    total = fiat_value + stable_value

    chart_total = fsum(v for v in by_currency.values() if v > 0)
    chart_data = [
        {"label": ccy, "value": v, "percentage": pct(v, chart_total)}
        for ccy, v in by_currency.items()
        if v > 0
    ]
    chart_data.sort(key=lambda d: -d["value"])

    institution_breakdown = [
        {"name": row["name"], "value": row["value"], "currencies": sorted(row["currencies"])}
        for row in institutions.values()
    ]
    institution_breakdown.sort(key=lambda d: -d["value"])

    return {
        "fiat": {"value": fiat_value, "count": len(fiat_rows)},
        "stablecoins": {"value": stable_value, "count": len(stable_rows)},
        "total": total,
        "chart_data": chart_data,
        "institution_breakdown": institution_breakdown,
    }


def _is_etf(asset: AssetWithPrice) -> bool:
    if asset.equity_type:
        return asset.equity_type == "etf"
    return asset.type == "etf" or get_category_service().is_known_etf(asset.symbol)


def calculate_equities_breakdown(assets: List[AssetWithPrice]) -> Dict[str, Any]:
    cats = get_category_service()
    stocks: List[AssetWithPrice] = []
    etfs: List[AssetWithPrice] = []
    for a in _held(assets):
        if cats.get_main_category(a.symbol, a.category_input) != MainCategory.EQUITIES:
            continue
        (etfs if _is_etf(a) else stocks).append(a)

    stocks_value = max(0.0, fsum(a.value for a in stocks))
    etfs_value = max(0.0, fsum(a.value for a in etfs))
    total = stocks_value + etfs_value

    chart_data = []
    for label, value, rows in (("Stocks", stocks_value, stocks), ("ETFs", etfs_value, etfs)):
        if value > 0:
            chart_data.append({
                "label": label,
                "value": value,
                "percentage": pct(value, total),
                "breakdown": _symbol_breakdown(rows),
            })

    return {
        "stocks": {"value": stocks_value, "count": len(stocks)},
        "etfs": {"value": etfs_value, "count": len(etfs)},
        "total": total,
        "chart_data": chart_data,
    }


def calculate_asset_summary(assets: List[AssetWithPrice]) -> Optional[Dict[str, Any]]:
    """Roll-up for a single asset's detail page (all positions of one symbol)."""
    if not assets:
        return None

    cats = get_category_service()
    first = assets[0]
    priced = next((a for a in assets if a.current_price > 0), None)
    costs = [a.cost_basis for a in assets if a.cost_basis is not None]
    holders = {a.account_id or a.wallet_address for a in assets if a.account_id or a.wallet_address}
    exposure = cats.get_exposure_category(first.symbol, first.category_input)

    return {
        "symbol": first.symbol,
        "name": first.name,
        "type": first.type,
        "total_amount": fsum(-a.amount if a.is_debt else a.amount for a in assets),
        "total_value": fsum(a.value for a in assets),
        "total_cost_basis": fsum(costs) if costs else None,
        "current_price": priced.current_price if priced else 0.0,
        "change_24h": priced.change_24h if priced else 0.0,
        "change_percent_24h": priced.change_percent_24h if priced else 0.0,
        "exposure_category": exposure.value,
        "exposure_category_label": cats.get_exposure_category_label(exposure),
        "main_category": cats.get_main_category(first.symbol, first.category_input).value,
        "wallet_count": len(holders),
        "position_count": len(assets),
        "allocation": fsum(a.allocation for a in assets),
        "has_custom_price": any(a.has_custom_price for a in assets),
    }
