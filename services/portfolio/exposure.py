# services/portfolio/exposure.py
"""
Exposure, concentration and perps metrics over valued assets.

Every asset gets exactly one exposure classification. Perp trades add market
exposure but never net worth. Cash and perp margin count as long; borrowed cash counts
as short, so long - short always equals net.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from math import floor, fsum
from typing import Dict, List, Optional

from schemas.metrics import (
    AssetExposure,
    CategoryExposure,
    ConcentrationMetrics,
    ExposureData,
    ExposureMetrics,
    PerpsBreakdown,
    PerpsMetrics,
    SpotDerivativesBreakdown,
)
from schemas.portfolio import AssetWithPrice
from services.category_service import CategoryService, ExposureCategory, MainCategory, get_category_service
from services.portfolio.valuation import detect_perp_trade, is_cash_position, is_perp_notional

logger = logging.getLogger(__name__)

# estimated initial-margin multiple used for utilization
ASSUMED_LEVERAGE = 5.0


def _pct(n: float, d: float) -> float:
    return (n / d * 100.0) if d > 0 else 0.0


def _hhi(weights_pct: List[float]) -> float:
    # half rounds up
    return float(floor(fsum(w * w for w in weights_pct) + 0.5))


def classify_asset_exposure(asset: AssetWithPrice, cats: Optional[CategoryService] = None) -> AssetExposure:
    cats = cats or get_category_service()
    abs_value = abs(asset.value)
    is_stable = cats.is_stablecoin(asset.symbol)
    is_debt = asset.is_debt or asset.value < 0

    if cats.is_perp_protocol(asset.protocol):
        trade = detect_perp_trade(asset.name)
        if trade["is_perp"]:
            side = "perp-short" if trade["side"] == "short" else "perp-long"
            return AssetExposure(classification=side, abs_value=abs_value)
        if asset.is_perp_notional:
            side = "perp-short" if is_debt else "perp-long"
            return AssetExposure(classification=side, abs_value=abs_value)
        if is_stable:
            return AssetExposure(classification="perp-margin", abs_value=abs_value)
        return AssetExposure(classification="perp-spot", abs_value=abs_value)

    if asset.is_perp_notional:
        side = "perp-short" if is_debt else "perp-long"
        return AssetExposure(classification=side, abs_value=abs_value)

    is_cashlike = (
        is_stable
        or is_cash_position(asset)
        or cats.get_main_category(asset.symbol, asset.category_input) == MainCategory.CASH
    )
    if is_debt:
        return AssetExposure(classification="borrowed-cash" if is_cashlike else "spot-short", abs_value=abs_value)
    if is_cashlike:
        return AssetExposure(classification="cash", abs_value=abs_value)
    return AssetExposure(classification="spot-long", abs_value=abs_value)


def _concentration(assets: List[AssetWithPrice]) -> ConcentrationMetrics:
    held = [a for a in assets if not is_perp_notional(a)]
    sizes = sorted((abs(a.value) for a in held), reverse=True)
    total = fsum(sizes)
    symbols = {a.symbol.lower() for a in held}
    if total <= 0:
        return ConcentrationMetrics(position_count=len(held), asset_count=len(symbols))

    weights = [s / total * 100.0 for s in sizes]
    return ConcentrationMetrics(
        top1_percentage=fsum(weights[:1]),
        top5_percentage=fsum(weights[:5]),
        top10_percentage=fsum(weights[:10]),
        herfindahl_index=_hhi(weights),
        position_count=len(held),
        asset_count=len(symbols),
    )


def _category_exposure(
    assets: List[AssetWithPrice],
    classes: List[AssetExposure],
    cats: CategoryService,
) -> List[CategoryExposure]:
    longs: Dict[ExposureCategory, float] = defaultdict(float)
    shorts: Dict[ExposureCategory, float] = defaultdict(float)
    counts: Dict[ExposureCategory, int] = defaultdict(int)

    for a, c in zip(assets, classes):
        main = cats.get_main_category(a.symbol, a.category_input)
        if main != MainCategory.CRYPTO and not c.classification.startswith("perp"):
            continue
        key = cats.get_exposure_category(a.symbol, "crypto")
        if c.classification in ("perp-short", "spot-short", "borrowed-cash"):
            shorts[key] += c.abs_value
        else:
            longs[key] += c.abs_value
        counts[key] += 1

    nets = {k: longs[k] - shorts[k] for k in counts}
    denom = fsum(abs(v) for v in nets.values())
    out = [
        CategoryExposure(
            category=k.value,
            label=cats.get_exposure_category_label(k),
            long=longs[k],
            short=shorts[k],
            net=net,
            percentage=_pct(abs(net), denom),
            count=counts[k],
        )
        for k, net in nets.items()
        if net != 0
    ]
    out.sort(key=lambda ce: -abs(ce.net))
    return out


def calculate_exposure_data(assets: List[AssetWithPrice]) -> ExposureData:
    if not assets:
        return ExposureData()

    cats = get_category_service()
    classes = [classify_asset_exposure(a, cats) for a in assets]

    buckets: Dict[str, List[float]] = defaultdict(list)
    for c in classes:
        buckets[c.classification].append(c.abs_value)

    def total(name: str) -> float:
        return fsum(buckets.get(name, []))

    spot_long = total("spot-long") + total("perp-spot")
    spot_short = total("spot-short")
    perp_long = total("perp-long")
    perp_short = total("perp-short")
    margin = total("perp-margin")
    cash = total("cash")
    borrowed = total("borrowed-cash")

    held = [a for a in assets if not is_perp_notional(a)]
    gross_assets = fsum(a.value for a in held if a.value > 0)
    total_debts = fsum(abs(a.value) for a in held if a.value < 0)
    net_worth = gross_assets - total_debts

    long_exposure = spot_long + perp_long + cash + margin
    short_exposure = spot_short + perp_short + borrowed
    gross_exposure = long_exposure + short_exposure

    gross_notional = perp_long + perp_short
    utilization = _pct(gross_notional / ASSUMED_LEVERAGE, margin)

    data = ExposureData(
        exposure_metrics=ExposureMetrics(
            long_exposure=long_exposure,
            short_exposure=short_exposure,
            gross_exposure=gross_exposure,
            net_exposure=long_exposure - short_exposure,
            leverage=(gross_exposure / net_worth) if net_worth > 0 else 0.0,
            cash_percentage=_pct(cash + margin, gross_assets),
            debt_ratio=_pct(total_debts, gross_assets),
        ),
        concentration_metrics=_concentration(assets),
        perps_metrics=PerpsMetrics(
            collateral=margin,
            long_notional=perp_long,
            short_notional=perp_short,
            net_notional=perp_long - perp_short,
            gross_notional=gross_notional,
            utilization_rate=utilization,
        ),
        spot_derivatives=SpotDerivativesBreakdown(
            spot_long=spot_long,
            spot_short=spot_short,
            derivatives_long=perp_long,
            derivatives_short=perp_short,
            derivatives_net=perp_long - perp_short,
        ),
        perps_breakdown=PerpsBreakdown(
            margin=margin,
            spot=total("perp-spot"),
            longs=perp_long,
            shorts=perp_short,
            total=margin,
        ),
        categories=_category_exposure(assets, classes, cats),
        gross_assets=gross_assets,
        total_debts=total_debts,
        total_value=net_worth,
    )
    logger.debug(
        "exposure.calculated assets=%s gross=%.2f net=%.2f leverage=%.3f",
        len(assets), gross_exposure, net_worth, data.exposure_metrics.leverage,
    )
    return data
