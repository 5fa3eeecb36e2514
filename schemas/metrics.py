# schemas/metrics.py
from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

from schemas.portfolio import AssetWithPrice

ExposureClassification = Literal[
    "perp-long",
    "perp-short",
    "perp-margin",
    "perp-spot",
    "cash",
    "borrowed-cash",
    "spot-long",
    "spot-short",
]


class AssetExposure(BaseModel):
    classification: ExposureClassification
    abs_value: float = 0.0


class ExposureMetrics(BaseModel):
    long_exposure: float = 0.0
    short_exposure: float = 0.0
    gross_exposure: float = 0.0
    net_exposure: float = 0.0
    leverage: float = 0.0
    cash_percentage: float = 0.0
    debt_ratio: float = 0.0


class ConcentrationMetrics(BaseModel):
    top1_percentage: float = 0.0
    top5_percentage: float = 0.0
    top10_percentage: float = 0.0
    herfindahl_index: float = 0.0
    position_count: int = 0
    asset_count: int = 0


class PerpsMetrics(BaseModel):
    collateral: float = 0.0
    long_notional: float = 0.0
    short_notional: float = 0.0
    net_notional: float = 0.0
    gross_notional: float = 0.0
    utilization_rate: float = 0.0


class SpotDerivativesBreakdown(BaseModel):
    spot_long: float = 0.0
    spot_short: float = 0.0
    derivatives_long: float = 0.0
    derivatives_short: float = 0.0
    derivatives_net: float = 0.0


class PerpsBreakdown(BaseModel):
    margin: float = 0.0
    spot: float = 0.0
    longs: float = 0.0
    shorts: float = 0.0
    total: float = 0.0


class CategoryExposure(BaseModel):
    category: str
    label: str
    long: float = 0.0
    short: float = 0.0
    net: float = 0.0
    percentage: float = 0.0
    count: int = 0


class ExposureData(BaseModel):
    exposure_metrics: ExposureMetrics = Field(default_factory=ExposureMetrics)
    concentration_metrics: ConcentrationMetrics = Field(default_factory=ConcentrationMetrics)
    perps_metrics: PerpsMetrics = Field(default_factory=PerpsMetrics)
    spot_derivatives: SpotDerivativesBreakdown = Field(default_factory=SpotDerivativesBreakdown)
    perps_breakdown: PerpsBreakdown = Field(default_factory=PerpsBreakdown)
    categories: List[CategoryExposure] = Field(default_factory=list)
    gross_assets: float = 0.0
    total_debts: float = 0.0
    total_value: float = 0.0


class AssetTypeValue(BaseModel):
    type: str
    value: float
    percentage: float


class PortfolioSummary(BaseModel):
    total_value: float = 0.0
    change_24h: float = 0.0
    change_percent_24h: float = 0.0
    gross_assets: float = 0.0
    total_debts: float = 0.0
    position_count: int = 0
    asset_count: int = 0
    crypto_value: float = 0.0
    stock_value: float = 0.0
    cash_value: float = 0.0
    manual_value: float = 0.0
    top_assets: List[AssetWithPrice] = Field(default_factory=list)
    assets_by_type: List[AssetTypeValue] = Field(default_factory=list)


class PerformanceSummary(BaseModel):
    period: str
    start_value: float = 0.0
    end_value: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    snapshot_count: int = 0
