# routers/portfolio_routes.py
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from database import get_db
from schemas.metrics import ExposureData, PerformanceSummary, PortfolioSummary
from schemas.portfolio import AssetWithPrice, NetWorthSnapshot
from services.portfolio.aggregation import SortKey, aggregate_positions_by_symbol, sort_assets
from services.portfolio.breakdowns import (
    calculate_allocation_breakdown,
    calculate_asset_summary,
    calculate_cash_breakdown,
    calculate_chain_breakdown,
    calculate_crypto_metrics,
    calculate_custody_breakdown,
    calculate_equities_breakdown,
    calculate_perp_page_data,
    calculate_risk_profile,
)
from services.portfolio.exposure import calculate_exposure_data
from services.portfolio.performance_metrics import calculate_performance_metrics
from services.portfolio.portfolio_service import allocation_by
from services.portfolio.valuation import filter_dust_positions
from services.portfolio_repository import commit_mutation, get_cached_state
from services.portfolio_store import PortfolioState
from services.snapshot_manager import (
    Period,
    calculate_performance,
    create_daily_snapshot,
    get_snapshots_by_period,
    should_take_snapshot,
)

router = APIRouter()


def get_portfolio_state(db: Session = Depends(get_db)) -> PortfolioState:
    return get_cached_state(db)


def _assets(state: PortfolioState, hide_dust: Optional[bool] = None) -> List[AssetWithPrice]:
    hide = state.hide_dust if hide_dust is None else hide_dust
    return filter_dust_positions(state.valued_assets(), hide)


@router.get("/summary", response_model=PortfolioSummary)
def portfolio_summary(state: PortfolioState = Depends(get_portfolio_state)):
    return state.summary()


@router.get("/assets", response_model=List[AssetWithPrice])
def list_assets(
    sort: SortKey = Query("value"),
    desc: bool = Query(True),
    hide_dust: Optional[bool] = Query(None),
    state: PortfolioState = Depends(get_portfolio_state),
):
    return sort_assets(_assets(state, hide_dust), sort, desc)


@router.get("/assets/aggregated", response_model=List[AssetWithPrice])
def aggregated_assets(
    sort: SortKey = Query("value"),
    desc: bool = Query(True),
    hide_dust: Optional[bool] = Query(None),
    state: PortfolioState = Depends(get_portfolio_state),
):
    return aggregate_positions_by_symbol(_assets(state, hide_dust), sort, desc)


@router.get("/assets/{symbol}")
def asset_detail(symbol: str, state: PortfolioState = Depends(get_portfolio_state)):
    rows = [a for a in state.valued_assets() if a.symbol.lower() == symbol.lower()]
    summary = calculate_asset_summary(rows)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No positions for {symbol.upper()}")
    return {"summary": summary, "positions": rows}


@router.get("/exposure", response_model=ExposureData)
def exposure(state: PortfolioState = Depends(get_portfolio_state)):
    return calculate_exposure_data(state.valued_assets())


@router.get("/allocation")
def allocation(
    by: Optional[Literal["type", "chain", "account_id", "protocol"]] = Query(None),
    state: PortfolioState = Depends(get_portfolio_state),
):
    assets = state.valued_assets()
    if by is None:
        return calculate_allocation_breakdown(assets)
    return allocation_by(assets, by)


@router.get("/risk")
def risk_profile(state: PortfolioState = Depends(get_portfolio_state)):
    return calculate_risk_profile(state.valued_assets())


@router.get("/perps")
def perps(state: PortfolioState = Depends(get_portfolio_state)):
    return calculate_perp_page_data(state.valued_assets())


@router.get("/custody")
def custody(state: PortfolioState = Depends(get_portfolio_state)):
    return calculate_custody_breakdown(state.valued_assets(), state.accounts)


@router.get("/chains")
def chains(state: PortfolioState = Depends(get_portfolio_state)):
    return calculate_chain_breakdown(state.valued_assets(), state.accounts)


@router.get("/crypto-metrics")
def crypto_metrics(state: PortfolioState = Depends(get_portfolio_state)):
    return calculate_crypto_metrics(state.valued_assets())


@router.get("/cash")
def cash(
    include_stablecoins: bool = Query(True),
    state: PortfolioState = Depends(get_portfolio_state),
):
    return calculate_cash_breakdown(state.valued_assets(), include_stablecoins, state.accounts)


@router.get("/equities")
def equities(state: PortfolioState = Depends(get_portfolio_state)):
    return calculate_equities_breakdown(state.valued_assets())


@router.get("/snapshots", response_model=List[NetWorthSnapshot])
def list_snapshots(
    period: Period = Query("all"),
    state: PortfolioState = Depends(get_portfolio_state),
):
    return get_snapshots_by_period(state.snapshots, period)


@router.post("/snapshots", response_model=NetWorthSnapshot)
def take_snapshot(force: bool = Query(False), db: Session = Depends(get_db)):
    def apply(state: PortfolioState) -> NetWorthSnapshot:
        if not force and not should_take_snapshot(state.snapshots):
            return state.snapshots[-1]
        snapshot = create_daily_snapshot(state.positions, state.prices, state.custom_prices, state.fx_rates)
        return state.add_snapshot(snapshot)

    return commit_mutation(db, apply)


@router.get("/performance")
def performance(
    period: Period = Query("all"),
    state: PortfolioState = Depends(get_portfolio_state),
):
    snapshots = get_snapshots_by_period(state.snapshots, period)
    summary = PerformanceSummary(period=period, snapshot_count=len(snapshots))
    if len(snapshots) >= 2:
        start, end = snapshots[0], snapshots[-1]
        perf = calculate_performance(start, end)
        summary = summary.model_copy(
            update={
                "start_value": start.total_value,
                "end_value": end.total_value,
                "change": perf["absolute_change"],
                "change_percent": perf["percent_change"],
            }
        )
    return {
        "summary": summary,
        "metrics": calculate_performance_metrics(snapshots, state.risk_free_rate),
    }
