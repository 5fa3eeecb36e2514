# routers/positions_routes.py
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from database import get_db
from routers.portfolio_routes import get_portfolio_state
from schemas.portfolio import Account, AssetClass, CustomPrice, Position, PriceData
from services.currency_service import FxRateService
from services.portfolio_repository import commit_mutation
from services.portfolio_store import PortfolioState

router = APIRouter()

_fx_service = FxRateService()


def get_fx_service() -> FxRateService:
    return _fx_service


class CustomPriceIn(BaseModel):
    price: float = Field(gt=0)
    note: Optional[str] = Field(None, max_length=200)


class AssetClassOverrideIn(BaseModel):
    asset_class: Optional[AssetClass] = None


class SettingsIn(BaseModel):
    hide_balances: Optional[bool] = None
    hide_dust: Optional[bool] = None
    risk_free_rate: Optional[float] = Field(None, ge=0, le=1)


def _settings(state: PortfolioState) -> Dict[str, Any]:
    return {
        "hide_balances": state.hide_balances,
        "hide_dust": state.hide_dust,
        "risk_free_rate": state.risk_free_rate,
    }


# ---------- positions ----------
@router.get("/positions", response_model=List[Position])
def list_positions(state: PortfolioState = Depends(get_portfolio_state)):
    return state.positions


@router.post("/positions", response_model=Position, status_code=201)
def create_position(position: Position, db: Session = Depends(get_db)):
    try:
        return commit_mutation(db, lambda state: state.add_position(position))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/positions/{position_id}", response_model=Position)
def update_position(position_id: str, updates: Dict[str, Any], db: Session = Depends(get_db)):
    try:
        return commit_mutation(db, lambda state: state.update_position(position_id, updates))
    except KeyError:
        raise HTTPException(status_code=404, detail="Position not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))


@router.put("/positions/{position_id}/asset-class", response_model=Position)
def override_asset_class(position_id: str, body: AssetClassOverrideIn, db: Session = Depends(get_db)):
    try:
        return commit_mutation(db, lambda state: state.set_asset_class_override(position_id, body.asset_class))
    except KeyError:
        raise HTTPException(status_code=404, detail="Position not found")


@router.delete("/positions/{position_id}")
def delete_position(position_id: str, db: Session = Depends(get_db)):
    try:
        commit_mutation(db, lambda state: state.remove_position(position_id))
    except KeyError:
        raise HTTPException(status_code=404, detail="Position not found")
    return {"message": "Position deleted successfully"}


# ---------- accounts ----------
@router.get("/accounts", response_model=List[Account])
def list_accounts(state: PortfolioState = Depends(get_portfolio_state)):
    return state.accounts


@router.post("/accounts", response_model=Account, status_code=201)
def create_account(account: Account, db: Session = Depends(get_db)):
    try:
        return commit_mutation(db, lambda state: state.add_account(account))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/accounts/{account_id}", response_model=Account)
def update_account(account_id: str, updates: Dict[str, Any], db: Session = Depends(get_db)):
    try:
        return commit_mutation(db, lambda state: state.update_account(account_id, updates))
    except KeyError:
        raise HTTPException(status_code=404, detail="Account not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))


@router.delete("/accounts/{account_id}")
def delete_account(account_id: str, db: Session = Depends(get_db)):
    try:
        commit_mutation(db, lambda state: state.remove_account(account_id))
    except KeyError:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"message": "Account deleted successfully"}


# ---------- prices ----------
@router.put("/prices")
def put_prices(prices: Dict[str, PriceData], db: Session = Depends(get_db)):
    # live data, kept in memory only
    commit_mutation(db, lambda state: state.set_prices(prices), persist=False)
    return {"count": len(prices)}


@router.put("/custom-prices/{symbol}", response_model=CustomPrice)
def put_custom_price(symbol: str, body: CustomPriceIn, db: Session = Depends(get_db)):
    return commit_mutation(db, lambda state: state.set_custom_price(symbol, body.price, body.note))


@router.delete("/custom-prices/{symbol}")
def delete_custom_price(symbol: str, db: Session = Depends(get_db)):
    try:
        commit_mutation(db, lambda state: state.remove_custom_price(symbol))
    except KeyError:
        raise HTTPException(status_code=404, detail=f"No custom price for {symbol.upper()}")
    return {"message": "Custom price removed"}


@router.post("/fx/refresh")
async def refresh_fx_rates(
    db: Session = Depends(get_db),
    fx: FxRateService = Depends(get_fx_service),
):
    rates = await fx.get_rates()

    def apply(state: PortfolioState) -> Dict[str, float]:
        state.set_fx_rates(rates)
        return dict(state.fx_rates)

    return commit_mutation(db, apply)


# ---------- settings ----------
@router.get("/settings")
def get_settings(state: PortfolioState = Depends(get_portfolio_state)):
    return _settings(state)


@router.put("/settings")
def put_settings(body: SettingsIn, db: Session = Depends(get_db)):
    def apply(state: PortfolioState) -> Dict[str, Any]:
        if body.hide_balances is not None:
            state.hide_balances = body.hide_balances
        if body.hide_dust is not None:
            state.hide_dust = body.hide_dust
        if body.risk_free_rate is not None:
            state.set_risk_free_rate(body.risk_free_rate)
        return _settings(state)

    return commit_mutation(db, apply)
