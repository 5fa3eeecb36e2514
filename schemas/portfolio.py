# schemas/portfolio.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

AssetType = Literal["crypto", "stock", "etf", "cash", "manual"]
AssetClass = Literal["crypto", "equity", "metals", "cash", "other"]
DataSource = Literal["debank", "helius", "binance", "coinbase", "kraken", "okx", "manual"]
TransactionType = Literal["buy", "sell", "transfer"]

WALLET_SOURCES = {"debank", "helius"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


class Position(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    type: AssetType = "crypto"
    asset_class: Optional[AssetClass] = None
    symbol: str = Field(min_length=1, max_length=64)
    name: str = ""
    amount: float = 0.0
    cost_basis: Optional[float] = None
    purchase_date: Optional[str] = None

    wallet_address: Optional[str] = None
    chain: Optional[str] = None
    price_key: Optional[str] = None
    protocol: Optional[str] = None
    is_debt: bool = False
    is_perp_notional: bool = False
    account_id: Optional[str] = None
    asset_class_override: Optional[AssetClass] = None
    equity_type: Optional[Literal["stock", "etf"]] = None

    added_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    @field_validator("symbol")
    @classmethod
    def _strip_symbol(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v):
        # NaN / None amounts value to zero instead of poisoning totals
        try:
            out = float(v)
        except (TypeError, ValueError):
            return 0.0
        return 0.0 if out != out else out

    @property
    def category_input(self) -> str:
        return self.asset_class_override or self.asset_class or self.type


class PriceData(BaseModel):
    symbol: str
    price: float = 0.0
    change_24h: float = 0.0
    change_percent_24h: float = 0.0
    last_updated: str = Field(default_factory=_now_iso)


class CustomPrice(BaseModel):
    price: float = Field(gt=0)
    note: Optional[str] = None
    set_at: str = Field(default_factory=_now_iso)


class AssetWithPrice(Position):
    current_price: float = 0.0
    value: float = 0.0
    change_24h: float = 0.0
    change_percent_24h: float = 0.0
    allocation: float = 0.0
    has_custom_price: bool = False


class AccountConnection(BaseModel):
    data_source: DataSource = "manual"
    address: Optional[str] = None
    chains: List[str] = Field(default_factory=list)
    api_key: Optional[str] = None

    @property
    def is_wallet(self) -> bool:
        return self.data_source in WALLET_SOURCES

    @property
    def is_cex(self) -> bool:
        return self.data_source != "manual" and self.data_source not in WALLET_SOURCES


class Account(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1, max_length=128)
    is_active: bool = True
    connection: AccountConnection = Field(default_factory=AccountConnection)
    slug: Optional[str] = None
    added_at: str = Field(default_factory=_now_iso)


class Transaction(BaseModel):
    id: str = Field(default_factory=new_id)
    type: TransactionType
    symbol: str
    name: str = ""
    asset_type: AssetType = "crypto"
    amount: float
    price_per_unit: float = 0.0
    total_value: float = 0.0
    cost_basis_at_execution: Optional[float] = None
    realized_pnl: Optional[float] = None
    position_id: str
    date: str
    notes: Optional[str] = None
    created_at: str = Field(default_factory=_now_iso)


class NetWorthSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    date: str
    total_value: float = 0.0
    crypto_value: float = 0.0
    stock_value: float = 0.0
    cash_value: float = 0.0
    manual_value: float = 0.0
