# services/portfolio_store.py
"""
In-memory portfolio state.

All writes go through the named operations below; each is a single transition.
Calculations read it via the selectors and never mutate it.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from schemas.metrics import PortfolioSummary
from schemas.portfolio import (
    Account,
    AssetClass,
    AssetWithPrice,
    CustomPrice,
    NetWorthSnapshot,
    Position,
    PriceData,
    Transaction,
    _now_iso,
)
from services.currency_service import DEFAULT_FX_RATES
from services.portfolio.performance_metrics import DEFAULT_RISK_FREE_RATE
from services.portfolio.portfolio_service import summarize_assets
from services.portfolio.valuation import calculate_all_positions_with_prices

logger = logging.getLogger(__name__)

# fields callers may not overwrite through update_position
_IMMUTABLE_POSITION_FIELDS = {"id", "added_at"}
_IMMUTABLE_ACCOUNT_FIELDS = {"id", "added_at"}


class PortfolioState:
    def __init__(
        self,
        positions: Optional[List[Position]] = None,
        accounts: Optional[List[Account]] = None,
        prices: Optional[Dict[str, PriceData]] = None,
        custom_prices: Optional[Dict[str, CustomPrice]] = None,
        fx_rates: Optional[Dict[str, float]] = None,
        transactions: Optional[List[Transaction]] = None,
        snapshots: Optional[List[NetWorthSnapshot]] = None,
        hide_balances: bool = False,
        hide_dust: bool = False,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    ):
        self.positions: List[Position] = list(positions or [])
        self.accounts: List[Account] = list(accounts or [])
        self.prices: Dict[str, PriceData] = dict(prices or {})
        self.custom_prices: Dict[str, CustomPrice] = dict(custom_prices or {})
        self.fx_rates: Dict[str, float] = dict(fx_rates or DEFAULT_FX_RATES)
        self.transactions: List[Transaction] = list(transactions or [])
        self.snapshots: List[NetWorthSnapshot] = list(snapshots or [])
        self.hide_balances = hide_balances
        self.hide_dust = hide_dust
        self.risk_free_rate = risk_free_rate

    # ---------- lookups ----------
    def get_position(self, position_id: str) -> Position:
        for p in self.positions:
            if p.id == position_id:
                return p
        raise KeyError(position_id)

    def get_account(self, account_id: str) -> Account:
        for a in self.accounts:
            if a.id == account_id:
                return a
        raise KeyError(account_id)

    def _position_index(self, position_id: str) -> int:
        for i, p in enumerate(self.positions):
            if p.id == position_id:
                return i
        raise KeyError(position_id)

    def _account_index(self, account_id: str) -> int:
        for i, a in enumerate(self.accounts):
            if a.id == account_id:
                return i
        raise KeyError(account_id)

    # ---------- positions ----------
    def add_position(self, position: Position) -> Position:
        if any(p.id == position.id for p in self.positions):
            raise ValueError(f"Position {position.id} already exists")
        self.positions.append(position)
        logger.info("store.position.add id=%s symbol=%s type=%s", position.id, position.symbol, position.type)
        return position

    def update_position(self, position_id: str, updates: Dict[str, Any]) -> Position:
        idx = self._position_index(position_id)
        clean = {k: v for k, v in updates.items() if k not in _IMMUTABLE_POSITION_FIELDS}
        current = self.positions[idx]
        # re-validate so a bad update never lands half-applied
        updated = Position.model_validate({**current.model_dump(), **clean, "updated_at": _now_iso()})
        self.positions[idx] = updated
        logger.info("store.position.update id=%s fields=%s", position_id, sorted(clean))
        return updated

    def remove_position(self, position_id: str) -> Position:
        idx = self._position_index(position_id)
        removed = self.positions.pop(idx)
        logger.info("store.position.remove id=%s symbol=%s", position_id, removed.symbol)
        return removed

    def set_asset_class_override(self, position_id: str, asset_class: Optional[AssetClass]) -> Position:
        return self.update_position(position_id, {"asset_class_override": asset_class})

    # ---------- accounts ----------
    def add_account(self, account: Account) -> Account:
        if any(a.id == account.id for a in self.accounts):
            raise ValueError(f"Account {account.id} already exists")
        self.accounts.append(account)
        logger.info("store.account.add id=%s source=%s", account.id, account.connection.data_source)
        return account

    def update_account(self, account_id: str, updates: Dict[str, Any]) -> Account:
        idx = self._account_index(account_id)
        clean = {k: v for k, v in updates.items() if k not in _IMMUTABLE_ACCOUNT_FIELDS}
        updated = Account.model_validate({**self.accounts[idx].model_dump(), **clean})
        self.accounts[idx] = updated
        logger.info("store.account.update id=%s fields=%s", account_id, sorted(clean))
        return updated

    def remove_account(self, account_id: str) -> Account:
        """Removes the account and every position linked to it."""
        idx = self._account_index(account_id)
        removed = self.accounts.pop(idx)
        before = len(self.positions)
        self.positions = [p for p in self.positions if p.account_id != account_id]
        logger.info(
            "store.account.remove id=%s positions_removed=%s", account_id, before - len(self.positions)
        )
        return removed

    # ---------- prices ----------
    def set_prices(self, prices: Dict[str, PriceData]) -> None:
        # last write wins per symbol
        for key, pd_ in prices.items():
            self.prices[key.lower()] = pd_
        logger.debug("store.prices.set count=%s", len(prices))

    def set_fx_rates(self, rates: Dict[str, float]) -> None:
        merged = dict(self.fx_rates)
        merged.update({k.upper(): float(v) for k, v in rates.items() if v and v > 0})
        merged["USD"] = 1.0
        self.fx_rates = merged

    def set_custom_price(self, symbol: str, price: float, note: Optional[str] = None) -> CustomPrice:
        custom = CustomPrice(price=price, note=note)
        self.custom_prices[symbol.lower()] = custom
        logger.info("store.custom_price.set symbol=%s", symbol.lower())
        return custom

    def remove_custom_price(self, symbol: str) -> None:
        key = symbol.lower()
        if key not in self.custom_prices:
            raise KeyError(symbol)
        del self.custom_prices[key]

    # ---------- records ----------
    def add_transaction(self, tx: Transaction) -> Transaction:
        self.transactions.append(tx)
        return tx

    def add_snapshot(self, snapshot: NetWorthSnapshot) -> NetWorthSnapshot:
        """One snapshot per day; a second one for the same date replaces the first."""
        self.snapshots = [s for s in self.snapshots if s.date != snapshot.date]
        self.snapshots.append(snapshot)
        self.snapshots.sort(key=lambda s: s.date)
        return snapshot

    # ---------- settings ----------
    def toggle_hide_balances(self) -> bool:
        self.hide_balances = not self.hide_balances
        return self.hide_balances

    def toggle_hide_dust(self) -> bool:
        self.hide_dust = not self.hide_dust
        return self.hide_dust

    def set_risk_free_rate(self, rate: float) -> None:
        if not 0.0 <= rate <= 1.0:
            raise ValueError("Risk-free rate must be between 0 and 1")
        self.risk_free_rate = rate

    # ---------- selectors ----------
    def wallet_accounts(self) -> List[Account]:
        return [a for a in self.accounts if a.connection.is_wallet]

    def cex_accounts(self) -> List[Account]:
        return [a for a in self.accounts if a.connection.is_cex]

    def manual_accounts(self) -> List[Account]:
        return [a for a in self.accounts if a.connection.data_source == "manual"]

    def cash_accounts(self) -> List[Account]:
        return [a for a in self.manual_accounts() if a.slug]

    def valued_assets(self) -> List[AssetWithPrice]:
        return calculate_all_positions_with_prices(self.positions, self.prices, self.custom_prices, self.fx_rates)

    def summary(self) -> PortfolioSummary:
        return summarize_assets(self.valued_assets(), position_count=len(self.positions))
