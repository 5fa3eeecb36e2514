# services/portfolio_repository.py
"""
Load/save the portfolio state to the database.

Prices are live data and are not persisted; everything else round-trips.
save_state rewrites the tables from the in-memory state inside one transaction.
"""
from __future__ import annotations

import copy
import logging
import threading
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from models.account import AccountRecord
from models.custom_price import CustomPriceRecord
from models.portfolio_settings import PortfolioSettings
from models.position import PositionRecord
from models.snapshot import SnapshotRecord
from models.transaction import TransactionRecord
from schemas.portfolio import Account, CustomPrice, NetWorthSnapshot, Position, Transaction
from services.currency_service import DEFAULT_FX_RATES
from services.portfolio.performance_metrics import DEFAULT_RISK_FREE_RATE
from services.portfolio_store import PortfolioState

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1

T = TypeVar("T")


def load_state(db: Session) -> PortfolioState:
    positions = [Position.model_validate(r.data) for r in db.query(PositionRecord).all()]
    accounts = [Account.model_validate(r.data) for r in db.query(AccountRecord).all()]
    transactions = [Transaction.model_validate(r.data) for r in db.query(TransactionRecord).all()]
    transactions.sort(key=lambda t: (t.date, t.created_at))
    snapshots = [
        NetWorthSnapshot.model_validate(r.data)
        for r in db.query(SnapshotRecord).order_by(SnapshotRecord.date).all()
    ]
    custom_prices = {
        r.symbol: CustomPrice(price=r.price, note=r.note, set_at=r.set_at)
        for r in db.query(CustomPriceRecord).all()
    }

    settings = db.get(PortfolioSettings, SETTINGS_ROW_ID)
    fx_rates = dict(DEFAULT_FX_RATES)
    if settings and settings.fx_rates:
        fx_rates.update(settings.fx_rates)

    state = PortfolioState(
        positions=positions,
        accounts=accounts,
        custom_prices=custom_prices,
        fx_rates=fx_rates,
        transactions=transactions,
        snapshots=snapshots,
        hide_balances=bool(settings.hide_balances) if settings else False,
        hide_dust=bool(settings.hide_dust) if settings else False,
        risk_free_rate=settings.risk_free_rate if settings else DEFAULT_RISK_FREE_RATE,
    )
    logger.debug(
        "repo.load positions=%s accounts=%s snapshots=%s", len(positions), len(accounts), len(snapshots)
    )
    return state


def save_state(db: Session, state: PortfolioState) -> None:
    try:
        db.query(PositionRecord).delete()
        db.query(AccountRecord).delete()
        db.query(CustomPriceRecord).delete()
        db.query(TransactionRecord).delete()
        db.query(SnapshotRecord).delete()

        db.add_all(
            PositionRecord(
                id=p.id,
                symbol=p.symbol,
                type=p.type,
                account_id=p.account_id,
                data=p.model_dump(mode="json"),
            )
            for p in state.positions
        )
        db.add_all(
            AccountRecord(
                id=a.id,
                name=a.name,
                data_source=a.connection.data_source,
                data=a.model_dump(mode="json"),
            )
            for a in state.accounts
        )
        db.add_all(
            CustomPriceRecord(symbol=key, price=cp.price, note=cp.note, set_at=cp.set_at)
            for key, cp in state.custom_prices.items()
        )
        db.add_all(
            TransactionRecord(id=t.id, position_id=t.position_id, date=t.date, data=t.model_dump(mode="json"))
            for t in state.transactions
        )
        db.add_all(SnapshotRecord(date=s.date, data=s.model_dump(mode="json")) for s in state.snapshots)

        settings = db.get(PortfolioSettings, SETTINGS_ROW_ID)
        if settings is None:
            settings = PortfolioSettings(id=SETTINGS_ROW_ID)
            db.add(settings)
        settings.hide_balances = state.hide_balances
        settings.hide_dust = state.hide_dust
        settings.risk_free_rate = state.risk_free_rate
        settings.fx_rates = dict(state.fx_rates)

        db.commit()
    except Exception:
        db.rollback()
        logger.exception("repo.save.failed")
        raise
    logger.info("repo.save positions=%s accounts=%s", len(state.positions), len(state.accounts))


# Process-wide working copy. Live prices only exist here; the rest is
# loaded once from the database and written back after each mutation.
_state: Optional[PortfolioState] = None
_state_lock = threading.Lock()
# held for the whole read-mutate-save of one write
_write_lock = threading.Lock()


def get_cached_state(db: Session) -> PortfolioState:
    global _state
    with _state_lock:
        if _state is None:
            _state = load_state(db)
            logger.info("repo.state.loaded positions=%s", len(_state.positions))
        return _state


def reset_cached_state() -> None:
    global _state
    with _state_lock:
        _state = None


def commit_mutation(
    db: Session,
    mutate: Callable[[PortfolioState], T],
    accept: Optional[Callable[[T], bool]] = None,
    persist: bool = True,
) -> T:
    """
    Apply one write to the cached state.

    Writers are serialized. The mutation runs on a copy, which replaces the
    cached state only after it was saved, so an exception in `mutate` or in
    the commit leaves both the cache and the database as they were. When
    `accept` returns False for the result the copy is dropped unsaved.
    """
    global _state
    with _write_lock:
        working = copy.deepcopy(get_cached_state(db))
        result = mutate(working)
        if accept is not None and not accept(result):
            return result
        if persist:
            save_state(db, working)
        with _state_lock:
            _state = working
        return result
