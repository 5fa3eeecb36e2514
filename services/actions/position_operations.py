# services/actions/position_operations.py
"""
Business rules for buys and sells. Each operation returns the transaction to
record plus the position change to apply; nothing here touches the store.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from schemas.actions import ParsedPositionAction
from schemas.portfolio import Position, Transaction, new_id
from services.category_service import get_category_service

# remainders below this are treated as a closed position
REMAINDER_EPSILON = 1e-6


@dataclass
class PositionOperationResult:
    transaction: Transaction
    updated_fields: Dict[str, Any] = field(default_factory=dict)
    removed_position_id: Optional[str] = None
    new_position: Optional[Position] = None


def execute_partial_sell(
    position: Position,
    sell_amount: float,
    sell_price: float,
    date: str,
    notes: Optional[str] = None,
) -> PositionOperationResult:
    original = position.amount
    remaining = original - sell_amount
    if remaining < 0:
        raise ValueError(f"Cannot sell {sell_amount}, only {original} available")
    if sell_amount <= 0:
        raise ValueError("Sell amount must be greater than zero")

    cost_at_exec = position.cost_basis * (sell_amount / original) if position.cost_basis is not None else None
    total_value = sell_amount * sell_price
    realized = (total_value - cost_at_exec) if cost_at_exec is not None else None

    tx = Transaction(
        type="sell",
        symbol=position.symbol,
        name=position.name,
        asset_type=position.type,
        amount=sell_amount,
        price_per_unit=sell_price,
        total_value=total_value,
        cost_basis_at_execution=cost_at_exec,
        realized_pnl=realized,
        position_id=position.id,
        date=date,
        notes=notes,
    )

    if remaining < REMAINDER_EPSILON:
        return PositionOperationResult(transaction=tx, removed_position_id=position.id)

    new_cost = position.cost_basis * (remaining / original) if position.cost_basis is not None else None
    return PositionOperationResult(
        transaction=tx,
        updated_fields={"amount": remaining, "cost_basis": new_cost},
    )


def execute_full_sell(
    position: Position,
    sell_price: float,
    date: str,
    notes: Optional[str] = None,
) -> PositionOperationResult:
    total_value = position.amount * sell_price
    realized = (total_value - position.cost_basis) if position.cost_basis is not None else None

    tx = Transaction(
        type="sell",
        symbol=position.symbol,
        name=position.name,
        asset_type=position.type,
        amount=position.amount,
        price_per_unit=sell_price,
        total_value=total_value,
        cost_basis_at_execution=position.cost_basis,
        realized_pnl=realized,
        position_id=position.id,
        date=date,
        notes=notes,
    )
    return PositionOperationResult(transaction=tx, removed_position_id=position.id)


def execute_buy(
    existing: Optional[Position],
    action: ParsedPositionAction,
    date: str,
    notes: Optional[str] = None,
) -> PositionOperationResult:
    """Adds to ``existing`` when given (cost basis accumulates), otherwise opens a new position."""
    amount = action.amount or 0.0
    if amount <= 0:
        raise ValueError("Buy amount must be greater than zero")
    price = action.price_per_unit or 0.0
    total_value = action.total_cost if action.total_cost is not None else amount * price

    if existing is not None:
        tx = Transaction(
            type="buy",
            symbol=existing.symbol,
            name=existing.name,
            asset_type=existing.type,
            amount=amount,
            price_per_unit=price,
            total_value=total_value,
            position_id=existing.id,
            date=date,
            notes=notes,
        )
        return PositionOperationResult(
            transaction=tx,
            updated_fields={
                "amount": existing.amount + amount,
                "cost_basis": (existing.cost_basis or 0.0) + total_value,
                "purchase_date": existing.purchase_date or date,
            },
        )

    position_id = new_id()
    name = action.name or action.symbol
    position = Position(
        id=position_id,
        type=action.asset_type,
        asset_class=get_category_service().get_asset_class(action.symbol, action.asset_type),
        symbol=action.symbol,
        name=name,
        amount=amount,
        cost_basis=total_value,
        purchase_date=date,
    )
    tx = Transaction(
        type="buy",
        symbol=action.symbol,
        name=name,
        asset_type=action.asset_type,
        amount=amount,
        price_per_unit=price,
        total_value=total_value,
        position_id=position_id,
        date=date,
        notes=notes,
    )
    return PositionOperationResult(transaction=tx, new_position=position)
