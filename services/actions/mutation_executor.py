# services/actions/mutation_executor.py
"""
Preview and execute command mutations against a PortfolioState.

preview() never changes state; it resolves symbols/accounts, validates, and
returns a before/after change list plus the resolved args execute() needs.
execute() re-checks everything it reads before the first write, so a failed
execution leaves the state as it was. Neither method raises: failures come
back as error-shaped previews/results.
"""
from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from schemas.actions import (
    AccountCandidate,
    MutationChange,
    MutationPreview,
    MutationResult,
    ParsedPositionAction,
)
from schemas.portfolio import Account, AccountConnection, Position
from services.actions.position_operations import execute_buy, execute_full_sell, execute_partial_sell
from services.actions.tool_registry import (
    AddCashArgs,
    AddWalletArgs,
    BuyPositionArgs,
    MUTATION_TOOL_NAMES,
    RemovePositionArgs,
    RemoveWalletArgs,
    SellAllArgs,
    SellPartialArgs,
    SetPriceArgs,
    SetRiskFreeRateArgs,
    UpdateCashArgs,
    UpdatePositionArgs,
    format_validation_error,
    validate_tool_args,
)
from services.portfolio_store import PortfolioState
from services.snapshot_manager import utc_today
from utils.common_helpers import format_currency, format_number, shorten_address

logger = logging.getLogger(__name__)


def _money(v: float) -> str:
    return format_currency(v, compact=False)


def _rate(v: float) -> str:
    return f"{v * 100:.1f}%"


def error_preview(
    tool: str,
    message: str,
    candidates: Optional[List[AccountCandidate]] = None,
) -> MutationPreview:
    return MutationPreview(
        tool=tool,
        summary=message,
        changes=[MutationChange(label="Error", after=message)],
        resolved_args={"_error": message},
        error=message,
        candidates=candidates or [],
    )


def _fail(message: str) -> MutationResult:
    return MutationResult(success=False, summary="", error=message)


class AccountResolution:
    __slots__ = ("account", "candidates")

    def __init__(self, account: Optional[Account] = None, candidates: Optional[List[Account]] = None):
        self.account = account
        self.candidates = candidates or []

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1

    def candidate_models(self) -> List[AccountCandidate]:
        return [AccountCandidate(id=a.id, name=a.name) for a in self.candidates]

    def candidate_names(self) -> str:
        return ", ".join(a.name for a in self.candidates)


class MutationExecutor:
    def __init__(self, store: PortfolioState, today: Optional[Callable[[], date]] = None):
        self.store = store
        self._today = today or utc_today

    # ---------- lookups ----------
    def find_position(self, symbol: str) -> Optional[Position]:
        """Case-insensitive; with several matches prefer the manual one (no account)."""
        key = (symbol or "").lower()
        matches = [p for p in self.store.positions if p.symbol.lower() == key]
        if not matches:
            return None
        return next((p for p in matches if not p.account_id), matches[0])

    def _find_by_id(self, position_id: Optional[str]) -> Optional[Position]:
        return next((p for p in self.store.positions if p.id == position_id), None) if position_id else None

    def resolve_account(self, name: str, role: Optional[str] = None) -> AccountResolution:
        """Substring match on account name within the accounts that can play ``role``
        (wallet, cex, cash, brokerage or manual). An exact name breaks a tie."""
        if role == "wallet":
            pool = self.store.wallet_accounts()
        elif role == "cex":
            pool = self.store.cex_accounts()
        elif role in ("cash", "brokerage", "manual"):
            pool = self.store.manual_accounts()
        else:
            pool = list(self.store.accounts)

        needle = (name or "").strip().lower()
        matches = [a for a in pool if needle and needle in a.name.lower()]
        if len(matches) == 1:
            return AccountResolution(account=matches[0])
        exact = [a for a in matches if a.name.lower() == needle]
        if len(exact) == 1:
            return AccountResolution(account=exact[0])
        return AccountResolution(candidates=matches)

    def current_price(self, symbol: str) -> float:
        key = symbol.lower()
        custom = self.store.custom_prices.get(key)
        if custom is not None:
            return custom.price
        pd_ = self.store.prices.get(key)
        return pd_.price if pd_ and pd_.price else 0.0

    def resolve_date(self, raw: Optional[str]) -> str:
        """today / yesterday / YYYY-MM-DD. Future or unparseable dates become today."""
        today = self._today()
        text = (raw or "").strip().lower()
        if not text or text == "today":
            return today.isoformat()
        if text == "yesterday":
            return (today - timedelta(days=1)).isoformat()
        try:
            parsed = date.fromisoformat(text[:10])
        except ValueError:
            return today.isoformat()
        return min(parsed, today).isoformat()

    # ---------- preview handlers ----------
    def _preview_buy_position(self, args: BuyPositionArgs) -> MutationPreview:
        tool = "buy_position"
        symbol = args.symbol
        amount = args.amount or 0.0
        if not amount and args.total_cost and args.price:
            amount = args.total_cost / args.price
        if amount <= 0:
            return error_preview(tool, "Amount must be greater than zero")

        if args.price is not None and args.price <= 0:
            return error_preview(tool, "Price must be greater than zero")
        price = args.price or (args.total_cost / amount if args.total_cost else 0.0) or self.current_price(symbol)
        if price <= 0:
            return error_preview(tool, f"No price provided for {symbol} and no market price available")

        existing = self.find_position(symbol)
        cost = args.total_cost if args.total_cost else amount * price
        changes = [
            MutationChange(label="Symbol", after=symbol),
            MutationChange(
                label="Amount",
                before=format_number(existing.amount) if existing else "New position",
                after=format_number(existing.amount + amount if existing else amount),
            ),
            MutationChange(label="Cost", after=_money(cost)),
            MutationChange(label="Price", after=_money(price)),
        ]
        resolved: Dict[str, Any] = {
            "symbol": symbol,
            "name": args.name or (existing.name if existing else symbol),
            "amount": amount,
            "price_per_unit": price,
            "total_cost": cost,
            "asset_type": args.asset_type,
            "matched_position_id": existing.id if existing else None,
            "date": self.resolve_date(args.date),
        }

        if args.account:
            role = "brokerage" if args.asset_type in ("stock", "etf") else None
            res = self.resolve_account(args.account, role)
            if res.ambiguous:
                return error_preview(
                    tool,
                    f'Multiple accounts match "{args.account}": {res.candidate_names()}',
                    res.candidate_models(),
                )
            if res.account is not None:
                resolved["account_id"] = res.account.id
                changes.append(MutationChange(label="Account", after=res.account.name))
            else:
                changes.append(MutationChange(label="Account", after=f'"{args.account}" not found'))

        return MutationPreview(
            tool=tool,
            summary=f"Buy {format_number(amount)} {symbol} at {_money(price)}",
            changes=changes,
            resolved_args=resolved,
        )

    def _sell_price(self, tool: str, symbol: str, price: Optional[float]) -> Tuple[Optional[float], Optional[MutationPreview]]:
        if price is not None and price <= 0:
            return None, error_preview(tool, "Price must be greater than zero")
        out = price or self.current_price(symbol)
        if out <= 0:
            return None, error_preview(tool, f"No sell price provided for {symbol} and no market price available")
        return out, None

    def _preview_sell_partial(self, args: SellPartialArgs) -> MutationPreview:
        tool = "sell_partial"
        symbol = args.symbol
        position = self.find_position(symbol)
        if position is None:
            return error_preview(tool, f'No position found for "{symbol}"')

        sell_amount = args.amount or 0.0
        if not sell_amount and args.percent:
            sell_amount = position.amount * (args.percent / 100.0)
        if sell_amount <= 0:
            return error_preview(tool, "No sell amount or percent provided")

        remaining = position.amount - sell_amount
        if remaining < 0:
            return error_preview(
                tool,
                f"Cannot sell {format_number(sell_amount)}, only {format_number(position.amount)} available",
            )

        price, err = self._sell_price(tool, symbol, args.price)
        if err is not None:
            return err

        return MutationPreview(
            tool=tool,
            summary=f"Sell {format_number(sell_amount)} {symbol} at {_money(price)}",
            changes=[
                MutationChange(label="Symbol", after=symbol),
                MutationChange(label="Sell Amount", after=format_number(sell_amount)),
                MutationChange(label="Amount", before=format_number(position.amount), after=format_number(remaining)),
                MutationChange(label="Sell Price", after=_money(price)),
                MutationChange(label="Proceeds", after=_money(sell_amount * price)),
            ],
            resolved_args={
                "symbol": symbol,
                "sell_amount": sell_amount,
                "sell_price": price,
                "matched_position_id": position.id,
                "date": self.resolve_date(args.date),
            },
        )

    def _preview_sell_all(self, args: SellAllArgs) -> MutationPreview:
        tool = "sell_all"
        symbol = args.symbol
        position = self.find_position(symbol)
        if position is None:
            return error_preview(tool, f'No position found for "{symbol}"')

        price, err = self._sell_price(tool, symbol, args.price)
        if err is not None:
            return err

        return MutationPreview(
            tool=tool,
            summary=f"Sell all {format_number(position.amount)} {symbol} at {_money(price)}",
            changes=[
                MutationChange(label="Symbol", after=symbol),
                MutationChange(label="Amount", before=format_number(position.amount), after="0 (removed)"),
                MutationChange(label="Sell Price", after=_money(price)),
                MutationChange(label="Proceeds", after=_money(position.amount * price)),
            ],
            resolved_args={
                "symbol": symbol,
                "sell_price": price,
                "matched_position_id": position.id,
                "date": self.resolve_date(args.date),
            },
        )

    def _preview_remove_position(self, args: RemovePositionArgs) -> MutationPreview:
        tool = "remove_position"
        position = self.find_position(args.symbol)
        if position is None:
            return error_preview(tool, f'No position found for "{args.symbol}"')
        return MutationPreview(
            tool=tool,
            summary=f"Remove {args.symbol} position ({format_number(position.amount)})",
            changes=[
                MutationChange(label="Symbol", after=args.symbol),
                MutationChange(label="Amount", before=format_number(position.amount), after="Removed"),
                MutationChange(label="Action", after="Delete position (no transaction recorded)"),
            ],
            resolved_args={"matched_position_id": position.id},
        )

    def _preview_update_position(self, args: UpdatePositionArgs) -> MutationPreview:
        tool = "update_position"
        position = self.find_position(args.symbol)
        if position is None:
            return error_preview(tool, f'No position found for "{args.symbol}"')

        changes: List[MutationChange] = []
        resolved: Dict[str, Any] = {"matched_position_id": position.id}

        if args.amount is not None:
            if args.amount <= 0:
                return error_preview(tool, "Amount must be greater than zero")
            changes.append(MutationChange(
                label="Amount", before=format_number(position.amount), after=format_number(args.amount),
            ))
            resolved["amount"] = args.amount
        if args.cost_basis is not None:
            if args.cost_basis < 0:
                return error_preview(tool, "Cost basis cannot be negative")
            changes.append(MutationChange(
                label="Cost Basis",
                before=_money(position.cost_basis) if position.cost_basis is not None else "Not set",
                after=_money(args.cost_basis),
            ))
            resolved["cost_basis"] = args.cost_basis
        if args.date is not None:
            purchase_date = self.resolve_date(args.date)
            changes.append(MutationChange(
                label="Purchase Date", before=position.purchase_date or "Not set", after=purchase_date,
            ))
            resolved["purchase_date"] = purchase_date

        if not changes:
            return error_preview(tool, "No fields to update")

        return MutationPreview(
            tool=tool,
            summary=f"Update {args.symbol} position",
            changes=changes,
            resolved_args=resolved,
        )

    def _preview_set_price(self, args: SetPriceArgs) -> MutationPreview:
        tool = "set_price"
        if args.price <= 0:
            return error_preview(tool, "Price must be greater than zero")
        changes = [
            MutationChange(label="Symbol", after=args.symbol),
            MutationChange(label="Price", before=_money(self.current_price(args.symbol)), after=_money(args.price)),
        ]
        if args.note:
            changes.append(MutationChange(label="Note", after=args.note))
        return MutationPreview(
            tool=tool,
            summary=f"Set custom price for {args.symbol}: {_money(args.price)}",
            changes=changes,
            resolved_args={"symbol": args.symbol.lower(), "price": args.price, "note": args.note},
        )

    def _preview_add_cash(self, args: AddCashArgs) -> MutationPreview:
        tool = "add_cash"
        if args.amount <= 0:
            return error_preview(tool, "Amount must be greater than zero")

        changes = [MutationChange(label="Amount", after=f"{format_number(args.amount)} {args.currency}")]
        resolved: Dict[str, Any] = {"amount": args.amount, "currency": args.currency}

        if args.account:
            res = self.resolve_account(args.account, "cash")
            if res.ambiguous:
                return error_preview(
                    tool,
                    f'Multiple accounts match "{args.account}": {res.candidate_names()}',
                    res.candidate_models(),
                )
            if res.account is not None:
                resolved["account_id"] = res.account.id
                changes.append(MutationChange(label="Account", after=res.account.name))
            else:
                changes.append(MutationChange(
                    label="Account", after=f'"{args.account}" not found, will create standalone',
                ))

        return MutationPreview(
            tool=tool,
            summary=f"Add {format_number(args.amount)} {args.currency} cash",
            changes=changes,
            resolved_args=resolved,
        )

    def _preview_update_cash(self, args: UpdateCashArgs) -> MutationPreview:
        tool = "update_cash"
        # a negative balance is a typo, not an overdraft
        if args.amount <= 0:
            return error_preview(tool, "Amount must be greater than zero")

        currency = args.currency
        cash = [p for p in self.store.positions if p.type == "cash"]
        matched: Optional[Position] = None

        if args.account:
            res = self.resolve_account(args.account, "cash")
            if res.ambiguous:
                return error_preview(
                    tool,
                    f'Multiple accounts match "{args.account}": {res.candidate_names()}',
                    res.candidate_models(),
                )
            if res.account is not None:
                matched = next(
                    (p for p in cash if p.account_id == res.account.id
                     and (currency in p.name.upper() or currency in p.symbol.upper())),
                    None,
                )

        if matched is None:
            matched = next(
                (p for p in cash if currency in p.name.upper() or currency in p.symbol.upper()),
                None,
            )
        if matched is None:
            return error_preview(tool, f'No cash position found for "{currency}"')

        label = matched.name or matched.symbol
        return MutationPreview(
            tool=tool,
            summary=f"Update {label} balance to {format_number(args.amount)}",
            changes=[
                MutationChange(label="Account", after=label),
                MutationChange(label="Balance", before=format_number(matched.amount), after=format_number(args.amount)),
            ],
            resolved_args={"matched_position_id": matched.id, "amount": args.amount},
        )

    def _preview_add_wallet(self, args: AddWalletArgs) -> MutationPreview:
        tool = "add_wallet"
        address = args.address
        if any((a.connection.address or "").lower() == address.lower() for a in self.store.wallet_accounts()):
            return error_preview(tool, "Wallet already connected")

        changes = [
            MutationChange(label="Address", after=address),
            MutationChange(label="Chains", after=", ".join(args.chains)),
        ]
        if args.name:
            changes.append(MutationChange(label="Name", after=args.name))
        return MutationPreview(
            tool=tool,
            summary=f"Connect wallet {shorten_address(address)}",
            changes=changes,
            resolved_args={
                "address": address,
                "name": args.name or f"Wallet {address[:6]}",
                "chains": list(args.chains),
            },
        )

    def _preview_remove_wallet(self, args: RemoveWalletArgs) -> MutationPreview:
        tool = "remove_wallet"
        ident = args.identifier.lower()
        wallets = self.store.wallet_accounts()

        if ident.startswith("0x"):
            matches = [w for w in wallets if (w.connection.address or "").lower() == ident]
        else:
            matches = [w for w in wallets if ident in w.name.lower()]

        if not matches:
            return error_preview(tool, f'No wallet found matching "{args.identifier}"')
        if len(matches) > 1:
            return error_preview(
                tool,
                f'Multiple wallets match "{args.identifier}": ' + ", ".join(w.name for w in matches),
                [AccountCandidate(id=w.id, name=w.name) for w in matches],
            )

        match = matches[0]
        return MutationPreview(
            tool=tool,
            summary=f"Remove wallet {match.name}",
            changes=[
                MutationChange(label="Wallet", before=match.name, after="Removed"),
                MutationChange(label="Address", before=match.connection.address or "", after="Disconnected"),
            ],
            resolved_args={"account_id": match.id},
        )

    def _preview_toggle_hide_balances(self, _args: Any) -> MutationPreview:
        on = self.store.hide_balances
        return MutationPreview(
            tool="toggle_hide_balances",
            summary="Show balances" if on else "Hide balances",
            changes=[MutationChange(label="Hide Balances", before="On" if on else "Off", after="Off" if on else "On")],
        )

    def _preview_toggle_hide_dust(self, _args: Any) -> MutationPreview:
        on = self.store.hide_dust
        return MutationPreview(
            tool="toggle_hide_dust",
            summary="Show dust positions" if on else "Hide dust positions",
            changes=[MutationChange(label="Hide Dust (<$100)", before="On" if on else "Off", after="Off" if on else "On")],
        )

    def _preview_set_risk_free_rate(self, args: SetRiskFreeRateArgs) -> MutationPreview:
        tool = "set_risk_free_rate"
        if not 0.0 <= args.rate <= 1.0:
            return error_preview(tool, "Risk-free rate must be between 0% and 100%")
        return MutationPreview(
            tool=tool,
            summary=f"Set risk-free rate to {_rate(args.rate)}",
            changes=[MutationChange(
                label="Risk-Free Rate", before=_rate(self.store.risk_free_rate), after=_rate(args.rate),
            )],
            resolved_args={"rate": args.rate},
        )

    # ---------- execute handlers ----------
    def _exec_buy_position(self, ra: Dict[str, Any]) -> MutationResult:
        symbol = str(ra["symbol"])
        amount = float(ra["amount"])
        price = float(ra.get("price_per_unit") or 0.0)
        existing = None
        if ra.get("matched_position_id"):
            existing = self._find_by_id(ra["matched_position_id"])
            if existing is None:
                return _fail("Position not found")
        account_id = ra.get("account_id")
        if account_id:
            self.store.get_account(account_id)

        action = ParsedPositionAction(
            action="buy",
            symbol=symbol,
            name=ra.get("name") or symbol,
            asset_type=ra.get("asset_type") or "crypto",
            amount=amount,
            price_per_unit=price,
            total_cost=ra.get("total_cost"),
            confidence=1.0,
            summary=f"Buy {amount} {symbol}",
        )
        result = execute_buy(existing, action, ra.get("date") or self._today().isoformat())

        if existing is not None:
            self.store.update_position(existing.id, result.updated_fields)
        else:
            new_position = result.new_position.model_copy(update={"account_id": account_id})
            self.store.add_position(new_position)
        self.store.add_transaction(result.transaction)
        return MutationResult(success=True, summary=f"Bought {format_number(amount)} {symbol} at {_money(price)}")

    def _exec_sell_partial(self, ra: Dict[str, Any]) -> MutationResult:
        position = self._find_by_id(ra.get("matched_position_id"))
        if position is None:
            return _fail("Position not found")
        sell_amount = float(ra["sell_amount"])
        sell_price = float(ra["sell_price"])

        # raises before any write when the position shrank since preview
        result = execute_partial_sell(position, sell_amount, sell_price, ra.get("date") or self._today().isoformat())
        if result.removed_position_id:
            self.store.remove_position(result.removed_position_id)
        else:
            self.store.update_position(position.id, result.updated_fields)
        self.store.add_transaction(result.transaction)
        return MutationResult(
            success=True,
            summary=f"Sold {format_number(sell_amount)} {position.symbol} at {_money(sell_price)}",
        )

    def _exec_sell_all(self, ra: Dict[str, Any]) -> MutationResult:
        position = self._find_by_id(ra.get("matched_position_id"))
        if position is None:
            return _fail("Position not found")
        sell_price = float(ra["sell_price"])

        result = execute_full_sell(position, sell_price, ra.get("date") or self._today().isoformat())
        self.store.remove_position(result.removed_position_id)
        self.store.add_transaction(result.transaction)
        return MutationResult(
            success=True,
            summary=f"Sold all {format_number(position.amount)} {position.symbol} at {_money(sell_price)}",
        )

    def _exec_remove_position(self, ra: Dict[str, Any]) -> MutationResult:
        position = self._find_by_id(ra.get("matched_position_id"))
        if position is None:
            return _fail("Position not found")
        self.store.remove_position(position.id)
        return MutationResult(success=True, summary=f"Removed {position.symbol} position")

    def _exec_update_position(self, ra: Dict[str, Any]) -> MutationResult:
        position = self._find_by_id(ra.get("matched_position_id"))
        if position is None:
            return _fail("Position not found")
        updates = {k: ra[k] for k in ("amount", "cost_basis", "purchase_date") if ra.get(k) is not None}
        if not updates:
            return _fail("No fields to update")
        if "amount" in updates and float(updates["amount"]) <= 0:
            return _fail("Amount must be greater than zero")
        self.store.update_position(position.id, updates)
        return MutationResult(success=True, summary=f"Updated {position.symbol} position")

    def _exec_set_price(self, ra: Dict[str, Any]) -> MutationResult:
        symbol = str(ra["symbol"])
        price = float(ra["price"])
        if price <= 0:
            return _fail("Price must be greater than zero")
        self.store.set_custom_price(symbol, price, ra.get("note"))
        return MutationResult(success=True, summary=f"Set custom price for {symbol.upper()}: {_money(price)}")

    def _exec_add_cash(self, ra: Dict[str, Any]) -> MutationResult:
        amount = float(ra["amount"])
        if amount <= 0:
            return _fail("Amount must be greater than zero")
        currency = str(ra.get("currency") or "USD").upper()
        account_id = ra.get("account_id")
        if account_id:
            self.store.get_account(account_id)

        self.store.add_position(Position(
            type="cash",
            asset_class="cash",
            symbol=f"CASH_{currency}_{int(time.time() * 1000)}",
            name=f"{currency} Cash",
            amount=amount,
            account_id=account_id,
        ))
        return MutationResult(success=True, summary=f"Added {format_number(amount)} {currency} cash")

    def _exec_update_cash(self, ra: Dict[str, Any]) -> MutationResult:
        position = self._find_by_id(ra.get("matched_position_id"))
        if position is None:
            return _fail("Cash position not found")
        amount = float(ra["amount"])
        if amount <= 0:
            return _fail("Amount must be greater than zero")
        self.store.update_position(position.id, {"amount": amount})
        return MutationResult(success=True, summary=f"Updated {position.symbol} balance to {format_number(amount)}")

    def _exec_add_wallet(self, ra: Dict[str, Any]) -> MutationResult:
        name = str(ra["name"])
        account = Account(
            name=name,
            connection=AccountConnection(
                data_source="debank",
                address=str(ra["address"]),
                chains=list(ra.get("chains") or ["eth"]),
            ),
        )
        self.store.add_account(account)
        return MutationResult(success=True, summary=f"Connected wallet {name}")

    def _exec_remove_wallet(self, ra: Dict[str, Any]) -> MutationResult:
        account = self.store.get_account(str(ra["account_id"]))
        if not account.connection.is_wallet:
            return _fail("Account is not a wallet")
        self.store.remove_account(account.id)
        return MutationResult(success=True, summary="Wallet removed")

    def _exec_toggle_hide_balances(self, _ra: Dict[str, Any]) -> MutationResult:
        hidden = self.store.toggle_hide_balances()
        return MutationResult(success=True, summary="Balances hidden" if hidden else "Balances visible")

    def _exec_toggle_hide_dust(self, _ra: Dict[str, Any]) -> MutationResult:
        hidden = self.store.toggle_hide_dust()
        return MutationResult(success=True, summary="Dust positions hidden" if hidden else "All positions visible")

    def _exec_set_risk_free_rate(self, ra: Dict[str, Any]) -> MutationResult:
        rate = float(ra["rate"])
        self.store.set_risk_free_rate(rate)
        return MutationResult(success=True, summary=f"Risk-free rate set to {_rate(rate)}")

    # ---------- public API ----------
    def preview(self, tool: str, args: Optional[Dict[str, Any]]) -> MutationPreview:
        if tool not in MUTATION_TOOL_NAMES:
            return error_preview(tool, f'No handler for mutation tool "{tool}"')
        try:
            parsed = validate_tool_args(tool, args)
            out = getattr(self, f"_preview_{tool}")(parsed)
        except ValidationError as exc:
            out = error_preview(tool, format_validation_error(exc))
        except (KeyError, ValueError) as exc:
            out = error_preview(tool, str(exc))
        logger.info("mutation.preview tool=%s ok=%s", tool, out.ok)
        return out

    def execute(self, tool: str, resolved_args: Optional[Dict[str, Any]]) -> MutationResult:
        ra = dict(resolved_args or {})
        if ra.get("_error"):
            return _fail(str(ra["_error"]))
        if tool not in MUTATION_TOOL_NAMES:
            return _fail(f'No handler for mutation tool "{tool}"')
        try:
            out = getattr(self, f"_exec_{tool}")(ra)
        except KeyError as exc:
            out = _fail(f"Not found: {exc.args[0] if exc.args else exc}")
        except (ValueError, TypeError, ValidationError) as exc:
            out = _fail(str(exc))
        logger.info("mutation.execute tool=%s ok=%s", tool, out.success)
        return out
