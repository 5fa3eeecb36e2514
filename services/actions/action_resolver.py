# services/actions/action_resolver.py
"""
Turns a raw parsed action (from a model or the rule-based extractor) plus the
user's original text into a complete ParsedPositionAction.

The raw action is trusted first; the text only fills gaps, except where a
phrase shape is unambiguous (``remove X``, ``X price 95000``, ``5000 EUR to
Revolut``), in which case it also corrects the action type.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from schemas.actions import ParsedPositionAction
from schemas.portfolio import Position
from services.actions.intent_router import classify_intent
from services.category_service import get_category_service
from services.snapshot_manager import utc_today
from utils.common_helpers import format_number, parse_abbreviated_number

# ── phrase shapes ──────────────────────────────────────────────────────

_REMOVE_RE = re.compile(r"^(?:remove|delete|drop)\s+", re.IGNORECASE)
_PRICE_NUM_RE = re.compile(r"\bprice\s+\$?\d", re.IGNORECASE)
_PRICE_LEAD_RE = re.compile(r"^(?:set\s+)?price\s+", re.IGNORECASE)
_ADD_CASH_RE = re.compile(r"^(\d+(?:[.,]\d+)?[kmb]?)\s+([a-zA-Z]{3})\s+(?:to|in|into|at)\s+(.+)$", re.IGNORECASE)
_UPDATE_CASH_RE = re.compile(
    r"^(.+?)\s+([a-zA-Z]{3})\s+(?:is\s+now|now|=|balance)\s+(\d+(?:[.,]\d+)?[kmb]?)$", re.IGNORECASE
)

_BUY_AMOUNT_RE = re.compile(r"(?:bought|purchased|added|buy)\s+(\d+(?:\.\d+)?)\s", re.IGNORECASE)
_LEADING_AMOUNT_RE = re.compile(r"^(\d+(?:\.\d+)?)\s+\w", re.IGNORECASE)
_AT_PRICE_RE = re.compile(r"(?:at|@)\s*(\$?\d+(?:\.\d+)?[kmb]?)", re.IGNORECASE)
_FOR_TOTAL_RE = re.compile(r"for\s+(\$?\d+(?:\.\d+)?[kmb]?)", re.IGNORECASE)
_PERCENT_RE = re.compile(r"(\d+)\s*%")
_HALF_RE = re.compile(r"\bhalf\b", re.IGNORECASE)
_THIRD_RE = re.compile(r"\bthird\b", re.IGNORECASE)
_QUARTER_RE = re.compile(r"\bquarter\b", re.IGNORECASE)
_SELL_AMOUNT_RE = re.compile(r"(?:sold|sell)\s+(\d+(?:\.\d+)?)\s+(?:shares?|units?|\w)", re.IGNORECASE)
_ANY_NUMBER_RE = re.compile(r"(\d+(?:[.,]\d+)?[kmb]?)", re.IGNORECASE)
_SET_PRICE_NUM_RE = re.compile(r"(?:price|=)\s*(\$?\d+(?:[.,]\d+)?[kmb]?)", re.IGNORECASE)
_UPDATE_AMOUNT_RE = re.compile(r"\b(?:amount|quantity|qty)\s+(?:to\s+)?(\d+(?:[.,]\d+)?[kmb]?)", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_ACTION_ALIASES = {
    "sell": "sell_partial",
    "update_position": "update",
    "remove_position": "remove",
    "delete": "remove",
}
_VALID_ACTIONS = {"buy", "sell_partial", "sell_all", "add_cash", "update_cash", "update", "set_price", "remove"}


@dataclass
class _Working:
    action: str
    symbol: str
    name: Optional[str] = None
    asset_type: Optional[str] = None
    amount: Optional[float] = None
    price_per_unit: Optional[float] = None
    total_cost: Optional[float] = None
    sell_amount: Optional[float] = None
    sell_percent: Optional[float] = None
    sell_price: Optional[float] = None
    total_proceeds: Optional[float] = None
    date: Optional[str] = None
    matched_position_id: Optional[str] = None
    currency: Optional[str] = None
    account_name: Optional[str] = None
    new_price: Optional[float] = None
    confidence: float = 0.5
    summary: str = ""
    missing_fields: List[str] = field(default_factory=list)

    @property
    def is_sell(self) -> bool:
        return self.action in ("sell_partial", "sell_all")


def _abbrev(raw: str) -> Optional[float]:
    # "1,5k" style decimal commas come from the cash phrase shapes
    return parse_abbreviated_number(raw.replace(",", ".", 1))


def _find(positions: Sequence[Position], position_id: Optional[str]) -> Optional[Position]:
    if not position_id:
        return None
    return next((p for p in positions if p.id == position_id), None)


def _is_fiat(code: str) -> bool:
    return get_category_service().is_fiat(code.lower())


def _plain(n: float) -> str:
    """10.0 -> '10', 0.25 -> '0.25'."""
    return str(int(n)) if float(n).is_integer() else str(n)


def _fmt_price(n: float) -> str:
    if n >= 1:
        return "$" + (f"{n:,.2f}" if n % 1 else f"{n:,.0f}")
    return "$" + _plain(n)


# ── pipeline steps ─────────────────────────────────────────────────────

def normalize_symbol(w: _Working) -> _Working:
    if w.symbol:
        w.symbol = w.symbol.strip().upper()
    return w


def correct_action_type(w: _Working, text: str, positions: Sequence[Position]) -> _Working:
    t = text.strip()

    if _REMOVE_RE.search(t):
        w.action = "remove"

    if _PRICE_NUM_RE.search(t) or _PRICE_LEAD_RE.search(t):
        w.action = "set_price"

    m = _ADD_CASH_RE.match(t)
    if m and _is_fiat(m.group(2)):
        w.action = "add_cash"

    m = _UPDATE_CASH_RE.match(t)
    if m and _is_fiat(m.group(2)):
        w.action = "update_cash"

    if w.action == "sell_all" and w.sell_amount and w.matched_position_id:
        pos = _find(positions, w.matched_position_id)
        if pos is not None and w.sell_amount < pos.amount:
            w.action = "sell_partial"

    if w.action in ("add_cash", "update_cash"):
        w.asset_type = "cash"
    return w


def match_to_position(w: _Working, positions: Sequence[Position]) -> _Working:
    if w.matched_position_id or not w.symbol:
        return w
    matches = [p for p in positions if p.symbol.upper() == w.symbol.upper()]
    if len(matches) == 1:
        w.matched_position_id = matches[0].id
        w.name = w.name or matches[0].name
        w.asset_type = w.asset_type or matches[0].type
    return w


def fill_missing_fields(w: _Working, text: str) -> _Working:
    """Fill gaps from the text. Values already present are never overwritten."""
    t = text.strip()

    if not w.amount and w.action == "buy":
        m = _BUY_AMOUNT_RE.search(text) or _LEADING_AMOUNT_RE.search(text)
        if m:
            w.amount = float(m.group(1))

    m = _AT_PRICE_RE.search(text)
    if m:
        price = parse_abbreviated_number(m.group(1))
        if price is not None:
            if w.action == "buy" and not w.price_per_unit:
                w.price_per_unit = price
            if w.is_sell and not w.sell_price:
                w.sell_price = price

    m = _FOR_TOTAL_RE.search(text)
    if m:
        total = parse_abbreviated_number(m.group(1))
        if total is not None:
            if w.is_sell and not w.total_proceeds:
                w.total_proceeds = total
            if w.action == "buy" and not w.total_cost:
                w.total_cost = total

    if not w.sell_percent and w.action == "sell_partial":
        m = _PERCENT_RE.search(text)
        if m:
            w.sell_percent = float(m.group(1))
        elif _HALF_RE.search(text):
            w.sell_percent = 50.0
        elif _THIRD_RE.search(text):
            w.sell_percent = 33.33
        elif _QUARTER_RE.search(text):
            w.sell_percent = 25.0

    if not w.sell_amount and not w.sell_percent and w.is_sell:
        m = _SELL_AMOUNT_RE.search(text)
        if m:
            w.sell_amount = float(m.group(1))

    if w.action == "add_cash":
        m = _ADD_CASH_RE.match(t)
        if m and _is_fiat(m.group(2)):
            w.currency = w.currency or m.group(2).upper()
            w.account_name = w.account_name or m.group(3).strip()
            if not w.amount:
                w.amount = _abbrev(m.group(1))

    if w.action == "update_cash":
        m = _UPDATE_CASH_RE.match(t)
        if m and _is_fiat(m.group(2)):
            w.currency = w.currency or m.group(2).upper()
            w.account_name = w.account_name or m.group(1).strip()
            if not w.amount:
                w.amount = _abbrev(m.group(3))
        if not w.amount:
            numbers = _ANY_NUMBER_RE.findall(text)
            if numbers:
                w.amount = _abbrev(numbers[-1])

    if w.action in ("add_cash", "update_cash") and w.currency and (not w.symbol or w.symbol == "UNKNOWN"):
        w.symbol = f"CASH_{w.currency}"

    if not w.new_price and w.action == "set_price":
        m = _SET_PRICE_NUM_RE.search(text)
        if m:
            price = parse_abbreviated_number(m.group(1))
            if price is not None:
                w.new_price = price

    if not w.amount and w.action == "update":
        m = _UPDATE_AMOUNT_RE.search(text)
        if m:
            w.amount = _abbrev(m.group(1))
    return w


def derive_computed_fields(w: _Working, positions: Sequence[Position]) -> _Working:
    if w.action == "buy":
        if not w.price_per_unit and w.total_cost and w.amount:
            w.price_per_unit = w.total_cost / w.amount
        if not w.amount and w.total_cost and w.price_per_unit:
            w.amount = w.total_cost / w.price_per_unit
        if w.amount and w.price_per_unit:
            w.total_cost = w.amount * w.price_per_unit

    pos = _find(positions, w.matched_position_id)
    if w.action == "sell_all" and pos is not None:
        w.sell_amount = pos.amount

    if w.action == "sell_partial" and w.sell_percent and not w.sell_amount and pos is not None:
        w.sell_amount = pos.amount * (w.sell_percent / 100.0)

    if w.is_sell and not w.sell_price and w.total_proceeds and w.sell_amount:
        w.sell_price = w.total_proceeds / w.sell_amount
    if w.is_sell and w.sell_amount and w.sell_price:
        w.total_proceeds = w.sell_amount * w.sell_price
    return w


def validate_date(w: _Working, today: Optional[date] = None) -> _Working:
    """Missing, malformed or future dates become today."""
    today_iso = (today or utc_today()).isoformat()
    if not w.date or not _ISO_DATE_RE.match(w.date):
        w.date = today_iso
        return w
    try:
        date.fromisoformat(w.date)
    except ValueError:
        w.date = today_iso
        return w
    if w.date > today_iso:
        w.date = today_iso
    return w


def compute_missing_fields(w: _Working) -> _Working:
    missing: List[str] = []
    if w.is_sell and not w.sell_price:
        missing.append("sell_price")
    if w.action == "sell_partial" and not w.sell_amount:
        missing.append("sell_amount")
    if w.action == "buy":
        if not w.amount:
            missing.append("amount")
        if not w.price_per_unit:
            missing.append("price_per_unit")

    if w.action == "add_cash":
        missing = []
        if not w.amount:
            missing.append("amount")
        if not w.currency:
            missing.append("currency")
    elif w.action == "update_cash":
        missing = [] if w.amount else ["amount"]
    elif w.action == "set_price":
        missing = [] if w.new_price else ["new_price"]
    elif w.action == "update":
        missing = [] if (w.amount or w.price_per_unit) else ["amount"]
    elif w.action == "remove":
        missing = []

    w.missing_fields = missing
    return w


def build_summary(w: _Working, positions: Sequence[Position]) -> _Working:
    if w.is_sell:
        pos = _find(positions, w.matched_position_id)
        if w.sell_percent:
            qty = f"{_plain(w.sell_percent)}% of"
        elif w.sell_amount:
            if pos is not None and pos.amount > 0:
                pct = math.floor(w.sell_amount / pos.amount * 100 + 0.5)
                qty = f"{_plain(w.sell_amount)} ({pct}%) of"
            else:
                qty = _plain(w.sell_amount)
        else:
            qty = "all"
        price_part = f" at {_fmt_price(w.sell_price)}" if w.sell_price else ""
        w.summary = f"Sell {qty} {w.symbol}{price_part}"
    elif w.action == "buy":
        qty = _plain(w.amount) if w.amount else ""
        price_part = f" at {_fmt_price(w.price_per_unit)}" if w.price_per_unit else ""
        w.summary = f"Buy {qty} {w.symbol}{price_part}"
    elif w.action == "add_cash":
        amt = format_number(w.amount) if w.amount else "?"
        w.summary = f"Add {amt} {w.currency or '?'} to {w.account_name or '?'}"
    elif w.action == "update_cash":
        amt = format_number(w.amount) if w.amount else "?"
        w.summary = f"Update {w.account_name or '?'} {w.currency or '?'} to {amt}"
    elif w.action == "update":
        parts = [f"Update {w.symbol}"]
        if w.amount:
            parts.append(f"amount to {_plain(w.amount)}")
        if w.price_per_unit:
            parts.append(f"price to {_fmt_price(w.price_per_unit)}")
        w.summary = " ".join(parts)
    elif w.action == "set_price":
        w.summary = f"Set {w.symbol} price to {_fmt_price(w.new_price) if w.new_price else '?'}"
    elif w.action == "remove":
        w.summary = f"Remove {w.symbol}"
    return w


# ── entry points ───────────────────────────────────────────────────────

def _normalize_action(raw_action: Any) -> str:
    action = str(raw_action or "buy").strip().lower()
    action = _ACTION_ALIASES.get(action, action)
    if action not in _VALID_ACTIONS:
        raise ValueError(f"Unknown action: {raw_action}")
    return action


def resolve_action(
    raw: Dict[str, Any],
    original_text: str,
    positions: Sequence[Position],
    today: Optional[date] = None,
) -> ParsedPositionAction:
    """Run the resolution pipeline. Raises ValueError only for an unrecognised action name."""
    w = _Working(
        action=_normalize_action(raw.get("action")),
        symbol=str(raw.get("symbol") or "UNKNOWN"),
        name=raw.get("name"),
        asset_type=raw.get("asset_type"),
        amount=raw.get("amount"),
        price_per_unit=raw.get("price_per_unit"),
        total_cost=raw.get("total_cost"),
        sell_amount=raw.get("sell_amount"),
        sell_percent=raw.get("sell_percent"),
        sell_price=raw.get("sell_price"),
        total_proceeds=raw.get("total_proceeds"),
        date=raw.get("date"),
        matched_position_id=raw.get("matched_position_id"),
        currency=raw.get("currency"),
        account_name=raw.get("account_name"),
        new_price=raw.get("new_price"),
        confidence=float(raw.get("confidence") if raw.get("confidence") is not None else 0.5),
        summary=str(raw.get("summary") or ""),
    )

    text = original_text or ""
    w = normalize_symbol(w)
    w = correct_action_type(w, text, positions)
    w = match_to_position(w, positions)
    w = fill_missing_fields(w, text)
    w = derive_computed_fields(w, positions)
    w = validate_date(w, today)
    w = compute_missing_fields(w)
    w = build_summary(w, positions)

    is_cash = w.action in ("add_cash", "update_cash")
    return ParsedPositionAction(
        action=w.action,
        symbol=w.symbol,
        name=w.name,
        asset_type=w.asset_type or "crypto",
        amount=w.amount,
        price_per_unit=w.price_per_unit,
        total_cost=w.total_cost,
        sell_amount=w.sell_amount,
        sell_percent=w.sell_percent,
        sell_price=w.sell_price,
        total_proceeds=w.total_proceeds,
        date=w.date,
        matched_position_id=w.matched_position_id,
        currency=w.currency if is_cash else None,
        account_name=w.account_name if is_cash else None,
        new_price=w.new_price if w.action == "set_price" else None,
        confidence=min(max(w.confidence, 0.0), 1.0),
        summary=w.summary,
        missing_fields=w.missing_fields,
    )


# words that are never the ticker in a command
_STOP_WORDS = frozenset({
    "bought", "buy", "purchased", "purchase", "added", "add", "sold", "sell", "dump",
    "remove", "delete", "drop", "set", "update", "edit", "change", "modify", "price",
    "override", "at", "for", "of", "my", "all", "the", "a", "an", "to", "in", "into",
    "shares", "share", "units", "unit", "worth", "half", "third", "quarter", "everything",
    "entire", "position", "amount", "cost", "basis", "is", "now", "balance", "today",
    "yesterday", "usd", "cash", "with", "and", "on", "from", "qty", "quantity",
})
_TOKEN_RE = re.compile(r"\$?[A-Za-z][A-Za-z0-9.\-]*")
_LOOSE_CASH_RE = re.compile(
    r"(\d+(?:[.,]\d+)?[kmb]?)\s*([a-zA-Z]{3})\b(?:\s+(?:to|in|into|at)\s+(.+))?", re.IGNORECASE
)
_INTENT_ACTIONS = {
    "buy": "buy",
    "add_cash": "add_cash",
    "update_cash": "update_cash",
    "remove": "remove",
    "set_price": "set_price",
    "update": "update",
}


def _guess_symbol(text: str, positions: Sequence[Position]) -> Optional[str]:
    held = {p.symbol.upper() for p in positions}
    candidates = [tok.lstrip("$") for tok in _TOKEN_RE.findall(text)]
    candidates = [c for c in candidates if c.lower() not in _STOP_WORDS]
    for c in candidates:
        if c.upper() in held:
            return c.upper()
    for c in candidates:
        if c.isupper() and 1 < len(c) <= 10:
            return c
    return candidates[0].upper() if candidates else None


def text_to_raw_action(text: str, positions: Sequence[Position] = ()) -> Optional[Dict[str, Any]]:
    """
    Rule-based stand-in for a model: pick the action from the intent router and
    a ticker from the text. Everything else is left to ``resolve_action``.
    Returns None when the text is not a position action.
    """
    intent = classify_intent(text)
    if intent.intent == "sell":
        action = "sell_all" if intent.tool_ids == ["sell_all"] else "sell_partial"
    else:
        action = _INTENT_ACTIONS.get(intent.intent)
    if action is None:
        # phrase shapes the router does not know ("5000 EUR to Revolut")
        t = text.strip()
        add = _ADD_CASH_RE.match(t)
        upd = _UPDATE_CASH_RE.match(t)
        if add and _is_fiat(add.group(2)):
            action = "add_cash"
        elif upd and _is_fiat(upd.group(2)):
            action = "update_cash"
        elif _PRICE_NUM_RE.search(t):
            action = "set_price"
        else:
            return None

    raw: Dict[str, Any] = {"action": action, "confidence": 0.7}
    if action == "add_cash":
        m = _LOOSE_CASH_RE.search(text)
        if m and _is_fiat(m.group(2)):
            raw["currency"] = m.group(2).upper()
            raw["amount"] = _abbrev(m.group(1))
            if m.group(3):
                raw["account_name"] = m.group(3).strip()
    if action not in ("add_cash", "update_cash"):
        symbol = _guess_symbol(text, positions)
        if symbol:
            raw["symbol"] = symbol
    return raw
