"""Command tool registry.

Single source of truth for the command palette tools: mutations (validated by
the arg models below and executed by ``MutationExecutor``), read-only queries,
and navigation. The parser only ever emits names listed here.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from utils.common_helpers import parse_abbreviated_number

logger = logging.getLogger(__name__)

ToolType = Literal["mutation", "query", "navigation"]

NAVIGATION_PAGES = (
    "dashboard",
    "positions",
    "crypto",
    "equities",
    "metals",
    "cash",
    "exposure",
    "performance",
    "settings",
    "wallets",
    "perps",
    "other",
)


# ── Arg coercion ───────────────────────────────────────────────────────

def _coerce_number(v: Any) -> Optional[float]:
    """Numbers from a parser may arrive as 5000, "5,000", "$5k"."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return None if math.isnan(v) else float(v)
    text = str(v).strip()
    if not text:
        return None
    out = parse_abbreviated_number(text)
    if out is None:
        raise ValueError(f"not a number: {text!r}")
    return out


def _coerce_symbol(v: Any) -> str:
    return str(v or "").strip().lstrip("$").upper()


class _ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ── Arg models (one per mutation tool) ─────────────────────────────────

class BuyPositionArgs(_ToolArgs):
    symbol: str = Field(min_length=1, max_length=32)
    amount: Optional[float] = None
    price: Optional[float] = None
    total_cost: Optional[float] = Field(default=None, alias="totalCost")
    date: Optional[str] = None
    asset_type: Literal["crypto", "stock", "etf", "manual"] = Field(default="crypto", alias="assetType")
    name: Optional[str] = None
    account: Optional[str] = None

    @field_validator("symbol", mode="before")
    @classmethod
    def _symbol(cls, v):
        return _coerce_symbol(v)

    @field_validator("amount", "price", "total_cost", mode="before")
    @classmethod
    def _numbers(cls, v):
        return _coerce_number(v)

    @field_validator("asset_type", mode="before")
    @classmethod
    def _asset_type(cls, v):
        return (str(v).strip().lower() if v else "crypto") or "crypto"


class SellPartialArgs(_ToolArgs):
    symbol: str = Field(min_length=1, max_length=32)
    amount: Optional[float] = None
    percent: Optional[float] = Field(default=None, gt=0, le=100)
    price: Optional[float] = None
    date: Optional[str] = None

    @field_validator("symbol", mode="before")
    @classmethod
    def _symbol(cls, v):
        return _coerce_symbol(v)

    @field_validator("amount", "price", mode="before")
    @classmethod
    def _numbers(cls, v):
        return _coerce_number(v)

    @field_validator("percent", mode="before")
    @classmethod
    def _percent(cls, v):
        if isinstance(v, str):
            v = v.strip().rstrip("%")
        return _coerce_number(v)


class SellAllArgs(_ToolArgs):
    symbol: str = Field(min_length=1, max_length=32)
    price: Optional[float] = None
    date: Optional[str] = None

    @field_validator("symbol", mode="before")
    @classmethod
    def _symbol(cls, v):
        return _coerce_symbol(v)

    @field_validator("price", mode="before")
    @classmethod
    def _numbers(cls, v):
        return _coerce_number(v)


class RemovePositionArgs(_ToolArgs):
    symbol: str = Field(min_length=1, max_length=32)

    @field_validator("symbol", mode="before")
    @classmethod
    def _symbol(cls, v):
        return _coerce_symbol(v)


class UpdatePositionArgs(_ToolArgs):
    symbol: str = Field(min_length=1, max_length=32)
    amount: Optional[float] = None
    cost_basis: Optional[float] = Field(default=None, alias="costBasis")
    date: Optional[str] = None

    @field_validator("symbol", mode="before")
    @classmethod
    def _symbol(cls, v):
        return _coerce_symbol(v)

    @field_validator("amount", "cost_basis", mode="before")
    @classmethod
    def _numbers(cls, v):
        return _coerce_number(v)


class SetPriceArgs(_ToolArgs):
    symbol: str = Field(min_length=1, max_length=32)
    price: float
    note: Optional[str] = Field(default=None, max_length=200)

    @field_validator("symbol", mode="before")
    @classmethod
    def _symbol(cls, v):
        return _coerce_symbol(v)

    @field_validator("price", mode="before")
    @classmethod
    def _numbers(cls, v):
        return _coerce_number(v)


class _CashArgs(_ToolArgs):
    currency: str = Field(min_length=3, max_length=5)
    amount: float
    account: Optional[str] = None

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v):
        return str(v or "").strip().upper()

    @field_validator("amount", mode="before")
    @classmethod
    def _numbers(cls, v):
        return _coerce_number(v)


class AddCashArgs(_CashArgs):
    pass


class UpdateCashArgs(_CashArgs):
    pass


class AddWalletArgs(_ToolArgs):
    address: str = Field(min_length=1, max_length=128)
    name: Optional[str] = Field(default=None, max_length=128)
    chains: List[str] = Field(default_factory=lambda: ["eth"])

    @field_validator("address", mode="before")
    @classmethod
    def _address(cls, v):
        return str(v or "").strip()

    @field_validator("chains", mode="before")
    @classmethod
    def _chains(cls, v):
        if v is None or v == "":
            return ["eth"]
        items = v.split(",") if isinstance(v, str) else list(v)
        out = [str(c).strip().lower() for c in items if str(c).strip()]
        return out or ["eth"]


class RemoveWalletArgs(_ToolArgs):
    identifier: str = Field(min_length=1, max_length=128)

    @field_validator("identifier", mode="before")
    @classmethod
    def _identifier(cls, v):
        return str(v or "").strip()


class NoArgs(_ToolArgs):
    pass


class SetRiskFreeRateArgs(_ToolArgs):
    rate: float

    @field_validator("rate", mode="before")
    @classmethod
    def _rate(cls, v):
        # "4.5%" and 4.5 both mean 0.045
        is_pct = isinstance(v, str) and v.strip().endswith("%")
        num = _coerce_number(v.strip().rstrip("%") if isinstance(v, str) else v)
        if num is None:
            return None
        return num / 100.0 if (is_pct or num > 1) else num


class NavigateArgs(_ToolArgs):
    page: Literal[NAVIGATION_PAGES]  # type: ignore[valid-type]

    @field_validator("page", mode="before")
    @classmethod
    def _page(cls, v):
        return str(v or "").strip().lower()


ARG_MODELS: Dict[str, Type[_ToolArgs]] = {
    "buy_position": BuyPositionArgs,
    "sell_partial": SellPartialArgs,
    "sell_all": SellAllArgs,
    "remove_position": RemovePositionArgs,
    "update_position": UpdatePositionArgs,
    "set_price": SetPriceArgs,
    "add_cash": AddCashArgs,
    "update_cash": UpdateCashArgs,
    "add_wallet": AddWalletArgs,
    "remove_wallet": RemoveWalletArgs,
    "toggle_hide_balances": NoArgs,
    "toggle_hide_dust": NoArgs,
    "set_risk_free_rate": SetRiskFreeRateArgs,
    "navigate": NavigateArgs,
}


# ── Tool definitions ───────────────────────────────────────────────────

@dataclass(frozen=True)
class ToolField:
    name: str
    type: str
    required: bool
    description: str
    enum: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ToolDefinition:
    id: str
    type: ToolType
    description: str
    fields: Tuple[ToolField, ...] = ()
    examples: Tuple[str, ...] = field(default_factory=tuple)


_DATE_HINT = "Trade date in YYYY-MM-DD format (default today if omitted)."

MUTATION_TOOLS: Tuple[ToolDefinition, ...] = (
    ToolDefinition(
        "buy_position", "mutation",
        "Buy a new position or add to existing. When the user gives a dollar amount to spend, use totalCost and leave amount empty.",
        (
            ToolField("symbol", "string", True, "Ticker symbol (e.g. BTC, AAPL)"),
            ToolField("amount", "number", False, "Quantity to buy. Omit when totalCost is provided."),
            ToolField("price", "number", False, "Price per unit"),
            ToolField("totalCost", "number", False, "Total amount spent"),
            ToolField("date", "string", False, _DATE_HINT),
            ToolField("assetType", "string", False, "Asset type", ("crypto", "stock", "etf", "manual")),
            ToolField("name", "string", False, "Display name for the asset"),
            ToolField("account", "string", False, "Account to associate with"),
        ),
        ("bought 10 AAPL at $185", "buy 0.5 BTC", "bought 123 MSFT for 50k"),
    ),
    ToolDefinition(
        "sell_partial", "mutation", "Sell part of a position",
        (
            ToolField("symbol", "string", True, "Ticker symbol to sell"),
            ToolField("amount", "number", False, "Exact quantity to sell"),
            ToolField("percent", "number", False, "Percentage of position to sell (0-100)"),
            ToolField("price", "number", False, "Sale price per unit"),
            ToolField("date", "string", False, _DATE_HINT),
        ),
        ("sell half my ETH", "sold 5 AAPL at $190"),
    ),
    ToolDefinition(
        "sell_all", "mutation", "Sell entire position",
        (
            ToolField("symbol", "string", True, "Ticker symbol to sell entirely"),
            ToolField("price", "number", False, "Sale price per unit"),
            ToolField("date", "string", False, _DATE_HINT),
        ),
        ("sell all my DOGE", "sold all BTC at $70k"),
    ),
    ToolDefinition(
        "remove_position", "mutation", "Remove a position without recording a sale",
        (ToolField("symbol", "string", True, "Ticker symbol to remove"),),
        ("remove DOGE", "delete my SOL position"),
    ),
    ToolDefinition(
        "update_position", "mutation", "Update position details",
        (
            ToolField("symbol", "string", True, "Ticker symbol to update"),
            ToolField("amount", "number", False, "New amount"),
            ToolField("costBasis", "number", False, "New total cost basis"),
            ToolField("date", "string", False, "New purchase date (YYYY-MM-DD)"),
        ),
        ("update BTC amount to 0.6", "edit AAPL cost basis to $9000"),
    ),
    ToolDefinition(
        "set_price", "mutation", "Override the price of an asset",
        (
            ToolField("symbol", "string", True, "Ticker symbol"),
            ToolField("price", "number", True, "Custom price to set"),
        ),
        ("set BTC price to $65000", "price ETH at $3200"),
    ),
    ToolDefinition(
        "add_cash", "mutation", "Add cash to an account",
        (
            ToolField("currency", "string", True, "Currency code (e.g. USD, EUR)"),
            ToolField("amount", "number", True, "Amount to add"),
            ToolField("account", "string", False, "Account name (e.g. Revolut, IBKR)"),
        ),
        ("5000 EUR to Revolut", "add $10k to IBKR"),
    ),
    ToolDefinition(
        "update_cash", "mutation", "Set the balance of an existing cash position",
        (
            ToolField("currency", "string", True, "Currency code"),
            ToolField("amount", "number", True, "New balance"),
            ToolField("account", "string", False, "Account name"),
        ),
        ("N26 EUR balance 4810", "Revolut EUR is now 5000"),
    ),
    ToolDefinition(
        "add_wallet", "mutation", "Connect a blockchain wallet",
        (
            ToolField("address", "string", True, "Wallet address"),
            ToolField("name", "string", False, "Display name for the wallet"),
            ToolField("chains", "string", False, "Comma-separated chain list"),
        ),
        ("add wallet 0xabc...",),
    ),
    ToolDefinition(
        "remove_wallet", "mutation", "Remove a connected wallet",
        (ToolField("identifier", "string", True, "Wallet address or display name"),),
        ("remove wallet 0xabc", "disconnect My ETH Wallet"),
    ),
    ToolDefinition("toggle_hide_balances", "mutation", "Toggle balance visibility", (), ("hide balances",)),
    ToolDefinition("toggle_hide_dust", "mutation", "Toggle dust position hiding", (), ("hide dust",)),
    ToolDefinition(
        "set_risk_free_rate", "mutation", "Set the risk-free rate for Sharpe ratio",
        (ToolField("rate", "number", True, "Risk-free rate (e.g. 0.045 for 4.5%)"),),
        ("set risk-free rate to 4.5%",),
    ),
)

# query id -> description; these are read-only and carry no args worth validating
QUERY_TOOLS: Dict[str, str] = {
    "query_net_worth": "Total net worth",
    "query_portfolio_summary": "Portfolio summary",
    "query_top_positions": "Largest positions by value",
    "query_position_details": "Details for one symbol",
    "query_positions_by_type": "Positions of one asset type",
    "query_exposure": "Long/short/gross/net exposure",
    "query_crypto_exposure": "Crypto exposure by category",
    "query_performance": "Performance over a period",
    "query_24h_change": "24h change",
    "query_category_value": "Value in one category",
    "query_position_count": "Number of positions",
    "query_debt_summary": "Debts and borrowed cash",
    "query_leverage": "Leverage ratio",
    "query_perps_summary": "Perp margin and notional",
    "query_risk_profile": "Conservative/moderate/aggressive split",
}

NAVIGATION_TOOL = ToolDefinition(
    "navigate", "navigation", "Navigate to a page",
    (ToolField("page", "string", True, "Page to navigate to", NAVIGATION_PAGES),),
    ("go to performance", "open settings"),
)

TOOL_REGISTRY: Tuple[ToolDefinition, ...] = (
    *MUTATION_TOOLS,
    *(ToolDefinition(k, "query", v) for k, v in QUERY_TOOLS.items()),
    NAVIGATION_TOOL,
)

MUTATION_TOOL_NAMES = frozenset(t.id for t in MUTATION_TOOLS)
QUERY_TOOL_NAMES = frozenset(QUERY_TOOLS)
ALL_TOOL_NAMES = frozenset(t.id for t in TOOL_REGISTRY)

# mutations that always need an explicit confirm step in the UI
CONFIRM_MUTATION_TOOLS = frozenset({"remove_position", "sell_all", "remove_wallet"})


def get_tool_by_id(tool_id: str) -> Optional[ToolDefinition]:
    for t in TOOL_REGISTRY:
        if t.id == tool_id:
            return t
    return None


def get_tools_by_type(tool_type: ToolType) -> List[ToolDefinition]:
    return [t for t in TOOL_REGISTRY if t.type == tool_type]


def validate_tool_args(tool: str, args: Optional[Dict[str, Any]]) -> _ToolArgs:
    """Parse raw args for ``tool``. Raises KeyError for unknown tools, ValidationError for bad args."""
    model = ARG_MODELS.get(tool)
    if model is None:
        if tool in QUERY_TOOL_NAMES:
            return NoArgs()
        raise KeyError(tool)
    return model.model_validate(args or {})


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "args"
        parts.append(f"{loc}: {err.get('msg')}")
    return "Invalid tool arguments: " + "; ".join(parts)


def to_ollama_tools(tool_ids: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Native tool-calling schema; restricted to ``tool_ids`` when given."""
    wanted = set(tool_ids) if tool_ids else None
    out: List[Dict[str, Any]] = []
    for t in TOOL_REGISTRY:
        if wanted is not None and t.id not in wanted:
            continue
        props: Dict[str, Any] = {}
        for f in t.fields:
            prop: Dict[str, Any] = {"type": f.type, "description": f.description}
            if f.enum:
                prop["enum"] = list(f.enum)
            props[f.name] = prop
        desc = t.description
        if t.examples:
            desc = f"{desc}. Examples: " + "; ".join(t.examples)
        out.append({
            "type": "function",
            "function": {
                "name": t.id,
                "description": desc,
                "parameters": {
                    "type": "object",
                    "properties": props,
                    "required": [f.name for f in t.fields if f.required],
                },
            },
        })
    return out

