# schemas/actions.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from schemas.portfolio import AssetType

ActionType = Literal[
    "buy",
    "sell_partial",
    "sell_all",
    "add_cash",
    "update_cash",
    "update",
    "set_price",
    "remove",
]

IntentName = Literal[
    "buy",
    "sell",
    "add_cash",
    "update_cash",
    "add_wallet",
    "remove_wallet",
    "remove",
    "set_price",
    "update",
    "toggle",
    "set_risk_free_rate",
    "navigate",
    "query",
    "unknown",
]


class ParsedPositionAction(BaseModel):
    action: ActionType = "buy"
    symbol: str = "UNKNOWN"
    name: Optional[str] = None
    asset_type: AssetType = "crypto"

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

    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    summary: str = ""
    missing_fields: List[str] = Field(default_factory=list)


class ToolCall(BaseModel):
    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ClassifiedIntent(BaseModel):
    intent: IntentName = "unknown"
    tool_ids: List[str] = Field(default_factory=list)


class MutationChange(BaseModel):
    label: str
    before: Optional[str] = None
    after: str


class AccountCandidate(BaseModel):
    id: str
    name: str


class MutationPreview(BaseModel):
    tool: str
    summary: str = ""
    changes: List[MutationChange] = Field(default_factory=list)
    resolved_args: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    candidates: List[AccountCandidate] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class MutationResult(BaseModel):
    success: bool
    summary: str = ""
    error: Optional[str] = None


# request bodies for /api/command

class CommandTextRequest(BaseModel):
    text: str = Field(min_length=1, max_length=500)


class PreviewRequest(BaseModel):
    tool: str = Field(min_length=1, max_length=64)
    args: Dict[str, Any] = Field(default_factory=dict)


class ExecuteRequest(BaseModel):
    tool: str = Field(min_length=1, max_length=64)
    resolved_args: Dict[str, Any] = Field(default_factory=dict)
