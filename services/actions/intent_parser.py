from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx

from schemas.actions import ParsedPositionAction, ToolCall
from schemas.portfolio import Position
from services.actions.action_resolver import resolve_action, text_to_raw_action
from services.actions.intent_router import classify_intent
from services.actions.tool_registry import ALL_TOOL_NAMES, NAVIGATION_PAGES, to_ollama_tools
from services.snapshot_manager import utc_today

logger = logging.getLogger(__name__)

OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1")
INTENT_TIMEOUT_S = float(os.getenv("INTENT_TIMEOUT_S", "8"))

_ADDRESS_RE = re.compile(r"\b(0x[a-fA-F0-9]{6,}|[1-9A-HJ-NP-Za-km-z]{32,44})\b")
_WALLET_NAME_RE = re.compile(r"\bas\s+(.+)$", re.IGNORECASE)
_REMOVE_WALLET_RE = re.compile(r"\b(?:remove|disconnect)\s+(?:wallet|address)?\s*(.+)$", re.IGNORECASE)
_RATE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(%)?")
_COST_BASIS_RE = re.compile(r"cost\s*basis\s+(?:to\s+)?(\$?\d+(?:[.,]\d+)?[kmb]?)", re.IGNORECASE)

# keyword -> query tool, first hit wins
_QUERY_KEYWORDS = (
    ("net worth", "query_net_worth"),
    ("leverage", "query_leverage"),
    ("perp", "query_perps_summary"),
    ("debt", "query_debt_summary"),
    ("risk", "query_risk_profile"),
    ("crypto exposure", "query_crypto_exposure"),
    ("exposure", "query_exposure"),
    ("performance", "query_performance"),
    ("24h", "query_24h_change"),
    ("today", "query_24h_change"),
    ("how many", "query_position_count"),
    ("top", "query_top_positions"),
)


def action_to_tool_call(action: ParsedPositionAction, text: str = "") -> ToolCall:
    """Map a resolved position action onto its mutation tool and args."""
    a = action
    if a.action == "buy":
        args = {
            "symbol": a.symbol,
            "amount": a.amount,
            "price": a.price_per_unit,
            "totalCost": a.total_cost,
            "date": a.date,
            "assetType": a.asset_type if a.asset_type != "cash" else "crypto",
            "name": a.name,
        }
        tool = "buy_position"
    elif a.action == "sell_partial":
        args = {"symbol": a.symbol, "amount": a.sell_amount, "percent": a.sell_percent,
                "price": a.sell_price, "date": a.date}
        tool = "sell_partial"
    elif a.action == "sell_all":
        args = {"symbol": a.symbol, "price": a.sell_price, "date": a.date}
        tool = "sell_all"
    elif a.action == "remove":
        args = {"symbol": a.symbol}
        tool = "remove_position"
    elif a.action == "update":
        args = {"symbol": a.symbol, "amount": a.amount}
        m = _COST_BASIS_RE.search(text or "")
        if m:
            args["costBasis"] = m.group(1)
        tool = "update_position"
    elif a.action == "set_price":
        args = {"symbol": a.symbol, "price": a.new_price}
        tool = "set_price"
    else:
        args = {"currency": a.currency, "amount": a.amount, "account": a.account_name}
        tool = a.action  # add_cash | update_cash

    clean = {k: v for k, v in args.items() if v is not None}
    confidence = a.confidence if not a.missing_fields else min(a.confidence, 0.5)
    return ToolCall(tool=tool, args=clean, confidence=confidence)


class IntentParser(ABC):
    """Free text -> ToolCall. Returns None when nothing actionable was recognised."""

    @abstractmethod
    async def parse(self, text: str, positions: Sequence[Position]) -> Optional[ToolCall]:
        raise NotImplementedError


class RuleBasedIntentParser(IntentParser):
    async def parse(self, text: str, positions: Sequence[Position]) -> Optional[ToolCall]:
        return self.parse_sync(text, positions)

    def parse_sync(self, text: str, positions: Sequence[Position]) -> Optional[ToolCall]:
        text = (text or "").strip()
        if not text:
            return None

        raw = text_to_raw_action(text, positions)
        if raw is not None:
            action = resolve_action(raw, text, positions)
            return action_to_tool_call(action, text)

        intent = classify_intent(text)
        t = text.lower()

        if intent.intent == "add_wallet":
            m = _ADDRESS_RE.search(text)
            if not m:
                return None
            args: Dict[str, Any] = {"address": m.group(1)}
            name = _WALLET_NAME_RE.search(text)
            if name:
                args["name"] = name.group(1).strip()
            return ToolCall(tool="add_wallet", args=args, confidence=0.8)

        if intent.intent == "remove_wallet":
            m = _REMOVE_WALLET_RE.search(text)
            if not m or not m.group(1).strip():
                return None
            return ToolCall(tool="remove_wallet", args={"identifier": m.group(1).strip()}, confidence=0.8)

        if intent.intent == "toggle":
            tool = "toggle_hide_balances" if "balance" in t else "toggle_hide_dust"
            return ToolCall(tool=tool, args={}, confidence=0.9)

        if intent.intent == "set_risk_free_rate":
            m = _RATE_RE.search(t)
            if not m:
                return None
            rate = m.group(1) + (m.group(2) or "")
            return ToolCall(tool="set_risk_free_rate", args={"rate": rate}, confidence=0.8)

        if intent.intent == "navigate":
            page = next((p for p in NAVIGATION_PAGES if re.search(rf"\b{p}\b", t)), None)
            if page is None:
                return None
            return ToolCall(tool="navigate", args={"page": page}, confidence=0.8)

        if intent.intent == "query":
            tool = next((q for kw, q in _QUERY_KEYWORDS if kw in t), "query_portfolio_summary")
            return ToolCall(tool=tool, args={}, confidence=0.6)

        return None


_SYSTEM_PROMPT = (
    "You turn portfolio commands into exactly one tool call. "
    "Use only the tools provided. Symbols are uppercase tickers. "
    "Dates are YYYY-MM-DD; today is {today}. Never invent numbers the user did not give."
)


def _positions_table(positions: Sequence[Position], limit: int = 50) -> str:
    if not positions:
        return "(no positions)"
    rows = [f"{p.symbol} | {p.name} | {p.amount:g} | {p.type}" for p in list(positions)[:limit]]
    return "symbol | name | amount | type\n" + "\n".join(rows)


class OllamaIntentParser(IntentParser):
    """
    Native tool-calling against an Ollama-compatible /api/chat endpoint.
    The keyword router narrows the tool list first; on timeout, transport
    errors or unusable output it falls back to ``fallback``.
    """

    def __init__(
        self,
        base_url: str = OLLAMA_URL,
        model: str = OLLAMA_MODEL,
        timeout_s: float = INTENT_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
        fallback: Optional[IntentParser] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = float(timeout_s)
        self._client = client
        self.fallback = fallback or RuleBasedIntentParser()

    def _normalize_tool_name(self, raw_name: Any) -> Optional[str]:
        if not isinstance(raw_name, str):
            return None
        name = raw_name.strip()
        if not name or name not in ALL_TOOL_NAMES:
            return None
        return name

    def _extract_tool_call(self, body: Dict[str, Any]) -> Optional[ToolCall]:
        calls = ((body or {}).get("message") or {}).get("tool_calls") or []
        if not isinstance(calls, list) or not calls:
            return None
        fn = (calls[0] or {}).get("function") or {}
        name = self._normalize_tool_name(fn.get("name"))
        if not name:
            return None
        args = fn.get("arguments")
        if isinstance(args, str):
            try:
                args = json.loads(args)
            except ValueError:
                args = {}
        if not isinstance(args, dict):
            args = {}
        return ToolCall(tool=name, args=args, confidence=0.9)

    async def _chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/api/chat"
        if self._client is not None:
            resp = await self._client.post(url, json=payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                resp = await client.post(url, json=payload)
        resp.raise_for_status()
        return resp.json()

    def _merge_rule_args(self, call: ToolCall, text: str, positions: Sequence[Position]) -> ToolCall:
        """Model args win; the rule parser only fills keys the model left out."""
        rule = RuleBasedIntentParser().parse_sync(text, positions)
        if rule is None or rule.tool != call.tool:
            return call
        merged = dict(rule.args)
        merged.update({k: v for k, v in call.args.items() if v not in (None, "")})
        return call.model_copy(update={"args": merged})

    async def parse(self, text: str, positions: Sequence[Position]) -> Optional[ToolCall]:
        started = time.perf_counter()
        intent = classify_intent(text)
        tool_ids: Optional[List[str]] = intent.tool_ids or None

        payload = {
            "model": self.model,
            "stream": False,
            "options": {"temperature": 0},
            "tools": to_ollama_tools(tool_ids),
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT.format(today=utc_today().isoformat())},
                {"role": "user", "content": f"Positions:\n{_positions_table(positions)}\n\nCommand: {text}"},
            ],
        }
        logger.info(
            "intent.parse.start model=%s intent=%s tools=%s text_len=%s",
            self.model, intent.intent, len(payload["tools"]), len(text or ""),
        )

        try:
            body = await asyncio.wait_for(self._chat(payload), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.warning("intent.parse.timeout elapsed_ms=%s", elapsed_ms)
            return await self.fallback.parse(text, positions)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("intent.parse.error err=%s", type(exc).__name__)
            return await self.fallback.parse(text, positions)

        call = self._extract_tool_call(body)
        if call is None:
            logger.info("intent.parse.no_tool fallback=rules")
            return await self.fallback.parse(text, positions)

        call = self._merge_rule_args(call, text, positions)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info("intent.parse.done elapsed_ms=%s tool=%s", elapsed_ms, call.tool)
        return call


def get_intent_parser() -> IntentParser:
    kind = (os.getenv("INTENT_PARSER") or "rules").strip().lower()
    if kind == "ollama":
        return OllamaIntentParser()
    return RuleBasedIntentParser()
