# services/actions/intent_router.py
"""
Keyword intent classification for command text.

Runs locally and instantly so a model-backed parser only needs to see the
one to three tools that can plausibly apply. Rules are checked in order;
the first match wins.
"""
from __future__ import annotations

import re

from schemas.actions import ClassifiedIntent
from services.actions.tool_registry import QUERY_TOOLS

_CURRENCY_WORDS = (
    "cash|usd|eur|chf|gbp|jpy|cad|aud|nzd|sek|nok|dkk|pln|czk|huf|ron|bgn|hrk|isk|try"
    "|brl|mxn|inr|cny|krw|sgd|hkd|twd|thb|myr|idr|php"
)

_BUY = re.compile(r"\b(bought|buy|purchased|purchase)\b")
_CASH_WORD = re.compile(r"\bcash\b")
_SELL = re.compile(r"\b(sold|sell|dump)\b")
_SELL_ALL = re.compile(r"\b(all|everything|entire)\b")
_ADD = re.compile(r"\b(add(ed)?)\b")
_CURRENCY = re.compile(rf"\b({_CURRENCY_WORDS})\b")
_BALANCE = re.compile(r"\bbalance\b|\bset\s+cash\b")
_ADD_WALLET = re.compile(r"\b(add|connect)\s+(wallet|address)\b|\b(add|connect)\s+0x")
_REMOVE_WALLET = re.compile(r"\b(remove|disconnect)\s+(wallet|address)\b")
_REMOVE = re.compile(r"\b(remove|delete)\b")
_WALLET_WORD = re.compile(r"\b(wallet|address)\b")
_SET_PRICE = re.compile(r"\bset\b.*\bprice\b|\bprice\b.*\bat\b|\boverride\s+price\b")
_UPDATE = re.compile(r"\b(update|edit|change|modify)\b")
_TOGGLE = re.compile(r"\b(hide|show)\s+(balances?|dust|small)\b")
_RISK_FREE = re.compile(r"\brisk.?free\s+rate\b")
_NAVIGATE = re.compile(r"\b(go\s+to|open|navigate|show\s+page)\b")
_QUERY = re.compile(
    r"\b(what|how\s+much|how\s+many|show|list|top|summary|exposure|performance|leverage|debt|risk|perp)\b"
)


def classify_intent(text: str) -> ClassifiedIntent:
    t = (text or "").lower().strip()

    if _BUY.search(t) and not _CASH_WORD.search(t):
        return ClassifiedIntent(intent="buy", tool_ids=["buy_position"])

    if _SELL.search(t):
        if _SELL_ALL.search(t):
            return ClassifiedIntent(intent="sell", tool_ids=["sell_all"])
        return ClassifiedIntent(intent="sell", tool_ids=["sell_partial", "sell_all"])

    if _ADD.search(t) and _CURRENCY.search(t):
        return ClassifiedIntent(intent="add_cash", tool_ids=["add_cash"])

    if _BALANCE.search(t):
        return ClassifiedIntent(intent="update_cash", tool_ids=["update_cash"])

    if _ADD_WALLET.search(t):
        return ClassifiedIntent(intent="add_wallet", tool_ids=["add_wallet"])

    if _REMOVE_WALLET.search(t):
        return ClassifiedIntent(intent="remove_wallet", tool_ids=["remove_wallet"])

    if _REMOVE.search(t) and not _WALLET_WORD.search(t):
        return ClassifiedIntent(intent="remove", tool_ids=["remove_position"])

    if _SET_PRICE.search(t):
        return ClassifiedIntent(intent="set_price", tool_ids=["set_price"])

    if _UPDATE.search(t) and not _CASH_WORD.search(t):
        return ClassifiedIntent(intent="update", tool_ids=["update_position"])

    if _TOGGLE.search(t):
        return ClassifiedIntent(intent="toggle", tool_ids=["toggle_hide_balances", "toggle_hide_dust"])

    if _RISK_FREE.search(t):
        return ClassifiedIntent(intent="set_risk_free_rate", tool_ids=["set_risk_free_rate"])

    if _NAVIGATE.search(t):
        return ClassifiedIntent(intent="navigate", tool_ids=["navigate"])

    if _QUERY.search(t) or t.endswith("?"):
        return ClassifiedIntent(intent="query", tool_ids=list(QUERY_TOOLS))

    return ClassifiedIntent(intent="unknown", tool_ids=[])
