from __future__ import annotations

import logging
import os
import time
from typing import Dict, Iterable, Optional

import httpx

logger = logging.getLogger(__name__)

# USD value of one unit of each currency. Used whenever live rates are missing.
DEFAULT_FX_RATES: Dict[str, float] = {
    "USD": 1.0,
    "EUR": 1.19,
    "GBP": 1.37,
    "CHF": 1.30,
    "JPY": 0.0065,
    "CAD": 0.73,
    "AUD": 0.69,
    "NZD": 0.60,
    "CNY": 0.14,
    "HKD": 0.13,
    "SGD": 0.79,
    "SEK": 0.11,
    "NOK": 0.10,
    "DKK": 0.16,
    "PLN": 0.28,
    "CZK": 0.049,
    "HUF": 0.0031,
    "RON": 0.23,
    "BGN": 0.61,
    "ISK": 0.0082,
    "TRY": 0.023,
    "BRL": 0.19,
    "MXN": 0.058,
    "ZAR": 0.063,
    "INR": 0.011,
    "KRW": 0.00069,
    "THB": 0.032,
    "IDR": 0.00006,
    "MYR": 0.25,
    "PHP": 0.017,
    "ILS": 0.32,
    "AED": 0.27,
    "TWD": 0.031,
    "VND": 0.00004,
}

FX_API_URL = os.getenv("FX_API_URL", "https://api.frankfurter.app/latest")
FX_TTL_S = float(os.getenv("FX_TTL_S", "3600"))


def normalize_currency(code: Optional[str]) -> str:
    return (code or "USD").strip().upper() or "USD"


def get_fx_rate(currency: Optional[str], fx_rates: Optional[Dict[str, float]] = None) -> float:
    """USD per unit of `currency`: live table first, then defaults, then 1.0."""
    ccy = normalize_currency(currency)
    if fx_rates and ccy in fx_rates and fx_rates[ccy] > 0:
        return float(fx_rates[ccy])
    return DEFAULT_FX_RATES.get(ccy, 1.0)


class FxRateService:
    """Fetches USD-per-unit rates from a frankfurter-compatible endpoint with a small TTL cache."""

    def __init__(self, ttl_s: float = FX_TTL_S, base_url: str = FX_API_URL):
        self._ttl = ttl_s
        self._base_url = base_url
        self._cache: Optional[tuple[Dict[str, float], float]] = None

    async def get_rates(
        self,
        currencies: Optional[Iterable[str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Dict[str, float]:
        now = time.time()
        if self._cache and self._cache[1] > now:
            return dict(self._cache[0])

        wanted = sorted({normalize_currency(c) for c in (currencies or DEFAULT_FX_RATES.keys())} - {"USD"})
        params = {"from": "USD", "to": ",".join(wanted)}
        owns_client = client is None
        c = client or httpx.AsyncClient(timeout=6.0)
        try:
            r = await c.get(self._base_url, params=params)
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("fx.fetch.failed error=%s fallback=defaults", type(exc).__name__)
            return dict(DEFAULT_FX_RATES)
        finally:
            if owns_client:
                await c.aclose()

        rates: Dict[str, float] = {"USD": 1.0}
        # API returns units-per-USD; invert to USD-per-unit
        for code, per_usd in ((data or {}).get("rates") or {}).items():
            try:
                per_usd = float(per_usd)
            except (TypeError, ValueError):
                continue
            if per_usd > 0:
                rates[code.upper()] = 1.0 / per_usd

        merged = {**DEFAULT_FX_RATES, **rates}
        if self._ttl:
            self._cache = (merged, now + self._ttl)
        logger.info("fx.fetch.done currencies=%s", len(rates))
        return dict(merged)
