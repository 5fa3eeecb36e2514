from decimal import Decimal
import math
import re
from typing import Any, Optional


def to_float(x: Any) -> float:
    if x is None:
        return 0.0
    if isinstance(x, Decimal):
        return float(x)
    try:
        out = float(x)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(out) else out


def pct(n: float, d: float) -> float:
    return (n / d * 100.0) if d else 0.0


def capitalize(s: Optional[str]) -> str:
    s = (s or "").strip()
    return s[:1].upper() + s[1:] if s else ""


def shorten_address(address: str) -> str:
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


_ABBREV_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([kmb])?$")
_ABBREV_MULT = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


def parse_abbreviated_number(raw: Any) -> Optional[float]:
    """
    Parse "$1,250", "2.5k", "1m" style numbers.
    Returns None when the text is not a plain (optionally suffixed) number.
    """
    if raw is None:
        return None
    cleaned = re.sub(r"[$,]", "", str(raw)).strip().lower()
    m = _ABBREV_RE.match(cleaned)
    if not m:
        return None
    num = float(m.group(1))
    suffix = m.group(2)
    return num * _ABBREV_MULT[suffix] if suffix else num


def _group_thousands(value: float, decimals: int) -> str:
    return f"{value:,.{decimals}f}"


def format_currency(value: Any, compact: bool = True) -> str:
    """$1.25M / $2.10B for large values, $1,234.56 otherwise. Negatives render as -$."""
    v = to_float(value)
    sign = "-" if v < 0 else ""
    a = abs(v)
    if compact and a >= 1_000_000_000:
        return f"{sign}${a / 1_000_000_000:.2f}B"
    if compact and a >= 1_000_000:
        return f"{sign}${a / 1_000_000:.2f}M"
    return f"{sign}${_group_thousands(a, 2)}"


def format_number(value: Any, decimals: int = 2) -> str:
    v = to_float(value)
    if v == 0:
        return "0"
    if abs(v) < 0.01:
        decimals = 6
    out = _group_thousands(v, decimals)
    if "." in out:
        out = out.rstrip("0").rstrip(".")
    return out
