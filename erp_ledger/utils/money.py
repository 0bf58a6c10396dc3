"""
utils/money.py

Numeric coercion and money formatting shared by every engine.

Policy: bad numeric input never raises here. Anything that is not a
finite number (None, '', 'abc', NaN, inf) counts as 0 so a single broken
record cannot take down a ledger.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Any, Optional, Union

from ..constants import DEFAULT_CURRENCY_SYMBOL, MONEY_TOLERANCE

NumberLike = Union[float, int, str, None]

__all__ = [
    "to_number",
    "safe_sum",
    "fmt_money",
    "format_money",
    "round_money",
    "money_equal",
    "is_zero",
]

_log = logging.getLogger(__name__)

# Keep digits, dot and minus; drops currency codes, symbols and thousands separators.
_NON_NUMERIC = re.compile(r"[^0-9.\-]+")
# longest leading number of what is left: "100-" reads 100, "12.5.3" reads 12.5
_LEADING_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")


def to_number(value: Any) -> float:
    """
    Coerce any input to a finite float; 0.0 when it cannot be read.

    Strings are stripped of everything except digits, '.' and '-' first,
    so "AED 1,200.50" reads as 1200.5; trailing junk after the leading
    number is ignored.
    """
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        x = float(value)
        return x if math.isfinite(x) else 0.0
    if isinstance(value, str):
        m = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", value))
        if m is None:
            return 0.0
        x = float(m.group(0))
        return x if math.isfinite(x) else 0.0
    if value is None:
        return 0.0
    try:
        x = float(value)  # Decimal, numpy scalars, ...
    except (TypeError, ValueError):
        return 0.0
    return x if math.isfinite(x) else 0.0


def safe_sum(*values: Any) -> float:
    """Sum possibly-invalid numbers; invalid entries count as 0."""
    return float(sum(to_number(v) for v in values))


def round_money(value: Any, places: int = 2) -> float:
    return round(to_number(value), places)


def money_equal(a: Any, b: Any, tol: float = MONEY_TOLERANCE) -> bool:
    """True when a and b differ by no more than `tol` (one cent by default)."""
    return abs(to_number(a) - to_number(b)) <= tol + 1e-9


def is_zero(value: Any, tol: float = MONEY_TOLERANCE) -> bool:
    return money_equal(value, 0.0, tol)


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number with thousands separators and a fixed number of decimals.

    Behavior on parse failure:
      - By default (strict=False, sentinel=None), returns str(v).
      - If `sentinel` is provided (e.g., "N/A"), returns that sentinel instead.
      - If `strict=True`, raises ValueError.
    """
    try:
        x = float(v)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as float: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"


def format_money(amount: Any, symbol: str = DEFAULT_CURRENCY_SYMBOL) -> str:
    """Local-currency amount with two decimals and a currency prefix: 'AED 1,234.50'."""
    num = to_number(amount)
    sign = "-" if num < 0 else ""
    body = f"{abs(num):,.2f}"
    prefix = (symbol or "").strip()
    if not prefix:
        return f"{sign}{body}"
    return f"{sign}{prefix} {body}"
