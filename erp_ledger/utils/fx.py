"""
utils/fx.py

Foreign/local amount pairing. Every invoice freezes its
`fx_rate_to_business` at save; local amounts are computed once from the
foreign amount and never re-derived afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .money import to_number

__all__ = ["FxAmount", "normalize_rate", "to_local", "format_fx"]


def normalize_rate(rate: Any) -> float:
    """Rates that are missing, zero or negative read as 1 (same currency)."""
    r = to_number(rate)
    return r if r > 0 else 1.0


def to_local(foreign_amount: Any, rate: Any) -> float:
    return to_number(foreign_amount) * normalize_rate(rate)


@dataclass(frozen=True)
class FxAmount:
    """An amount as entered (foreign) and in the business currency (local)."""
    foreign: float = 0.0
    local: float = 0.0

    @classmethod
    def from_foreign(cls, amount: Any, rate: Any) -> "FxAmount":
        f = to_number(amount)
        return cls(foreign=f, local=f * normalize_rate(rate))

    @classmethod
    def of(cls, foreign: Any, local: Any = None, rate: Any = None) -> "FxAmount":
        """
        Pair stored values. When `local` is absent it is derived from `rate`;
        a stored local amount is always kept as-is.
        """
        f = to_number(foreign)
        if local is None:
            return cls(foreign=f, local=f * normalize_rate(rate))
        return cls(foreign=f, local=to_number(local))

    def __add__(self, other: "FxAmount") -> "FxAmount":
        return FxAmount(self.foreign + other.foreign, self.local + other.local)

    def __sub__(self, other: "FxAmount") -> "FxAmount":
        return FxAmount(self.foreign - other.foreign, self.local - other.local)


def _fmt(amount: float, code: str) -> str:
    return f"{amount:,.2f} {code}".rstrip()


def format_fx(
    foreign_amount: Any,
    foreign_currency_code: Optional[str],
    local_amount: Any,
    base_currency_code: str,
) -> str:
    """
    '1,000.00 USD (3,672.50 AED)' for foreign purchases, just
    '1,000.00 AED' when the invoice is already in the base currency.
    """
    base = (base_currency_code or "").strip().upper()
    code = (foreign_currency_code or "").strip().upper() or base
    foreign_txt = _fmt(to_number(foreign_amount), code)
    if code == base:
        return foreign_txt
    return f"{foreign_txt} ({_fmt(to_number(local_amount), base)})"
