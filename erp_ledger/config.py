from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .constants import (
    DEFAULT_COMPANY_NAME,
    DEFAULT_CURRENCY,
    DEFAULT_CURRENCY_SYMBOL,
    DEFAULT_SUPPORTED_CURRENCIES,
)
from .utils.money import to_number

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "modules" / "reporting" / "templates"


@dataclass(frozen=True)
class BusinessSettings:
    """
    Business-wide settings read from the snapshot's `settings` record.

    `currency` is the single reporting (base/local) currency; every invoice
    carries a frozen rate into it.
    """
    currency: str = DEFAULT_CURRENCY
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL
    supported_currencies: tuple[str, ...] = field(default=DEFAULT_SUPPORTED_CURRENCIES)
    company_name: str = DEFAULT_COMPANY_NAME
    cash_opening_balance: float = 0.0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "BusinessSettings":
        """Build from the raw settings dict; unknown keys are ignored."""
        data = data or {}
        currency = str(data.get("currency") or DEFAULT_CURRENCY).strip().upper()
        symbol = data.get("currencySymbol") or data.get("currency_symbol") or currency
        supported = data.get("supportedCurrencies") or data.get("supported_currencies")
        if supported:
            supported_t = tuple(str(c).strip().upper() for c in supported if c)
        else:
            supported_t = DEFAULT_SUPPORTED_CURRENCIES
        if currency not in supported_t:
            supported_t = supported_t + (currency,)
        return cls(
            currency=currency,
            currency_symbol=str(symbol),
            supported_currencies=supported_t,
            company_name=str(data.get("companyName") or data.get("company_name") or DEFAULT_COMPANY_NAME),
            cash_opening_balance=to_number(
                data.get("cashOpeningBalance", data.get("cash_opening_balance"))
            ),
        )
