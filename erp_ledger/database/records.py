from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..constants import (
    FLOW_FOR_KIND,
    INTERNAL_TYPES,
    KIND_SALE,
    PARTY_FOR_KIND,
)
from ..utils.fx import FxAmount


# Domain-level error the caller can surface directly (e.g., toast/snackbar)
class DomainError(Exception):
    pass


@dataclass
class InvoiceLine:
    item_id: str
    quantity: float
    unit_price: FxAmount
    serials: list[str] = field(default_factory=list)

    @property
    def line_total(self) -> FxAmount:
        return FxAmount(self.unit_price.foreign * self.quantity, self.unit_price.local * self.quantity)


@dataclass
class Invoice:
    """
    A sale or purchase.

    Monetary fields are (foreign, local) pairs; local values were frozen at
    save time with `fx_rate_to_business` and are read as stored.
    `paid_amount_local` is the legacy inline paid field; explicit Payment
    rows for the same invoice take precedence over it.
    """
    id: str
    kind: str  # 'sale' | 'purchase'
    number: Optional[str]
    party_id: Optional[str]
    date: Optional[datetime]
    currency: Optional[str]
    fx_rate_to_business: float
    lines: list[InvoiceLine]
    subtotal: FxAmount
    discount: FxAmount
    tax: FxAmount
    shipping: FxAmount
    total: FxAmount
    paid_amount_local: float
    # sale-level discount as entered: {'type': 'flat'|'percent', 'value': x}
    discount_rule: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_sale(self) -> bool:
        return self.kind == KIND_SALE

    @property
    def party_type(self) -> str:
        return PARTY_FOR_KIND[self.kind]

    @property
    def payment_flow(self) -> str:
        """Payment type that settles this invoice: 'in' for sales, 'out' for purchases."""
        return FLOW_FOR_KIND[self.kind]

    @property
    def total_local(self) -> float:
        return self.total.local

    @property
    def ref(self) -> str:
        return self.number or (self.id[-6:] if self.id else "")


@dataclass
class Payment:
    id: Optional[str]
    type: str  # 'in' | 'out' | one of INTERNAL_TYPES | other
    party_id: Optional[str]
    party_type: Optional[str]
    invoice_id: Optional[str]
    amount: float  # local currency
    discount: float
    method: Optional[str]
    bank_id: Optional[str]
    date: Optional[datetime]
    date_text: str = ""
    ref: Optional[str] = None
    notes: Optional[str] = None
    internal_flag: bool = False
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_internal(self) -> bool:
        return self.internal_flag or self.type in INTERNAL_TYPES


@dataclass
class Party:
    id: str
    name: str
    party_type: str
    contact: Optional[str] = None
    address: Optional[str] = None


@dataclass
class Note:
    """Sales return / credit note (customer) or purchase return / debit note (supplier)."""
    id: Optional[str]
    kind: str  # 'sales_return' | 'credit_note' | 'purchase_return' | 'debit_note'
    party_id: Optional[str]
    date: Optional[datetime]
    amount: float
    ref: Optional[str] = None


@dataclass
class Item:
    id: str
    name: str
    has_imei: bool = False
    purchase_price: float = 0.0
    low_stock_threshold: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class Expense:
    id: Optional[str]
    amount: float
    method: Optional[str]
    bank_id: Optional[str]
    date: Optional[datetime]
    category: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class Bank:
    id: str
    name: str
    stored_balance: float
    opening_balance: float = 0.0


@dataclass
class CashTransaction:
    id: Optional[str]
    type: str  # 'add' | 'remove'
    amount: float
    date: Optional[datetime]
    description: str = ""
    payment_id: Optional[str] = None


@dataclass
class PurchaseLot:
    """A remaining-quantity slice of one purchase line, consumed oldest-first."""
    item_id: str
    date: Optional[datetime]
    qty_remaining: float
    unit_cost_local: float
    purchase_id: Optional[str] = None
    serials: list[str] = field(default_factory=list)
