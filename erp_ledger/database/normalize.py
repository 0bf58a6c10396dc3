"""
database/normalize.py

Load-boundary normalization: raw records (dicts with the stable external
field names, legacy aliases included) become typed records exactly once.

Alias precedence lives here and nowhere else; business logic reads the
typed records only. The original dict is kept on invoices/payments/items
(`raw`) so patches can be emitted back with the external field names.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional

from ..constants import (
    FLOW_ALIASES,
    KIND_PURCHASE,
    KIND_SALE,
    PARTY_TYPES,
)
from ..utils.fx import FxAmount, normalize_rate
from ..utils.helpers import parse_instant
from ..utils.money import to_number
from .records import (
    Bank,
    CashTransaction,
    Expense,
    Invoice,
    InvoiceLine,
    Item,
    Note,
    Party,
    Payment,
)

__all__ = [
    "first_present",
    "normalize_flow",
    "normalize_invoice",
    "normalize_invoices",
    "normalize_payment",
    "normalize_payments",
    "normalize_party",
    "normalize_note",
    "normalize_item",
    "normalize_expense",
    "normalize_bank",
    "normalize_cash_transaction",
]

_log = logging.getLogger(__name__)


def first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key that is present and not None (mirrors `a ?? b ?? c`)."""
    for k in keys:
        v = raw.get(k)
        if v is not None:
            return v
    return None


def _text(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _norm(v: Any) -> str:
    return str(v if v is not None else "").strip().lower()


def normalize_flow(raw: Mapping[str, Any]) -> str:
    """'in' / 'out' for party payments; internal or unknown types pass through lowercased."""
    t = _norm(first_present(raw, "type", "direction", "kind"))
    return FLOW_ALIASES.get(t, t)


# -----------------------------
# Invoices
# -----------------------------

def _serials(values: Any) -> List[str]:
    out: List[str] = []
    for s in values or []:
        if isinstance(s, Mapping):
            s = first_present(s, "serial", "imei", "value")
        txt = _text(s)
        if txt:
            out.append(txt)
    return out


def _line(raw: Mapping[str, Any], rate: float) -> InvoiceLine:
    foreign = first_present(raw, "unit_price_foreign", "unitPrice", "price")
    local = first_present(raw, "unit_price_local", "unitPrice_base")
    if foreign is None and local is not None:
        foreign = to_number(local) / rate
    return InvoiceLine(
        item_id=str(first_present(raw, "itemId", "item_id") or ""),
        quantity=to_number(raw.get("quantity")),
        unit_price=FxAmount.of(foreign, local, rate),
        serials=_serials(raw.get("serials")),
    )


def _pair(raw: Mapping[str, Any], name: str, rate: float, *foreign_aliases: str) -> Optional[FxAmount]:
    foreign = first_present(raw, f"{name}_foreign", *foreign_aliases)
    local = raw.get(f"{name}_local")
    if foreign is None and local is None:
        return None
    if foreign is None:
        foreign = to_number(local) / rate
    return FxAmount.of(foreign, local, rate)


def normalize_invoice(raw: Mapping[str, Any], kind: str) -> Invoice:
    if kind not in (KIND_SALE, KIND_PURCHASE):
        raise ValueError(f"invoice kind must be 'sale' or 'purchase', got {kind!r}")

    rate = normalize_rate(raw.get("fx_rate_to_business"))
    lines = [_line(li, rate) for li in (raw.get("items") or []) if isinstance(li, Mapping)]

    subtotal = _pair(raw, "subtotal", rate, "subTotal")
    if subtotal is None:
        subtotal = FxAmount()
        for li in lines:
            subtotal = subtotal + li.line_total

    # Sales store their discount as a rule {'type': 'flat'|'percent', 'value': x}.
    discount_rule: dict = {}
    discount = _pair(raw, "discount", rate)
    raw_discount = raw.get("discount")
    if isinstance(raw_discount, Mapping):
        discount_rule = dict(raw_discount)
        if discount is None:
            value = to_number(raw_discount.get("value"))
            if _norm(raw_discount.get("type")) == "flat":
                discount = FxAmount.from_foreign(value, rate)
            else:
                discount = FxAmount(subtotal.foreign * value / 100.0, subtotal.local * value / 100.0)
    elif discount is None and raw_discount is not None:
        discount = FxAmount.from_foreign(raw_discount, rate)
    discount = discount or FxAmount()

    tax = _pair(raw, "tax", rate) or FxAmount()
    shipping = _pair(raw, "shipping", rate) or FxAmount()

    total_local = first_present(raw, "total_local", "totalCost_base")
    total_foreign = first_present(raw, "total_foreign", "totalCost", "total")
    if total_local is None and total_foreign is None:
        total = subtotal - discount + tax + shipping
    else:
        if total_local is None:
            total_local = to_number(total_foreign) * rate
        if total_foreign is None:
            total_foreign = to_number(total_local) / rate
        total = FxAmount.of(total_foreign, total_local)

    party_key = "customerId" if kind == KIND_SALE else "supplierId"
    number_key = "saleNumber" if kind == KIND_SALE else "purchaseNumber"

    return Invoice(
        id=str(raw.get("id") or ""),
        kind=kind,
        number=_text(first_present(raw, number_key, "number")),
        party_id=_text(first_present(raw, party_key, "partyId")),
        date=parse_instant(raw.get("date")),
        currency=_text(raw.get("currency")),
        fx_rate_to_business=rate,
        lines=lines,
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        shipping=shipping,
        total=total,
        paid_amount_local=to_number(first_present(raw, "paid_amount_local", "paidAmount_base", "paidAmount")),
        discount_rule=discount_rule,
        raw=dict(raw),
    )


def normalize_invoices(rows: Iterable[Mapping[str, Any]] | None, kind: str) -> List[Invoice]:
    return [normalize_invoice(r, kind) for r in (rows or []) if isinstance(r, Mapping)]


# -----------------------------
# Payments
# -----------------------------

def normalize_payment(raw: Mapping[str, Any]) -> Payment:
    meta = raw.get("meta") if isinstance(raw.get("meta"), Mapping) else {}
    party_type = _norm(raw.get("partyType")) or None
    if party_type not in PARTY_TYPES:
        party_type = None
    ref = raw.get("ref")
    if ref is None and raw.get("linkedInvoices"):
        ref = list(raw["linkedInvoices"])[0]
    return Payment(
        id=_text(raw.get("id")),
        type=normalize_flow(raw),
        party_id=_text(raw.get("partyId")),
        party_type=party_type,
        invoice_id=_text(raw.get("invoiceId")),
        amount=to_number(first_present(raw, "amount_local", "amount")),
        discount=to_number(raw.get("discount")),
        method=_norm(first_present(raw, "method", "paymentMethod")) or None,
        bank_id=_text(raw.get("bankId")),
        date=parse_instant(raw.get("date")),
        date_text=str(raw.get("date") or ""),
        ref=_text(ref),
        notes=_text(raw.get("notes")),
        internal_flag=raw.get("isInternal") is True or meta.get("internal") is True,
        raw=dict(raw),
    )


def normalize_payments(rows: Iterable[Mapping[str, Any]] | None) -> List[Payment]:
    return [normalize_payment(r) for r in (rows or []) if isinstance(r, Mapping)]


# -----------------------------
# Everything else
# -----------------------------

def normalize_party(raw: Mapping[str, Any], party_type: str) -> Party:
    return Party(
        id=str(raw.get("id") or ""),
        name=str(raw.get("name") or "").strip(),
        party_type=party_type,
        contact=_text(raw.get("contact")),
        address=_text(raw.get("address")),
    )


def normalize_note(raw: Mapping[str, Any], kind: str) -> Note:
    party = "customerId" if kind in ("sales_return", "credit_note") else "supplierId"
    return Note(
        id=_text(raw.get("id")),
        kind=kind,
        party_id=_text(first_present(raw, party, "partyId")),
        date=parse_instant(raw.get("date")),
        amount=to_number(first_present(raw, "total_local", "amount_local", "amount")),
        ref=_text(first_present(raw, "noteNumber", "ref")),
    )


def normalize_item(raw: Mapping[str, Any]) -> Item:
    return Item(
        id=str(raw.get("id") or ""),
        name=str(raw.get("name") or "").strip(),
        has_imei=bool(raw.get("hasImei")),
        purchase_price=to_number(raw.get("purchasePrice")),
        low_stock_threshold=to_number(raw.get("lowStockThreshold")),
        raw=dict(raw),
    )


def normalize_expense(raw: Mapping[str, Any]) -> Expense:
    return Expense(
        id=_text(raw.get("id")),
        amount=to_number(first_present(raw, "amount_local", "amount")),
        method=_norm(first_present(raw, "paymentMethod", "method")) or None,
        bank_id=_text(raw.get("bankId")),
        date=parse_instant(raw.get("date")),
        category=_text(raw.get("category")),
        notes=_text(raw.get("notes")),
    )


def normalize_bank(raw: Mapping[str, Any]) -> Bank:
    return Bank(
        id=str(raw.get("id") or ""),
        name=str(raw.get("name") or "").strip(),
        stored_balance=to_number(raw.get("balance")),
        opening_balance=to_number(first_present(raw, "openingBalance", "opening_balance")),
    )


def normalize_cash_transaction(raw: Mapping[str, Any]) -> CashTransaction:
    return CashTransaction(
        id=_text(raw.get("id")),
        type=_norm(raw.get("type")),
        amount=to_number(raw.get("amount")),
        date=parse_instant(raw.get("date")),
        description=str(raw.get("description") or ""),
        payment_id=_text(raw.get("paymentId")),
    )
