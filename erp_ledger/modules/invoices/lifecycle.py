"""
modules/invoices/lifecycle.py

Save and delete sales/purchases.

- `freeze_fx` converts every foreign amount on a draft into the business
  currency once, with the draft's `fx_rate_to_business`; the stored local
  values are what everything else reads afterwards.
- `save_invoice` validates, upserts the invoice and its inline payment
  row, then re-syncs the invoice's paid/balance fields.
- `delete_invoice` removes the invoice with every payment linked to it.

All functions return Patches; the snapshot is never modified.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ...constants import (
    FLOW_FOR_KIND,
    INVOICE_KINDS,
    KIND_PURCHASE,
    KIND_SALE,
    METHOD_BANK,
    METHOD_CASH,
    MONEY_TOLERANCE,
    PARTY_FOR_KIND,
    SEQUENCE_PREFIX,
    SEQUENCE_WIDTH,
)
from ...database.normalize import first_present, normalize_invoice
from ...database.records import DomainError, Invoice, Payment
from ...database.snapshot import DataSnapshot, Patch, merge_patches
from ...utils.fx import normalize_rate
from ...utils.money import round_money, to_number
from ..payments.payment_utilities.calculations import status_from_paid
from ..payments.sync import INLINE_SOURCE, inline_payment_row, recalculate_and_sync_invoices

__all__ = [
    "InvoiceValidationError",
    "next_invoice_number",
    "freeze_fx",
    "save_invoice",
    "delete_invoice",
    "inline_payment_for",
]

_log = logging.getLogger(__name__)

_COLLECTION = {KIND_SALE: "sales", KIND_PURCHASE: "purchases"}
_NUMBER_KEY = {KIND_SALE: "saleNumber", KIND_PURCHASE: "purchaseNumber"}
_PARTY_KEY = {KIND_SALE: "customerId", KIND_PURCHASE: "supplierId"}
_LABEL = {KIND_SALE: "Sale", KIND_PURCHASE: "Purchase"}


class InvoiceValidationError(DomainError):
    pass


def _check_kind(kind: str) -> None:
    if kind not in INVOICE_KINDS:
        raise ValueError(f"invoice kind must be 'sale' or 'purchase', got {kind!r}")


# -----------------------------
# Numbering
# -----------------------------

def next_invoice_number(kind: str, existing: Iterable[Union[Invoice, Mapping[str, Any], str]]) -> str:
    """
    Next number in the kind's sequence: highest 'S-nnnn' / 'P-nnnn' + 1.
    Numbers that do not follow the sequence are ignored.
    """
    _check_kind(kind)
    prefix = SEQUENCE_PREFIX[kind]
    highest = 0
    for rec in existing or []:
        if isinstance(rec, Invoice):
            number = rec.number
        elif isinstance(rec, Mapping):
            number = first_present(rec, _NUMBER_KEY[kind], "number")
        else:
            number = rec
        if not isinstance(number, str) or not number.startswith(prefix):
            continue
        try:
            highest = max(highest, int(number[len(prefix):] or 0))
        except ValueError:
            continue
    return f"{prefix}{highest + 1:0{SEQUENCE_WIDTH}d}"


# -----------------------------
# FX freezing
# -----------------------------

def _sale_discount_rule(draft: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """{'type': 'flat'|'percent', 'value': x} from either stored shape."""
    rule = draft.get("discount")
    if isinstance(rule, Mapping):
        return {"type": str(rule.get("type") or "flat").strip().lower(), "value": to_number(rule.get("value"))}
    if draft.get("discountType"):
        return {"type": str(draft["discountType"]).strip().lower(), "value": to_number(rule)}
    return None


def _sale_discount_foreign(rule: Optional[Mapping[str, Any]], draft: Mapping[str, Any], subtotal: float) -> float:
    if rule is None:
        return to_number(first_present(draft, "discount_foreign", "discount"))
    if rule["type"] == "flat":
        return rule["value"]
    return subtotal * rule["value"] / 100.0


def freeze_fx(draft: Mapping[str, Any], kind: str = KIND_PURCHASE) -> Dict[str, Any]:
    """
    Return a copy of `draft` with every *_local field set to
    foreign x fx_rate_to_business (rate 1 when missing or not positive).

    Covers line prices/totals, subtotal, discount, tax, shipping, total,
    paid and balance, plus the legacy alias fields readers still use.
    """
    _check_kind(kind)
    out: Dict[str, Any] = dict(draft)
    rate = normalize_rate(draft.get("fx_rate_to_business"))
    out["fx_rate_to_business"] = rate

    lines: List[Dict[str, Any]] = []
    subtotal_foreign = 0.0
    total_qty = 0.0
    for raw_line in draft.get("items") or []:
        line = dict(raw_line)
        qty = to_number(line.get("quantity"))
        price_foreign = to_number(first_present(line, "unit_price_foreign", "unitPrice", "price"))
        price_local = price_foreign * rate
        line.update({
            "quantity": qty,
            "unit_price_foreign": price_foreign,
            "unit_price_local": price_local,
            "line_total_foreign": qty * price_foreign,
            "line_total_local": qty * price_local,
        })
        if kind == KIND_PURCHASE:
            line["unitPrice"] = price_foreign
            line["unitPrice_base"] = price_local
        else:
            line["price"] = price_foreign
        line["serials"] = [s for s in (line.get("serials") or []) if s]
        subtotal_foreign += qty * price_foreign
        total_qty += qty
        lines.append(line)
    out["items"] = lines

    if kind == KIND_SALE:
        rule = _sale_discount_rule(draft)
        discount_foreign = _sale_discount_foreign(rule, draft, subtotal_foreign)
        if rule is not None:
            out["discount"] = rule
            out.pop("discountType", None)
    else:
        discount_foreign = to_number(draft.get("discount_foreign"))
    tax_foreign = to_number(draft.get("tax_foreign"))
    shipping_foreign = to_number(draft.get("shipping_foreign"))
    total_foreign = subtotal_foreign - discount_foreign + tax_foreign + shipping_foreign

    paid_local = to_number(first_present(draft, "paid_amount_local", "paidAmount_base", "paidAmount"))
    total_local = total_foreign * rate

    out.update({
        "subtotal_foreign": subtotal_foreign,
        "subtotal_local": subtotal_foreign * rate,
        "discount_foreign": discount_foreign,
        "discount_local": discount_foreign * rate,
        "tax_foreign": tax_foreign,
        "tax_local": tax_foreign * rate,
        "shipping_foreign": shipping_foreign,
        "shipping_local": shipping_foreign * rate,
        "total_foreign": total_foreign,
        "total_local": total_local,
        "paid_amount_local": paid_local,
        "paid_amount_foreign": paid_local / rate,
        "balance_local": total_local - paid_local,
        "balance_foreign": total_foreign - paid_local / rate,
        "totalQuantity": total_qty,
    })
    if kind == KIND_PURCHASE:
        out.update({"totalCost": total_foreign, "totalCost_base": total_local, "paidAmount_base": paid_local})
    else:
        out.update({"subTotal": subtotal_foreign, "totalCost": total_foreign, "paidAmount": paid_local})
    return out


# -----------------------------
# Validation
# -----------------------------

def _serials_in(invoices: Iterable[Invoice], skip_id: Optional[str]) -> set:
    return {s for inv in invoices if inv.id != skip_id for li in inv.lines for s in li.serials}


def _validate(snapshot: DataSnapshot, kind: str, inv: Invoice, other_paid: float) -> None:
    label = _LABEL[kind]
    party_type = PARTY_FOR_KIND[kind]
    if not inv.party_id:
        raise InvoiceValidationError(f"Please select a {party_type}.")
    if snapshot.find_party(party_type, inv.party_id) is None:
        raise InvoiceValidationError(f"Unknown {party_type} {inv.party_id!r}.")

    if not inv.lines:
        raise InvoiceValidationError(f"Add at least one item to the {label.lower()}.")
    if any(not li.item_id or li.quantity <= 0 for li in inv.lines):
        raise InvoiceValidationError("Please ensure all items have a product and quantity.")
    if kind == KIND_SALE and any(li.unit_price.foreign <= 0 for li in inv.lines):
        raise InvoiceValidationError("Please ensure all items have a unit price greater than zero.")

    others = [i for i in snapshot.invoices(kind) if i.id != inv.id]
    if inv.number and any(o.number == inv.number for o in others):
        raise InvoiceValidationError(f"{label} number must be unique.")

    # serial-tracked items: one serial per unit, none repeated
    entered: List[str] = []
    for li in inv.lines:
        item = snapshot.items_by_id.get(li.item_id)
        if item is not None and item.has_imei and len(li.serials) != int(li.quantity):
            raise InvoiceValidationError(
                f"Item {item.name or item.id!r} needs {int(li.quantity)} serial number(s), got {len(li.serials)}."
            )
        entered.extend(li.serials)
    if len(entered) != len(set(entered)):
        raise InvoiceValidationError(f"Duplicate serial numbers found within this {label.lower()}.")
    if entered:
        if kind == KIND_PURCHASE:
            clash = next((s for s in entered if s in _serials_in(snapshot.purchases, inv.id)), None)
            if clash:
                raise InvoiceValidationError(f'Serial number "{clash}" already exists in another purchase.')
        else:
            purchased = _serials_in(snapshot.purchases, None)
            sold = _serials_in(snapshot.sales, inv.id)
            for s in entered:
                if s not in purchased:
                    raise InvoiceValidationError(f'Serial number "{s}" was never purchased.')
                if s in sold:
                    raise InvoiceValidationError(f'Serial number "{s}" has already been sold.')

    # paid is the invoice's total paid; other_paid is what payment rows outside the form cover
    paid = inv.paid_amount_local
    if paid < 0:
        raise InvoiceValidationError("Paid amount cannot be negative.")
    if paid > inv.total_local + MONEY_TOLERANCE:
        raise InvoiceValidationError("Paid amount cannot be greater than the total bill.")
    if paid < other_paid - MONEY_TOLERANCE:
        raise InvoiceValidationError(
            f"Paid amount cannot be less than the {other_paid:.2f} already recorded as payments."
        )


# -----------------------------
# Inline payment
# -----------------------------

def inline_payment_for(snapshot: DataSnapshot, invoice_id: str) -> Optional[Payment]:
    """
    The payment row the invoice form owns: the one tagged as written by the
    form, else (older data) the first payment linked to the invoice.
    """
    linked = [p for p in snapshot.payments if p.invoice_id == invoice_id and not p.is_internal]
    tagged = next((p for p in linked if p.raw.get("source") == INLINE_SOURCE), None)
    return tagged or (linked[0] if linked else None)


def _new_id() -> str:
    return str(int(datetime.now().timestamp() * 1000))


def save_invoice(snapshot: DataSnapshot, kind: str, draft: Mapping[str, Any]) -> Patch:
    """
    Validate and upsert a sale/purchase (matched by id).

    The draft's paid amount is the invoice's total paid. Whatever other
    payment rows linked to the invoice do not cover goes on the invoice's
    own inline payment row (created, updated, or removed when nothing is
    left); the other rows are kept. Re-saving a stored invoice is therefore
    a no-op for its payments. Raises InvoiceValidationError.
    """
    _check_kind(kind)
    record = freeze_fx(draft, kind)
    record["id"] = str(record.get("id") or _new_id())
    number_key = _NUMBER_KEY[kind]
    if not record.get(number_key):
        record[number_key] = next_invoice_number(kind, snapshot.invoices(kind))

    inv_id = record["id"]
    old_inline = inline_payment_for(snapshot, inv_id)
    flow = FLOW_FOR_KIND[kind]
    other_paid = sum(
        p.amount + p.discount for p in snapshot.payments
        if p.invoice_id == inv_id and p.type == flow and not p.is_internal
        and (old_inline is None or p.id != old_inline.id)
    )

    inv = normalize_invoice(record, kind)
    _validate(snapshot, kind, inv, other_paid)

    payment_info = record.get("payment") if isinstance(record.get("payment"), Mapping) else {}
    method = str(first_present(record, "paymentMethod") or payment_info.get("method") or METHOD_CASH).lower()
    bank_id = first_present(record, "bankId") or payment_info.get("bankId")
    inline_amount = round_money(inv.paid_amount_local - other_paid)
    if inline_amount > 0 and method == METHOD_BANK and not bank_id:
        raise InvoiceValidationError("Please select a bank account for the payment.")
    record["payment"] = {**payment_info, "method": method, "bankId": bank_id if method == METHOD_BANK else None}

    record["payment_status"] = status_from_paid(inv.total_local, inv.paid_amount_local)

    payments = [r for r in snapshot.raw_list("payments") if not (old_inline and r.get("id") == old_inline.id)]
    if inline_amount > 0:
        row_id = old_inline.id if old_inline else f"{_new_id()}_{inv_id}"
        payments.append(inline_payment_row(
            inv, row_id, inline_amount, method=method, bank_id=bank_id, date=str(record.get("date") or ""),
        ))

    collection = _COLLECTION[kind]
    rows = snapshot.raw_list(collection)
    if any(r.get("id") == inv_id for r in rows):
        rows = [record if r.get("id") == inv_id else r for r in rows]
    else:
        rows.append(record)

    base: Patch = {collection: rows, "payments": payments}
    # re-sync against the snapshot that already contains the saved invoice
    sync = recalculate_and_sync_invoices([inv_id], payments, snapshot.with_patch(base))
    _log.debug("save_invoice: %s %s total_local=%.2f paid=%.2f inline=%.2f",
               kind, inv_id, inv.total_local, inv.paid_amount_local, inline_amount)
    return merge_patches(base, sync)


# -----------------------------
# Delete
# -----------------------------

def _purchase_items_sold(snapshot: DataSnapshot, purchase: Invoice) -> bool:
    item_ids = {li.item_id for li in purchase.lines}
    serials = {s for li in purchase.lines for s in li.serials}
    for sale in snapshot.sales:
        if purchase.date and sale.date and sale.date < purchase.date:
            continue
        for li in sale.lines:
            if li.item_id in item_ids or serials.intersection(li.serials):
                return True
    return False


def delete_invoice(snapshot: DataSnapshot, invoice_id: str) -> Patch:
    """
    Remove a sale/purchase and every payment linked to it.

    A purchase whose items appear on a sale dated on or after it cannot be
    deleted (its lots may already be costed into that sale).
    """
    inv = snapshot.sales_by_id.get(invoice_id) or snapshot.purchases_by_id.get(invoice_id)
    if inv is None:
        raise InvoiceValidationError(f"Invoice {invoice_id!r} not found.")
    if inv.kind == KIND_PURCHASE and _purchase_items_sold(snapshot, inv):
        raise InvoiceValidationError("Cannot delete. One or more items from this purchase have been sold.")

    collection = _COLLECTION[inv.kind]
    rows = [r for r in snapshot.raw_list(collection) if r.get("id") != invoice_id]
    payments = [r for r in snapshot.raw_list("payments") if r.get("invoiceId") != invoice_id]
    removed = len(snapshot.payments) - len(payments)
    _log.debug("delete_invoice: %s %s (%d payment(s) removed)", inv.kind, invoice_id, removed)
    return {collection: rows, "payments": payments}
