"""
modules/payments/sync.py

Payment mutations and the invoice snapshot fields that mirror them.

Payment rows are the source of truth; each invoice's paid/balance/status
fields are a cache. Every function here returns a Patch (see
database/snapshot.py) that the caller merges and persists in one write:
the payments list plus the re-synced invoices. Cash and bank balances are
not touched; they are derived on read (modules/cash_bank/ledger.py).
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ...constants import (
    FLOW_IN,
    FLOW_OUT,
    KIND_PURCHASE,
    KIND_SALE,
    METHOD_BANK,
    METHOD_CASH,
    PARTY_FOR_FLOW,
)
from ...database.normalize import normalize_payments
from ...database.records import DomainError, Invoice, Payment
from ...database.snapshot import DataSnapshot, Patch, merge_patches
from ...utils.helpers import today_str
from ...utils.money import round_money, to_number
from ...utils.validators import is_non_negative_number, is_strictly_positive_number, non_empty, parse_float
from .payment_utilities.calculations import explicit_payments_for, outstanding_invoices, status_from_paid
from .payment_utilities.partial_payment_manager import (
    STRATEGY_OLDEST_FIRST,
    AllocationPlan,
    auto_allocate,
    build_payment_records,
    manual_allocate,
    validate_allocation,
)

__all__ = [
    "PaymentValidationError",
    "INLINE_SOURCE",
    "inline_payment_row",
    "recalculate_and_sync_invoices",
    "plan_payment",
    "record_payment",
    "update_payment",
    "delete_payment",
]

_log = logging.getLogger(__name__)

_KIND_FOR_FLOW = {FLOW_IN: KIND_SALE, FLOW_OUT: KIND_PURCHASE}
_COLLECTION = {KIND_SALE: "sales", KIND_PURCHASE: "purchases"}
_LABEL = {KIND_SALE: "Sale", KIND_PURCHASE: "Purchase"}

# marks the payment row written by the invoice form itself
INLINE_SOURCE = "invoice"


class PaymentValidationError(DomainError):
    pass


def _as_payments(rows: Optional[Iterable[Union[Payment, Mapping[str, Any]]]]) -> List[Payment]:
    out: List[Payment] = []
    raw_rows: List[Mapping[str, Any]] = []
    for r in rows or []:
        if isinstance(r, Payment):
            out.append(r)
        elif isinstance(r, Mapping):
            raw_rows.append(r)
    return out + normalize_payments(raw_rows)


# -----------------------------
# Recalculation
# -----------------------------

def recalculate_and_sync_invoices(
    invoice_ids: Iterable[Optional[str]],
    all_payments: Optional[Iterable[Union[Payment, Mapping[str, Any]]]],
    snapshot: DataSnapshot,
) -> Patch:
    """
    Recompute paid/balance/status for the named invoices from the payment list.

    Returns {"sales": {id: fields}, "purchases": {id: fields}} (a collection
    key is omitted when nothing in it changed). Only explicit payment rows
    count here: once payments are managed, the inline paid field is
    rewritten from them. None and unknown ids are skipped.
    """
    payments = _as_payments(all_payments)
    by_invoice: Dict[str, List[Payment]] = {}
    for p in payments:
        if p.invoice_id and not p.is_internal:
            by_invoice.setdefault(p.invoice_id, []).append(p)

    patch: Patch = {}
    seen = set()
    for inv_id in invoice_ids or []:
        if not inv_id or inv_id in seen:
            continue
        seen.add(inv_id)
        inv = snapshot.sales_by_id.get(inv_id) or snapshot.purchases_by_id.get(inv_id)
        if inv is None:
            _log.debug("recalculate: unknown invoice id %s skipped", inv_id)
            continue

        matched = [p for p in by_invoice.get(inv_id, []) if p.type == inv.payment_flow]
        paid = round_money(sum(p.amount + p.discount for p in matched))
        total = inv.total_local
        fields: Dict[str, Any] = {
            "paid_amount_local": paid,
            "balance_local": round_money(total - paid),
            "payment_status": status_from_paid(total, paid),
        }
        if inv.is_sale:
            fields["paidAmount"] = paid
        else:
            fields["paidAmount_base"] = paid
        patch.setdefault(_COLLECTION[inv.kind], {})[inv_id] = fields

    _log.debug("recalculate_and_sync_invoices: %d invoice(s) patched", len(seen))
    return patch


# -----------------------------
# Payment mutations
# -----------------------------

def _new_base_id() -> str:
    return str(int(datetime.now().timestamp() * 1000))


def _validate_draft(snapshot: DataSnapshot, draft: Mapping[str, Any]) -> Dict[str, Any]:
    flow = str(draft.get("type") or "").strip().lower()
    if flow not in (FLOW_IN, FLOW_OUT):
        raise PaymentValidationError("Payment type must be 'in' or 'out'.")

    party_id = draft.get("partyId")
    if not non_empty(party_id) or not is_strictly_positive_number(draft.get("amount")):
        raise PaymentValidationError("Please select a party and enter a valid amount.")
    amount = parse_float(draft.get("amount"))

    kind = _KIND_FOR_FLOW[flow]
    party_type = PARTY_FOR_FLOW[flow]
    if snapshot.find_party(party_type, party_id) is None:
        raise PaymentValidationError(f"Unknown {party_type} {party_id!r}.")

    method = str(draft.get("method") or METHOD_CASH).strip().lower()
    bank_id = draft.get("bankId")
    if method == METHOD_BANK:
        if not bank_id:
            raise PaymentValidationError("Please select a bank account.")
        if not any(b.id == bank_id for b in snapshot.banks):
            raise PaymentValidationError(f"Unknown bank account {bank_id!r}.")

    if draft.get("discount") not in (None, "") and not is_non_negative_number(draft.get("discount")):
        raise PaymentValidationError("Discount cannot be negative.")
    discount = to_number(draft.get("discount"))

    return {
        "type": flow,
        "kind": kind,
        "party_id": str(party_id),
        "amount": amount,
        "discount": discount,
        "method": method,
        "bank_id": bank_id if method == METHOD_BANK else None,
        "date": str(draft.get("date") or today_str()),
        "notes": draft.get("notes") or "",
    }


def plan_payment(
    snapshot: DataSnapshot,
    draft: Mapping[str, Any],
    *,
    editing: Optional[Payment] = None,
) -> AllocationPlan:
    """
    Allocation plan for a payment draft against the party's open invoices.

    `draft["allocations"]` ({invoiceId: amount}) switches to manual mode;
    otherwise invoices are filled by `draft["strategy"]` (oldest first).
    """
    d = _validate_draft(snapshot, draft)
    open_invoices = outstanding_invoices(
        snapshot.invoices(d["kind"]),
        snapshot.payments,
        d["party_id"],
        exclude_payment_id=editing.id if editing else None,
        keep_invoice_id=editing.invoice_id if editing else None,
    )
    overrides = draft.get("allocations")
    if overrides:
        return manual_allocate(d["amount"], overrides, open_invoices)
    return auto_allocate(d["amount"], open_invoices, strategy=draft.get("strategy") or STRATEGY_OLDEST_FIRST)


def _records_for(snapshot: DataSnapshot, draft: Mapping[str, Any], base_id: str,
                 editing: Optional[Payment] = None) -> List[Dict[str, Any]]:
    d = _validate_draft(snapshot, draft)
    plan = plan_payment(snapshot, draft, editing=editing)
    validate_allocation(plan, d["amount"])
    for w in plan.warnings:
        _log.warning("payment %s: %s", base_id, w)
    return build_payment_records(
        plan,
        base_id=base_id,
        payment_type=d["type"],
        party_id=d["party_id"],
        date=d["date"],
        method=d["method"],
        bank_id=d["bank_id"],
        discount=d["discount"],
        notes=d["notes"],
    )


def inline_payment_row(
    invoice: Invoice,
    row_id: str,
    amount: float,
    *,
    method: str = METHOD_CASH,
    bank_id: Optional[str] = None,
    date: str = "",
) -> Dict[str, Any]:
    """The invoice's own payment row (tagged source="invoice")."""
    row: Dict[str, Any] = {
        "id": row_id,
        "partyId": invoice.party_id,
        "partyType": invoice.party_type,
        "type": invoice.payment_flow,
        "invoiceId": invoice.id,
        "amount": amount,
        "discount": 0.0,
        "date": date,
        "method": method,
        "notes": f"Payment for {_LABEL[invoice.kind]} #{invoice.ref}",
        "source": INLINE_SOURCE,
    }
    if method == METHOD_BANK:
        row["bankId"] = bank_id
    return row


def _carried_inline_rows(snapshot: DataSnapshot, invoice_ids: Iterable[Optional[str]]) -> List[Dict[str, Any]]:
    """
    Rows for the paid amount entered on the invoice form of invoices that
    have no payment rows yet. Once a payment row exists the invoice's paid
    field is recomputed from rows only, so that amount needs a row first.
    """
    rows: List[Dict[str, Any]] = []
    for inv_id in dict.fromkeys(i for i in invoice_ids if i):
        inv = snapshot.sales_by_id.get(inv_id) or snapshot.purchases_by_id.get(inv_id)
        if inv is None or inv.paid_amount_local <= 0 or explicit_payments_for(inv, snapshot.payments):
            continue
        info = inv.raw.get("payment") if isinstance(inv.raw.get("payment"), Mapping) else {}
        method = str(inv.raw.get("paymentMethod") or info.get("method") or METHOD_CASH).lower()
        bank_id = inv.raw.get("bankId") or info.get("bankId")
        rows.append(inline_payment_row(
            inv,
            f"inline_{inv_id}",
            round_money(inv.paid_amount_local),
            method=method,
            bank_id=bank_id,
            date=str(inv.raw.get("date") or ""),
        ))
        _log.info("invoice %s: paid amount %.2f moved to its own payment row", inv_id, inv.paid_amount_local)
    return rows


def _finish(snapshot: DataSnapshot, payments: List[Dict[str, Any]], affected: Iterable[Optional[str]]) -> Patch:
    sync = recalculate_and_sync_invoices(affected, payments, snapshot)
    return merge_patches({"payments": payments}, sync)


def record_payment(snapshot: DataSnapshot, draft: Mapping[str, Any]) -> Patch:
    """
    New "Payment In/Out": allocate, validate, write one Payment row per
    invoice touched, and re-sync those invoices.

    An invoice paid only through its own form gets that amount written as
    a payment row in the same patch, so it still counts after the re-sync.

    Raises PaymentValidationError / AllocationError before anything is built.
    """
    base_id = str(draft.get("id") or _new_base_id())
    records = _records_for(snapshot, draft, base_id)
    affected = [r["invoiceId"] for r in records]
    payments = snapshot.raw_list("payments") + _carried_inline_rows(snapshot, affected) + records
    _log.debug("record_payment: %s -> %d record(s)", base_id, len(records))
    return _finish(snapshot, payments, affected)


def _base_of(payment: Payment) -> str:
    # "<base>_<invoiceId>" rows are re-split under <base>, not under their own id
    suffix = f"_{payment.invoice_id}" if payment.invoice_id else ""
    pid = str(payment.id)
    if suffix and pid.endswith(suffix) and len(pid) > len(suffix):
        return pid[: -len(suffix)]
    return pid


def update_payment(snapshot: DataSnapshot, payment_id: str, draft: Mapping[str, Any]) -> Patch:
    """
    Edit a payment: the old row is replaced by the new allocation's rows
    (ids "<base>_<invoiceId>", where <base> is payment_id without its own
    invoice suffix) and both old and new invoices re-synced.
    Missing draft fields keep the old payment's values.
    """
    old = snapshot.find_payment(payment_id)
    if old is None:
        raise PaymentValidationError(f"Payment {payment_id!r} not found.")

    merged: Dict[str, Any] = {
        "type": old.type,
        "partyId": old.party_id,
        "amount": old.amount,
        "discount": old.discount,
        "method": old.method,
        "bankId": old.bank_id,
        "date": old.date_text,
        "notes": old.notes,
    }
    merged.update({k: v for k, v in draft.items() if v is not None})
    if "allocations" not in draft and old.invoice_id:
        # editing keeps the original link unless the caller re-allocates
        merged["allocations"] = {old.invoice_id: merged["amount"]}

    remaining = [r for r in snapshot.raw_list("payments") if r.get("id") != payment_id]
    taken = {r.get("id") for r in remaining}
    records = _records_for(snapshot, merged, _base_of(old), editing=old)
    if any(r["id"] in taken for r in records):
        # a sibling split of the same base already holds one of the ids
        records = _records_for(snapshot, merged, payment_id, editing=old)

    affected = [r["invoiceId"] for r in records]
    payments = remaining + _carried_inline_rows(snapshot, affected) + records
    _log.debug("update_payment: %s -> %d record(s)", payment_id, len(records))
    return _finish(snapshot, payments, affected + [old.invoice_id])


def delete_payment(snapshot: DataSnapshot, payment_id: str) -> Patch:
    old = snapshot.find_payment(payment_id)
    if old is None:
        raise PaymentValidationError(f"Payment {payment_id!r} not found.")
    payments = [r for r in snapshot.raw_list("payments") if r.get("id") != payment_id]
    _log.debug("delete_payment: %s (invoice %s)", payment_id, old.invoice_id)
    return _finish(snapshot, payments, [old.invoice_id])
