"""
payment_utilities/calculations.py

Invoice status engine: how much of a sale/purchase is paid, what is still
due, and the Paid/Partial/Credit badge.

Rules:
- Explicit Payment rows linked by `invoiceId` (flow 'in' for sales, 'out'
  for purchases) count with their discount.
- The invoice's inline `paid_amount_local` counts ONLY when no such row
  exists ("explicit overrides inline"), so money is never counted twice.
- balance = total_local - paid (may go negative when overpaid; callers
  validate overpayment before save).

Pure functions; no I/O and no mutation of inputs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ....constants import MONEY_TOLERANCE
from ....database.records import Invoice, Payment
from . import status as status_mod

__all__ = [
    "InvoiceStatus",
    "explicit_payments_for",
    "paid_amount_for_invoice",
    "get_invoice_status",
    "status_from_paid",
    "OpenInvoice",
    "outstanding_invoices",
]

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceStatus:
    status: str
    paid_amount: float
    balance: float

    def as_dict(self) -> dict:
        return {"status": self.status, "paidAmount": self.paid_amount, "balance": self.balance}


# -----------------------------
# Core utilities
# -----------------------------

def explicit_payments_for(invoice: Invoice, payments: Optional[Iterable[Payment]]) -> List[Payment]:
    """Non-internal payments linked to `invoice` whose flow settles its kind."""
    if not invoice.id:
        return []
    flow = invoice.payment_flow
    return [
        p for p in (payments or [])
        if p.invoice_id == invoice.id and p.type == flow and not p.is_internal
    ]


def paid_amount_for_invoice(invoice: Invoice, payments: Optional[Iterable[Payment]]) -> float:
    """
    paid = Σ(amount + discount) over explicit rows, or the inline paid
    field when there are none.
    """
    explicit = explicit_payments_for(invoice, payments)
    if explicit:
        return float(sum(p.amount + p.discount for p in explicit))
    return float(invoice.paid_amount_local)


def status_from_paid(total: float, paid: float, tol: float = MONEY_TOLERANCE) -> str:
    """
    Threshold helper for status badges:
      - 'Paid'    if total > 0 and total - paid <= tol (overpaid included)
      - 'Partial' if paid > tol
      - 'Credit'  otherwise
    """
    if total > tol and (total - paid) <= tol + 1e-9:
        return status_mod.PAID
    if paid > tol:
        return status_mod.PARTIAL
    return status_mod.CREDIT


def get_invoice_status(invoice: Optional[Invoice], payments: Optional[Iterable[Payment]] = None) -> InvoiceStatus:
    """
    {status, paid_amount, balance} for one invoice.

    `payments` may be None/empty. An invoice without an id (a draft) has
    nothing linked to it and is reported as Credit for its full total.
    """
    if invoice is None:
        return InvoiceStatus(status_mod.CREDIT, 0.0, 0.0)
    total = float(invoice.total_local)
    if not invoice.id:
        return InvoiceStatus(status_mod.CREDIT, 0.0, total)

    payments = list(payments or [])
    paid = paid_amount_for_invoice(invoice, payments)
    balance = total - paid
    return InvoiceStatus(status_from_paid(total, paid), paid, balance)


# -----------------------------
# Outstanding invoices (allocation input)
# -----------------------------

@dataclass(frozen=True)
class OpenInvoice:
    id: str
    date: str  # ISO text; sorts chronologically
    due: float
    number: Optional[str] = None


def outstanding_invoices(
    invoices: Iterable[Invoice],
    payments: Optional[Iterable[Payment]],
    party_id: str,
    *,
    exclude_payment_id: Optional[str] = None,
    keep_invoice_id: Optional[str] = None,
    tol: float = MONEY_TOLERANCE,
) -> List[OpenInvoice]:
    """
    The party's invoices with due > tol, oldest first.

    When editing a payment, pass its id as `exclude_payment_id` so its own
    amount is not counted as already paid, and its invoice as
    `keep_invoice_id` so that invoice stays listed even if settled.
    """
    pays = [p for p in (payments or []) if not exclude_payment_id or p.id != exclude_payment_id]
    out: List[OpenInvoice] = []
    for inv in invoices:
        if inv.party_id != party_id:
            continue
        st = get_invoice_status(inv, pays)
        if st.balance > tol or (keep_invoice_id and inv.id == keep_invoice_id):
            out.append(OpenInvoice(
                id=inv.id,
                date=inv.date.isoformat() if inv.date else "",
                due=st.balance,
                number=inv.number,
            ))
    out.sort(key=lambda o: (o.date, o.id))
    _log.debug("outstanding_invoices: party=%s open=%d", party_id, len(out))
    return out
