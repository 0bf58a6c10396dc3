"""
modules/reporting/party_ledger.py

Party ledger (statement) for one customer or supplier.

Customer:  Sale -> debit;  Payment In, payment Discount, Credit Note / Sales Return -> credit
Supplier:  Purchase -> credit;  Payment Out, payment Discount, Debit Note / Purchase Return -> debit

Balance is one signed number, sum(debit - credit), for both party types.

Rules:
- each payment is counted once (seen-set of payment ids, or
  "<type>-<date>-<amount>" for rows without an id)
- a payment without party fields is attributed through its invoiceId
  (see payment_utilities/party_resolution.py); unresolved ones are omitted
- internal bookkeeping types never appear
- an invoice's inline paid amount becomes a synthetic payment row only when
  no explicit payment row covers that invoice
- opening balance = rows dated before the range start; running balance in
  date order, ties broken by ref id
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from ...constants import FLOW_FOR_KIND, KIND_PURCHASE, KIND_SALE, PARTY_CUSTOMER, PARTY_SUPPLIER
from ...database.records import Invoice, Note, Payment
from ...database.snapshot import DataSnapshot
from ...utils.helpers import range_bounds, sort_instant
from ...utils.money import round_money
from ..payments.payment_utilities.party_resolution import resolve_party

__all__ = ["LedgerRow", "LedgerResult", "build_ledger_data"]

_log = logging.getLogger(__name__)

_KIND_FOR_PARTY = {PARTY_CUSTOMER: KIND_SALE, PARTY_SUPPLIER: KIND_PURCHASE}


@dataclass
class LedgerRow:
    date: Optional[datetime]
    type: str          # 'Sale' | 'Purchase' | 'Payment In' | 'Payment Out' | 'Discount' | 'Credit Note' | 'Debit Note'
    ref_id: str
    debit: float
    credit: float
    balance: float = 0.0
    doc_type: str = ""  # 'sale' | 'purchase' | 'payment' | 'sales_return' | 'purchase_return'
    source_id: Optional[str] = None

    @property
    def impact(self) -> float:
        return self.debit - self.credit


@dataclass
class LedgerResult:
    transactions: List[LedgerRow] = field(default_factory=list)
    opening_balance: float = 0.0
    closing_balance: float = 0.0
    totals: Dict[str, float] = field(default_factory=lambda: {"debit": 0.0, "credit": 0.0})

    def as_dict(self) -> Dict[str, Any]:
        return {
            "transactions": [asdict(r) for r in self.transactions],
            "openingBalance": self.opening_balance,
            "closingBalance": self.closing_balance,
            "totals": dict(self.totals),
        }


def _short(value: Optional[str], fallback: str) -> str:
    return value[-6:] if value else fallback


def _payment_key(p: Payment) -> str:
    return p.id or f"{p.type}-{p.date_text}-{p.amount}"


def _bounds(date_range: Any):
    if not date_range:
        return None, None
    if isinstance(date_range, Mapping):
        return range_bounds(date_range.get("from"), date_range.get("to"))
    start, end = date_range
    return range_bounds(start, end)


def _invoice_rows(invoices: List[Invoice], party_id: str, kind: str) -> List[LedgerRow]:
    rows = []
    for inv in invoices:
        if inv.party_id != party_id:
            continue
        total = inv.total_local
        rows.append(LedgerRow(
            date=inv.date,
            type="Sale" if kind == KIND_SALE else "Purchase",
            ref_id=inv.number or _short(inv.id, "INV" if kind == KIND_SALE else "BILL"),
            debit=total if kind == KIND_SALE else 0.0,
            credit=0.0 if kind == KIND_SALE else total,
            doc_type=kind,
            source_id=inv.id,
        ))
    return rows


def _payment_rows(
    snapshot: DataSnapshot,
    party_type: str,
    party_id: str,
    seen: Set[str],
) -> List[LedgerRow]:
    kind = _KIND_FOR_PARTY[party_type]
    flow = FLOW_FOR_KIND[kind]
    is_customer = party_type == PARTY_CUSTOMER
    index = snapshot.invoice_index()
    numbers = {i.id: i.number for i in snapshot.invoices(kind) if i.number}

    rows: List[LedgerRow] = []
    for p in snapshot.payments:
        if p.is_internal or p.type != flow:
            continue
        ref = resolve_party(p, index)
        if not ref or ref.party_type != party_type or ref.party_id != party_id:
            continue
        pid = _payment_key(p)
        if pid in seen:
            continue
        seen.add(pid)

        ref_id = p.ref or numbers.get(p.invoice_id or "") or _short(pid, "PMTIN" if is_customer else "PMTOUT")
        if p.amount > 0:
            rows.append(LedgerRow(
                date=p.date,
                type="Payment In" if is_customer else "Payment Out",
                ref_id=ref_id,
                debit=0.0 if is_customer else p.amount,
                credit=p.amount if is_customer else 0.0,
                doc_type="payment",
                source_id=p.id,
            ))
        if p.discount > 0:
            rows.append(LedgerRow(
                date=p.date,
                type="Discount",
                ref_id=p.ref or _short(pid, "DISC"),
                debit=0.0 if is_customer else p.discount,
                credit=p.discount if is_customer else 0.0,
                doc_type="payment",
                source_id=p.id,
            ))
    return rows


def _has_explicit(inv: Invoice, payments: List[Payment], party_type: str) -> bool:
    """
    An explicit payment covers the invoice when it is linked to it, or when
    it carries no invoice link but the same party and the same amount.
    """
    flow = inv.payment_flow
    for p in payments:
        if p.is_internal or p.type != flow:
            continue
        if p.invoice_id == inv.id:
            return True
        if (not p.invoice_id and p.party_type == party_type and p.party_id == inv.party_id
                and abs(p.amount - inv.paid_amount_local) < 1e-9):
            return True
    return False


def _inline_rows(snapshot: DataSnapshot, party_type: str, party_id: str, seen: Set[str]) -> List[LedgerRow]:
    kind = _KIND_FOR_PARTY[party_type]
    is_customer = party_type == PARTY_CUSTOMER
    rows: List[LedgerRow] = []
    for inv in snapshot.invoices(kind):
        if inv.party_id != party_id or inv.paid_amount_local <= 0:
            continue
        if _has_explicit(inv, snapshot.payments, party_type):
            continue
        sid = f"inline-{kind}-{inv.id}"
        if sid in seen:
            continue
        seen.add(sid)
        paid = inv.paid_amount_local
        rows.append(LedgerRow(
            date=inv.date,
            type="Payment In" if is_customer else "Payment Out",
            ref_id=inv.number or _short(inv.id, "PMTIN" if is_customer else "PMTOUT"),
            debit=0.0 if is_customer else paid,
            credit=paid if is_customer else 0.0,
            doc_type="payment",
            source_id=sid,
        ))
    return rows


def _note_rows(notes: List[Note], party_id: str, is_customer: bool) -> List[LedgerRow]:
    rows = []
    for n in notes:
        if n.party_id != party_id or n.amount <= 0:
            continue
        rows.append(LedgerRow(
            date=n.date,
            type="Credit Note" if is_customer else "Debit Note",
            ref_id=n.ref or _short(n.id, "CRN" if is_customer else "DBN"),
            debit=0.0 if is_customer else n.amount,
            credit=n.amount if is_customer else 0.0,
            doc_type="sales_return" if is_customer else "purchase_return",
            source_id=n.id,
        ))
    return rows


def build_ledger_data(
    party_type: str,
    party_id: Optional[str],
    data: Union[DataSnapshot, Mapping[str, Any]],
    date_range: Any = None,
    search: Optional[str] = None,
) -> LedgerResult:
    """
    Statement rows for one party with opening/closing balances.

    `date_range` is (from, to) or {"from": ..., "to": ...}; either end may
    be None, and a date-only `to` includes that whole day. `search` narrows
    the displayed rows by ref id or type; balances are computed over every
    row in range so each shown balance and the closing balance stay true.
    """
    if party_type not in (PARTY_CUSTOMER, PARTY_SUPPLIER):
        raise ValueError(f"party_type must be 'customer' or 'supplier', got {party_type!r}")
    if not party_id:
        return LedgerResult()
    snapshot = data if isinstance(data, DataSnapshot) else DataSnapshot.from_dict(data)
    is_customer = party_type == PARTY_CUSTOMER
    kind = _KIND_FOR_PARTY[party_type]

    seen: Set[str] = set()
    rows: List[LedgerRow] = []
    rows += _invoice_rows(snapshot.invoices(kind), party_id, kind)
    rows += _payment_rows(snapshot, party_type, party_id, seen)
    rows += _inline_rows(snapshot, party_type, party_id, seen)
    if is_customer:
        rows += _note_rows(snapshot.sales_returns + snapshot.credit_notes, party_id, True)
    else:
        rows += _note_rows(snapshot.purchase_returns + snapshot.debit_notes, party_id, False)

    lo, hi = _bounds(date_range)
    opening = 0.0
    in_range: List[LedgerRow] = []
    for r in rows:
        if r.date is not None and lo is not None and r.date < lo:
            opening += r.impact
        elif r.date is not None and hi is not None and r.date > hi:
            continue
        else:
            in_range.append(r)

    in_range.sort(key=lambda r: (sort_instant(r.date), str(r.ref_id)))

    run = opening
    for r in in_range:
        run += r.impact
        r.balance = round_money(run)

    shown = in_range
    if search:
        needle = search.strip().lower()
        shown = [r for r in in_range if needle in str(r.ref_id).lower() or needle in r.type.lower()]

    result = LedgerResult(
        transactions=shown,
        opening_balance=round_money(opening),
        closing_balance=round_money(run),
        totals={
            "debit": round_money(sum(r.debit for r in shown)),
            "credit": round_money(sum(r.credit for r in shown)),
        },
    )
    _log.debug(
        "ledger %s %s: %d row(s), opening=%.2f closing=%.2f",
        party_type, party_id, len(shown), result.opening_balance, result.closing_balance,
    )
    return result
