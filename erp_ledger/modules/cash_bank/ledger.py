"""
modules/cash_bank/ledger.py

Cash in hand and bank balances, derived from the transactions that move
money instead of being kept as running totals.

    balance(account) = opening seed + sum(signed movements on that account)

Movement sources:
  - party payments ('in' adds, 'out' removes), on cash or their bankId
  - inline paid amounts of invoices that have no payment rows (older data)
  - expenses (remove)
  - manual cash transactions ('add' / 'remove'); entries that merely echo a
    payment (carrying paymentId, or auto-written "Payment from/to ...")
    are skipped so the payment is not counted twice
  - internal 'bank_transfer' rows (fromBankId -> toBankId; 'cash' or a
    missing id means cash in hand)
  - internal 'cash_adjustment' rows (signed amount)

Opening seeds: settings.cashOpeningBalance and each bank's openingBalance.
Stored `cashInHand` / `banks[].balance` are only compared, never trusted:
see reconcile_balances.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ...constants import FLOW_IN, FLOW_OUT, METHOD_BANK, MONEY_TOLERANCE
from ...database.records import Invoice
from ...database.snapshot import DataSnapshot
from ...utils.helpers import in_range, range_bounds, sort_instant
from ...utils.money import round_money, to_number
from ..payments.payment_utilities.calculations import explicit_payments_for
from ..payments.payment_utilities.debit_credit_manager import (
    CASH_ACCOUNT,
    KIND_ADJUSTMENT,
    KIND_DISBURSEMENT,
    KIND_RECEIPT,
    signed_amount,
    totals,
)

__all__ = [
    "CASH_ACCOUNT",
    "Movement",
    "AccountStatement",
    "BalanceDrift",
    "movements",
    "cash_balance",
    "bank_balance",
    "balances",
    "account_statement",
    "reconcile_balances",
]

_log = logging.getLogger(__name__)

_AUTO_POST_PREFIXES = ("payment from ", "payment to ")

Movement = Dict[str, Any]


def _row(*, id: Any, date: Optional[datetime], kind: str, amount: float, account: Optional[str],
         source: str, ref: str = "", description: str = "") -> Movement:
    return {
        "id": id,
        "date": date,
        "kind": kind,
        "amount": amount,
        "account": account,
        "source": source,
        "ref": ref,
        "description": description,
    }


def _account_for(method: Optional[str], bank_id: Optional[str]) -> Optional[str]:
    if method == METHOD_BANK:
        return bank_id or None
    return CASH_ACCOUNT


def _transfer_account(value: Any) -> str:
    txt = str(value or "").strip()
    return txt if txt and txt.lower() != CASH_ACCOUNT else CASH_ACCOUNT


def _inline_rows(invoices: Iterable[Invoice], snapshot: DataSnapshot) -> List[Movement]:
    rows: List[Movement] = []
    for inv in invoices:
        if inv.paid_amount_local <= 0 or explicit_payments_for(inv, snapshot.payments):
            continue
        info = inv.raw.get("payment") if isinstance(inv.raw.get("payment"), dict) else {}
        method = str(inv.raw.get("paymentMethod") or info.get("method") or "cash").lower()
        bank_id = inv.raw.get("bankId") or info.get("bankId")
        rows.append(_row(
            id=f"inline-{inv.kind}-{inv.id}",
            date=inv.date,
            kind=KIND_RECEIPT if inv.is_sale else KIND_DISBURSEMENT,
            amount=inv.paid_amount_local,
            account=_account_for(method, bank_id),
            source="invoice",
            ref=inv.ref,
            description=f"Paid on {'sale' if inv.is_sale else 'purchase'} {inv.ref}",
        ))
    return rows


def movements(snapshot: DataSnapshot) -> List[Movement]:
    """Every cash/bank movement, oldest first (ties keep source order)."""
    rows: List[Movement] = []

    for p in snapshot.payments:
        if p.type == "bank_transfer":
            src = _transfer_account(p.raw.get("fromBankId"))
            dst = _transfer_account(p.raw.get("toBankId"))
            amount = abs(p.amount)
            rows.append(_row(id=f"{p.id}:from", date=p.date, kind=KIND_DISBURSEMENT, amount=amount,
                             account=src, source="transfer", ref=p.ref or "", description=p.notes or "Transfer"))
            rows.append(_row(id=f"{p.id}:to", date=p.date, kind=KIND_RECEIPT, amount=amount,
                             account=dst, source="transfer", ref=p.ref or "", description=p.notes or "Transfer"))
            continue
        if p.type == "cash_adjustment":
            rows.append(_row(id=p.id, date=p.date, kind=KIND_ADJUSTMENT, amount=p.amount,
                             account=p.bank_id or CASH_ACCOUNT,
                             source="adjustment", ref=p.ref or "", description=p.notes or "Adjustment"))
            continue
        if p.is_internal or p.type not in (FLOW_IN, FLOW_OUT):
            continue
        account = _account_for(p.method, p.bank_id)
        if account is None:
            _log.warning("bank payment %s has no bankId; left out of bank balances", p.id)
        rows.append(_row(
            id=p.id,
            date=p.date,
            kind=KIND_RECEIPT if p.type == FLOW_IN else KIND_DISBURSEMENT,
            amount=p.amount,
            account=account,
            source="payment",
            ref=p.ref or p.invoice_id or "",
            description=p.notes or "",
        ))

    rows.extend(_inline_rows(snapshot.sales, snapshot))
    rows.extend(_inline_rows(snapshot.purchases, snapshot))

    for e in snapshot.expenses:
        rows.append(_row(id=e.id, date=e.date, kind=KIND_DISBURSEMENT, amount=e.amount,
                         account=_account_for(e.method or "cash", e.bank_id),
                         source="expense", ref=e.category or "", description=e.notes or e.category or "Expense"))

    for tx in snapshot.cash_transactions:
        if tx.payment_id or tx.description.strip().lower().startswith(_AUTO_POST_PREFIXES):
            continue
        if tx.type not in ("add", "remove"):
            continue
        rows.append(_row(id=tx.id, date=tx.date, kind=KIND_RECEIPT if tx.type == "add" else KIND_DISBURSEMENT,
                         amount=tx.amount, account=CASH_ACCOUNT, source="cash", description=tx.description))

    rows.sort(key=lambda r: sort_instant(r["date"]))
    return rows


def _opening_seed(snapshot: DataSnapshot, account: str) -> float:
    if account == CASH_ACCOUNT:
        return snapshot.settings.cash_opening_balance
    bank = next((b for b in snapshot.banks if b.id == account), None)
    if bank is None:
        raise ValueError(f"unknown bank account {account!r}")
    return bank.opening_balance


def _balance(snapshot: DataSnapshot, account: str, as_of: Any = None) -> float:
    seed = _opening_seed(snapshot, account)
    bounds = range_bounds(None, as_of)
    rows = [r for r in movements(snapshot) if r["account"] == account and in_range(r["date"], bounds)]
    return round_money(seed + totals(rows)["net"])


def cash_balance(snapshot: DataSnapshot, as_of: Any = None) -> float:
    return _balance(snapshot, CASH_ACCOUNT, as_of)


def bank_balance(snapshot: DataSnapshot, bank_id: str, as_of: Any = None) -> float:
    if bank_id == CASH_ACCOUNT:
        raise ValueError("use cash_balance for cash in hand")
    return _balance(snapshot, bank_id, as_of)


def balances(snapshot: DataSnapshot) -> Dict[str, float]:
    """{'cash': x, <bank id>: y, ...}"""
    out = {CASH_ACCOUNT: cash_balance(snapshot)}
    for b in snapshot.banks:
        out[b.id] = bank_balance(snapshot, b.id)
    return out


# -----------------------------
# Statement
# -----------------------------

@dataclass
class AccountStatement:
    account: str
    opening_balance: float
    rows: List[Movement] = field(default_factory=list)  # each with 'balance_after'
    totals: Dict[str, float] = field(default_factory=dict)
    closing_balance: float = 0.0


def account_statement(snapshot: DataSnapshot, account: str, date_range: Optional[tuple] = None) -> AccountStatement:
    """
    Running-balance statement for 'cash' or a bank id.

    Opening = seed + movements dated before the range start; each row in
    range gets 'balance_after'. A date-only range end covers the whole day.
    """
    seed = _opening_seed(snapshot, account)
    lo, hi = range_bounds(*date_range) if date_range else (None, None)

    opening = seed
    rows: List[Movement] = []
    for r in movements(snapshot):
        if r["account"] != account:
            continue
        if lo is not None and r["date"] is not None and r["date"] < lo:
            opening += signed_amount(r)
            continue
        if not in_range(r["date"], (lo, hi)):
            continue
        rows.append(dict(r))

    balance = opening
    for r in rows:
        balance += signed_amount(r)
        r["balance_after"] = round_money(balance)

    return AccountStatement(
        account=account,
        opening_balance=round_money(opening),
        rows=rows,
        totals=totals(rows),
        closing_balance=round_money(balance),
    )


# -----------------------------
# Drift detection
# -----------------------------

@dataclass(frozen=True)
class BalanceDrift:
    account: str
    name: str
    stored: float
    derived: float

    @property
    def difference(self) -> float:
        return round_money(self.stored - self.derived)

    @property
    def ok(self) -> bool:
        return abs(self.stored - self.derived) <= MONEY_TOLERANCE + 1e-9


def reconcile_balances(snapshot: DataSnapshot) -> List[BalanceDrift]:
    """
    Stored cashInHand / banks[].balance next to the derived balances.
    Accounts that disagree by more than a cent are logged as warnings.
    """
    report = [BalanceDrift(CASH_ACCOUNT, "Cash in Hand", to_number(snapshot.cash_in_hand), cash_balance(snapshot))]
    for b in snapshot.banks:
        report.append(BalanceDrift(b.id, b.name, b.stored_balance, bank_balance(snapshot, b.id)))
    for d in report:
        if not d.ok:
            _log.warning("balance drift on %s: stored %.2f, derived %.2f", d.name, d.stored, d.derived)
    return report
