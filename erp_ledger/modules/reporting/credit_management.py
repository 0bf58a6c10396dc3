"""
modules/reporting/credit_management.py

Receivables (customers) and payables (suppliers) at a glance.

Each party's figures are read off its ledger (party_ledger.build_ledger_data)
so this summary can never disagree with the statement the party is shown:

    invoiced  sales / purchases
    paid      payments + payment discounts + inline paid amounts not
              already covered by a payment row
    notes     credit notes / sales returns, or debit notes / purchase returns
    balance   invoiced - paid - notes  (what the party owes us, or what we
              owe the supplier; positive means open)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ...constants import KIND_PURCHASE, KIND_SALE, MONEY_TOLERANCE, PARTY_CUSTOMER, PARTY_SUPPLIER
from ...database.snapshot import DataSnapshot
from ...utils.helpers import sort_instant
from ...utils.money import round_money
from ..payments.payment_utilities.calculations import get_invoice_status
from .party_ledger import build_ledger_data

__all__ = ["PartyBalance", "receivables", "payables"]

_log = logging.getLogger(__name__)

_INVOICE_ROWS = {"Sale", "Purchase"}
_NOTE_ROWS = {"Credit Note", "Debit Note"}


@dataclass
class PartyBalance:
    party_type: str
    party_id: str
    name: str
    invoiced: float = 0.0
    paid: float = 0.0
    notes: float = 0.0
    balance: float = 0.0
    open_invoices: int = 0
    oldest_unpaid_date: Optional[datetime] = None


def _summarize(snapshot: DataSnapshot, party_type: str, include_zero: bool) -> List[PartyBalance]:
    kind = KIND_SALE if party_type == PARTY_CUSTOMER else KIND_PURCHASE
    # a customer's ledger runs debit-positive, a supplier's credit-positive
    sign = 1.0 if party_type == PARTY_CUSTOMER else -1.0

    out: List[PartyBalance] = []
    for party in snapshot.parties(party_type):
        ledger = build_ledger_data(party_type, party.id, snapshot)
        row = PartyBalance(party_type=party_type, party_id=party.id, name=party.name)
        for tx in ledger.transactions:
            amount = tx.debit + tx.credit
            if tx.type in _INVOICE_ROWS:
                row.invoiced += amount
            elif tx.type in _NOTE_ROWS:
                row.notes += amount
            else:
                row.paid += amount
        row.invoiced = round_money(row.invoiced)
        row.paid = round_money(row.paid)
        row.notes = round_money(row.notes)
        row.balance = round_money(sign * ledger.closing_balance)

        unpaid = [
            inv for inv in snapshot.invoices(kind)
            if inv.party_id == party.id and get_invoice_status(inv, snapshot.payments).balance > MONEY_TOLERANCE
        ]
        row.open_invoices = len(unpaid)
        if unpaid:
            row.oldest_unpaid_date = min((inv.date for inv in unpaid), key=sort_instant)

        if include_zero or abs(row.balance) > MONEY_TOLERANCE:
            out.append(row)

    out.sort(key=lambda r: r.balance, reverse=True)
    _log.debug("%s balances: %d party(ies), total %.2f", party_type, len(out), sum(r.balance for r in out))
    return out


def receivables(snapshot: DataSnapshot, include_zero: bool = False) -> List[PartyBalance]:
    """What each customer owes, largest first."""
    return _summarize(snapshot, PARTY_CUSTOMER, include_zero)


def payables(snapshot: DataSnapshot, include_zero: bool = False) -> List[PartyBalance]:
    """What is owed to each supplier, largest first."""
    return _summarize(snapshot, PARTY_SUPPLIER, include_zero)
