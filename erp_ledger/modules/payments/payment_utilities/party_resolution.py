"""
payment_utilities/party_resolution.py

Who a payment belongs to.

Older payment rows were not always written with partyId/partyType. The
repair is two steps and nothing more:
  1. explicit partyId (+ partyType, or the type implied by the flow)
  2. follow invoiceId to the sale/purchase and read its party
Anything else is UNRESOLVED and stays off every party statement.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Union

from ....constants import PARTY_FOR_FLOW
from ....database.records import Invoice, Payment

__all__ = ["PartyRef", "UNRESOLVED", "resolve_party", "belongs_to", "unresolved_payments"]

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartyRef:
    party_type: str  # 'customer' | 'supplier'
    party_id: str


class _Unresolved:
    """Falsy marker for payments whose party cannot be determined."""
    _instance: Optional["_Unresolved"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()

Resolution = Union[PartyRef, _Unresolved]


def resolve_party(payment: Payment, invoice_index: Mapping[str, Invoice]) -> Resolution:
    if payment.party_id:
        ptype = payment.party_type or PARTY_FOR_FLOW.get(payment.type)
        if ptype:
            return PartyRef(ptype, payment.party_id)

    inv = invoice_index.get(payment.invoice_id) if payment.invoice_id else None
    if inv is not None and inv.party_id:
        return PartyRef(inv.party_type, inv.party_id)

    return UNRESOLVED


def belongs_to(payment: Payment, party_type: str, party_id: str, invoice_index: Mapping[str, Invoice]) -> bool:
    ref = resolve_party(payment, invoice_index)
    return bool(ref) and ref.party_type == party_type and ref.party_id == party_id


def unresolved_payments(snapshot) -> List[Payment]:
    """Non-internal payments that no party statement will show."""
    index: Dict[str, Invoice] = snapshot.invoice_index()
    out: List[Payment] = []
    for p in snapshot.payments:
        if p.is_internal:
            continue
        if not resolve_party(p, index):
            _log.warning("payment %s has no resolvable party (invoiceId=%s)", p.id, p.invoice_id)
            out.append(p)
    return out
