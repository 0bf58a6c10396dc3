"""
database/snapshot.py

In-memory data snapshot and patch handling.

A snapshot is the whole business dataset (sales, purchases, payments,
parties, items, banks, cash, expenses, returns/notes, settings) as loaded
by the caller. Engines read the normalized collections; anything they
change comes back as a *patch* the caller merges and persists verbatim.

Patch shape (plain dict, external field names):
  - list value      -> replaces that collection
  - mapping value   -> for a collection: {record_id: {field: value}} merged
                       into the matching records; for a mapping field
                       (settings): shallow merge
  - anything else   -> replaces the scalar (e.g. cashInHand)
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, List, Mapping, Optional

from ..config import BusinessSettings
from ..constants import KIND_PURCHASE, KIND_SALE, PARTY_CUSTOMER, PARTY_SUPPLIER
from ..utils.money import to_number
from .normalize import (
    normalize_bank,
    normalize_cash_transaction,
    normalize_expense,
    normalize_invoices,
    normalize_item,
    normalize_note,
    normalize_party,
    normalize_payments,
)
from .records import (
    Bank,
    CashTransaction,
    Expense,
    Invoice,
    Item,
    Note,
    Party,
    Payment,
)

Patch = Dict[str, Any]

__all__ = ["Patch", "DataSnapshot", "apply_patch", "merge_patches"]


def _rows(raw: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    return [r for r in (raw.get(key) or []) if isinstance(r, Mapping)]


@dataclass
class DataSnapshot:
    sales: List[Invoice] = field(default_factory=list)
    purchases: List[Invoice] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    customers: List[Party] = field(default_factory=list)
    suppliers: List[Party] = field(default_factory=list)
    items: List[Item] = field(default_factory=list)
    banks: List[Bank] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    cash_transactions: List[CashTransaction] = field(default_factory=list)
    sales_returns: List[Note] = field(default_factory=list)
    credit_notes: List[Note] = field(default_factory=list)
    purchase_returns: List[Note] = field(default_factory=list)
    debit_notes: List[Note] = field(default_factory=list)
    settings: BusinessSettings = field(default_factory=BusinessSettings)
    cash_in_hand: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "DataSnapshot":
        """Normalize a raw dataset (as stored) into typed collections."""
        raw = dict(raw or {})
        return cls(
            sales=normalize_invoices(_rows(raw, "sales"), KIND_SALE),
            purchases=normalize_invoices(_rows(raw, "purchases"), KIND_PURCHASE),
            payments=normalize_payments(_rows(raw, "payments")),
            customers=[normalize_party(r, PARTY_CUSTOMER) for r in _rows(raw, "customers")],
            suppliers=[normalize_party(r, PARTY_SUPPLIER) for r in _rows(raw, "suppliers")],
            items=[normalize_item(r) for r in _rows(raw, "items")],
            banks=[normalize_bank(r) for r in _rows(raw, "banks")],
            expenses=[normalize_expense(r) for r in _rows(raw, "expenses")],
            cash_transactions=[normalize_cash_transaction(r) for r in _rows(raw, "cashTransactions")],
            sales_returns=[normalize_note(r, "sales_return") for r in _rows(raw, "sales_returns")],
            credit_notes=[normalize_note(r, "credit_note") for r in _rows(raw, "credit_notes")],
            purchase_returns=[normalize_note(r, "purchase_return") for r in _rows(raw, "purchase_returns")],
            debit_notes=[normalize_note(r, "debit_note") for r in _rows(raw, "debit_notes")],
            settings=BusinessSettings.from_mapping(raw.get("settings")),
            cash_in_hand=to_number(raw.get("cashInHand")),
            raw=raw,
        )

    # ---- Lookups ----------------------------------------------------------

    @cached_property
    def sales_by_id(self) -> Dict[str, Invoice]:
        return {s.id: s for s in self.sales if s.id}

    @cached_property
    def purchases_by_id(self) -> Dict[str, Invoice]:
        return {p.id: p for p in self.purchases if p.id}

    @cached_property
    def items_by_id(self) -> Dict[str, Item]:
        return {i.id: i for i in self.items if i.id}

    def invoice_index(self) -> Dict[str, Invoice]:
        """id -> sale or purchase (ids are caller-generated and assumed unique)."""
        index: Dict[str, Invoice] = dict(self.purchases_by_id)
        index.update(self.sales_by_id)
        return index

    def invoices(self, kind: str) -> List[Invoice]:
        if kind == KIND_SALE:
            return self.sales
        if kind == KIND_PURCHASE:
            return self.purchases
        raise ValueError(f"invoice kind must be 'sale' or 'purchase', got {kind!r}")

    def parties(self, party_type: str) -> List[Party]:
        if party_type == PARTY_CUSTOMER:
            return self.customers
        if party_type == PARTY_SUPPLIER:
            return self.suppliers
        raise ValueError(f"party_type must be 'customer' or 'supplier', got {party_type!r}")

    def find_party(self, party_type: str, party_id: str) -> Optional[Party]:
        return next((p for p in self.parties(party_type) if p.id == party_id), None)

    def find_payment(self, payment_id: str) -> Optional[Payment]:
        return next((p for p in self.payments if p.id == payment_id), None)

    def raw_list(self, key: str) -> List[Dict[str, Any]]:
        """Deep copy of a raw collection, safe to edit and return in a patch."""
        return [copy.deepcopy(dict(r)) for r in _rows(self.raw, key)]

    def with_patch(self, patch: Patch) -> "DataSnapshot":
        return DataSnapshot.from_dict(apply_patch(self.raw, patch))


# -----------------------------
# Patch helpers
# -----------------------------

# top-level fields patched by shallow merge rather than by record id
_MAPPING_FIELDS = ("settings",)


def _merge_records(records: List[Any], updates: Mapping[str, Any]) -> List[Any]:
    out: List[Any] = []
    for rec in records:
        if isinstance(rec, Mapping) and rec.get("id") in updates:
            merged = dict(rec)
            merged.update(updates[rec["id"]] or {})
            out.append(merged)
        else:
            out.append(copy.deepcopy(rec))
    return out


def _merge_value(prev: Any, val: Any) -> Any:
    if isinstance(val, list):
        return copy.deepcopy(val)
    if isinstance(val, Mapping) and isinstance(prev, list):
        return _merge_records(prev, val)
    if isinstance(val, Mapping) and isinstance(prev, Mapping):
        merged = dict(prev)
        for k, v in val.items():
            if isinstance(v, Mapping) and isinstance(merged.get(k), Mapping):
                merged[k] = {**merged[k], **v}
            else:
                merged[k] = copy.deepcopy(v)
        return merged
    return copy.deepcopy(val)


def apply_patch(raw: Mapping[str, Any], patch: Optional[Patch]) -> Dict[str, Any]:
    """Return a new raw dataset with `patch` merged in; `raw` is left untouched.

    A record merge into a collection the dataset lacks (or holds as
    None) starts it as an empty list, so ids that match nothing are dropped.
    """
    out = copy.deepcopy(dict(raw or {}))
    for key, val in (patch or {}).items():
        if isinstance(val, Mapping) and out.get(key) is None:
            out[key] = {} if key in _MAPPING_FIELDS else []
        out[key] = _merge_value(out.get(key), val)
    return out


def merge_patches(*patches: Optional[Patch]) -> Patch:
    """Combine patches left to right; later values win, record merges accumulate."""
    result: Patch = {}
    for patch in patches:
        for key, val in (patch or {}).items():
            if key in result:
                result[key] = _merge_value(result[key], val)
            else:
                result[key] = copy.deepcopy(val)
    return result
