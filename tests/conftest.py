# erp_ledger/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test builds its own raw dataset (plain dicts, external field
#   names) and loads it with DataSnapshot.from_dict
# - BASE_DATA carries the parties, items, banks and settings most tests
#   share; invoices and payments are added per test
# - Engines return patches; tests apply them with DataSnapshot.with_patch
# ---------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

import pytest

from erp_ledger.constants import KIND_SALE
from erp_ledger.database import DataSnapshot
from erp_ledger.database.normalize import normalize_invoice, normalize_payment

BASE_DATA: Dict[str, Any] = {
    "customers": [
        {"id": "c1", "name": "Alice Trading", "contact": "050-1111111", "address": "Deira, Dubai"},
        {"id": "c2", "name": "Bob Stores"},
    ],
    "suppliers": [
        {"id": "s1", "name": "Gulf Supplies"},
    ],
    "items": [
        {"id": "i1", "name": "Widget", "purchasePrice": 9, "lowStockThreshold": 2},
        {"id": "i2", "name": "Phone X", "hasImei": True, "purchasePrice": 500},
        {"id": "i3", "name": "Cable", "purchasePrice": 4},
    ],
    "banks": [
        {"id": "b1", "name": "Emirates NBD", "balance": 1000, "openingBalance": 1000},
    ],
    "settings": {"currency": "AED", "currencySymbol": "AED", "companyName": "ERP Pro", "cashOpeningBalance": 500},
    "cashInHand": 500,
    "sales": [],
    "purchases": [],
    "payments": [],
}


def sale(
    sid: str,
    total: float,
    *,
    date: str = "2025-01-01",
    customer: str = "c1",
    number: Optional[str] = None,
    paid: Optional[float] = None,
    items: Optional[List[Dict[str, Any]]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    rec = {
        "id": sid,
        "saleNumber": number or f"S-{sid}",
        "customerId": customer,
        "date": date,
        "fx_rate_to_business": 1,
        "total_foreign": total,
        "total_local": total,
        "items": items or [],
    }
    if paid is not None:
        rec["paidAmount"] = paid
    rec.update(extra)
    return rec


def purchase(
    pid: str,
    total: float,
    *,
    date: str = "2025-01-01",
    supplier: str = "s1",
    number: Optional[str] = None,
    paid: Optional[float] = None,
    items: Optional[List[Dict[str, Any]]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    rec = {
        "id": pid,
        "purchaseNumber": number or f"P-{pid}",
        "supplierId": supplier,
        "date": date,
        "fx_rate_to_business": 1,
        "totalCost": total,
        "totalCost_base": total,
        "items": items or [],
    }
    if paid is not None:
        rec["paidAmount_base"] = paid
    rec.update(extra)
    return rec


def payment(
    pid: str,
    amount: float,
    *,
    type: str = "in",
    invoice: Optional[str] = None,
    party: Optional[str] = None,
    party_type: Optional[str] = None,
    date: str = "2025-01-05",
    method: str = "cash",
    **extra: Any,
) -> Dict[str, Any]:
    rec: Dict[str, Any] = {"id": pid, "type": type, "amount": amount, "date": date, "method": method}
    if invoice is not None:
        rec["invoiceId"] = invoice
    if party is not None:
        rec["partyId"] = party
        rec["partyType"] = party_type or ("customer" if type == "in" else "supplier")
    rec.update(extra)
    return rec


def line(item_id: str, qty: float, price: float, serials: Optional[List[str]] = None) -> Dict[str, Any]:
    rec = {"itemId": item_id, "quantity": qty, "unitPrice": price}
    if serials:
        rec["serials"] = list(serials)
    return rec


@pytest.fixture
def raw_data() -> Dict[str, Any]:
    return copy.deepcopy(BASE_DATA)


@pytest.fixture
def make_snapshot():
    """make_snapshot(sales=[...], payments=[...], ...) on top of BASE_DATA."""
    def _make(**collections: Any) -> DataSnapshot:
        data = copy.deepcopy(BASE_DATA)
        data.update(copy.deepcopy(collections))
        return DataSnapshot.from_dict(data)
    return _make


@pytest.fixture
def make_sale():
    return sale


@pytest.fixture
def make_purchase():
    return purchase


@pytest.fixture
def make_payment():
    return payment


@pytest.fixture
def make_line():
    return line


@pytest.fixture
def as_invoice():
    def _as(raw: Dict[str, Any], kind: str = KIND_SALE):
        return normalize_invoice(raw, kind)
    return _as


@pytest.fixture
def as_payments():
    def _as(rows: List[Dict[str, Any]]):
        return [normalize_payment(r) for r in rows]
    return _as
